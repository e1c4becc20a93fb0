"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class TemplateNotFoundError(NotFoundError):
    """Workflow template not found"""
    error_code = "TEMPLATE_NOT_FOUND"


class ExecutionNotFoundError(NotFoundError):
    """Workflow execution not found"""
    error_code = "EXECUTION_NOT_FOUND"


class StepNotFoundError(NotFoundError):
    """Step not found in execution or template"""
    error_code = "STEP_NOT_FOUND"


class SubmissionNotFoundError(NotFoundError):
    """Submission under review not found"""
    error_code = "SUBMISSION_NOT_FOUND"


class FileNotFoundInWorkflowError(NotFoundError):
    """File has no QC workflow status"""
    error_code = "FILE_NOT_FOUND"


# Precondition Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class TemplateValidationError(ValidationError):
    """Workflow template definition is invalid"""
    error_code = "TEMPLATE_VALIDATION_ERROR"


class PermissionDeniedError(DomainError):
    """Actor may not perform this operation"""
    error_code = "PERMISSION_DENIED"
    http_status = 403


class UserNotAssignedError(PermissionDeniedError):
    """User is not in the step's resolved assignee set"""
    error_code = "USER_NOT_ASSIGNED"


class InvalidStateError(DomainError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"
    http_status = 409


class TemplateInactiveError(InvalidStateError):
    """Template exists but is not active"""
    error_code = "TEMPLATE_INACTIVE"


class StepNotInProgressError(InvalidStateError):
    """Step already decided or not yet activated"""
    error_code = "STEP_NOT_IN_PROGRESS"


class InvalidStageActionError(InvalidStateError):
    """QC action not allowed from the file's current stage"""
    error_code = "INVALID_STAGE_ACTION"


# Concurrency
class ConcurrencyError(DomainError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"
    http_status = 409


# Collaborator Errors
class CollaboratorError(DomainError):
    """External collaborator failure"""
    error_code = "COLLABORATOR_ERROR"
    http_status = 502


class IdentityResolutionError(CollaboratorError):
    """Role or group membership could not be resolved"""
    error_code = "IDENTITY_RESOLUTION_ERROR"


class NotificationDeliveryError(CollaboratorError):
    """Notification dispatcher rejected a message"""
    error_code = "NOTIFICATION_DELIVERY_ERROR"


class WebhookError(CollaboratorError):
    """Outbound webhook call failed"""
    error_code = "WEBHOOK_ERROR"


# Persistence
class PersistenceError(DomainError):
    """Store read/write failed; the caller must retry"""
    error_code = "PERSISTENCE_ERROR"
    http_status = 503
