"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class ExecutionStatus(str, Enum):
    """Overall status of a workflow execution"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.REJECTED,
            ExecutionStatus.CANCELLED,
            ExecutionStatus.EXPIRED,
        )


class StepStatus(str, Enum):
    """Runtime status per step execution"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    EXPIRED = "expired"


class StepKind(str, Enum):
    """Kinds of workflow steps"""
    APPROVAL = "approval"
    REVIEW = "review"
    NOTIFICATION = "notification"
    CONDITION = "condition"
    ACTION = "action"


class Decision(str, Enum):
    """Human (or system) decision on an active step"""
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"


class ConditionOperator(str, Enum):
    """Condition operators"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class LogicalOperator(str, Enum):
    """Combinator joining a condition to the next one"""
    AND = "and"
    OR = "or"


class TimeoutAction(str, Enum):
    """What the sweeper does with an expired step"""
    ESCALATE = "escalate"
    AUTO_APPROVE = "auto_approve"
    AUTO_REJECT = "auto_reject"
    NOTIFY = "notify"


class ActionType(str, Enum):
    """Post-completion action variants"""
    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"
    UPDATE_FIELD = "update_field"
    CREATE_TASK = "create_task"
    ASSIGN_USER = "assign_user"


class Priority(str, Enum):
    """Execution priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationChannel(str, Enum):
    """Delivery channels requested from the dispatcher"""
    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationTemplateKey(str, Enum):
    """Notification template identifiers"""
    STEP_ASSIGNED = "STEP_ASSIGNED"
    STEP_REASSIGNED = "STEP_REASSIGNED"
    STEP_DECIDED = "STEP_DECIDED"
    STEP_ESCALATED = "STEP_ESCALATED"
    STEP_REMINDER = "STEP_REMINDER"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    WORKFLOW_COMPLETED = "WORKFLOW_COMPLETED"
    WORKFLOW_REJECTED = "WORKFLOW_REJECTED"
    WORKFLOW_CANCELLED = "WORKFLOW_CANCELLED"
    ACTION_MESSAGE = "ACTION_MESSAGE"
    QC_ASSIGNED = "QC_ASSIGNED"


class QCStage(str, Enum):
    """Stages of the file QC revision ladder"""
    UPLOADED = "UPLOADED"
    QC = "QC"
    R1 = "R1"
    R2 = "R2"
    R3 = "R3"
    R4 = "R4"
    APPROVED = "APPROVED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (QCStage.APPROVED, QCStage.FAILED)


class QCAction(str, Enum):
    """Reviewer actions on the QC ladder"""
    APPROVE = "APPROVE"
    ADJUST = "ADJUST"
    FAIL = "FAIL"
    ASSIGN = "ASSIGN"
