"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict

from .enums import (
    ExecutionStatus, StepStatus, StepKind, Decision, ConditionOperator,
    LogicalOperator, TimeoutAction, Priority, NotificationChannel,
    NotificationStatus, NotificationTemplateKey, QCStage, QCAction
)


# ============================================================================
# Actor
# ============================================================================

class ActorContext(BaseModel):
    """Caller identity supplied by the host"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="User identifier")
    tenant_id: str = Field(..., description="Tenant scope")
    roles: List[str] = Field(default_factory=list, description="Assigned roles")


# ============================================================================
# Conditions
# ============================================================================

class Condition(BaseModel):
    """
    Single condition evaluated against a submission data snapshot.

    `logical_operator` joins this condition to the *next* one in the list.
    """
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., description="Data key to evaluate")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value to compare against")
    logical_operator: Optional[LogicalOperator] = Field(
        None, description="Combinator applied between this condition and the next (default and)"
    )


# ============================================================================
# Assignee References (tagged union)
# ============================================================================

class UserAssignee(BaseModel):
    """Literal user"""
    type: Literal["user"] = "user"
    id: str
    name: Optional[str] = None


class RoleAssignee(BaseModel):
    """Every member of a role in the tenant"""
    type: Literal["role"] = "role"
    id: str
    name: Optional[str] = None


class GroupAssignee(BaseModel):
    """Every member of a group in the tenant"""
    type: Literal["group"] = "group"
    id: str
    name: Optional[str] = None


class ConditionalAssignee(BaseModel):
    """User included only when its own conditions hold for the submission"""
    type: Literal["conditional"] = "conditional"
    id: str
    name: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)


AssigneeRef = Annotated[
    Union[UserAssignee, RoleAssignee, GroupAssignee, ConditionalAssignee],
    Field(discriminator="type")
]


# ============================================================================
# Post-completion Actions (tagged union)
# ============================================================================

class EmailAction(BaseModel):
    """Send an email through the notification dispatcher"""
    type: Literal["email"] = "email"
    recipients: List[str] = Field(default_factory=list, description="User IDs; empty means the submitter")
    subject: str = "Workflow completed"
    body: Optional[str] = None


class SmsAction(BaseModel):
    """Send an SMS through the notification dispatcher"""
    type: Literal["sms"] = "sms"
    recipients: List[str] = Field(default_factory=list)
    message: str = "Workflow completed"


class WebhookAction(BaseModel):
    """POST the execution snapshot to an external URL"""
    type: Literal["webhook"] = "webhook"
    url: str = Field(..., min_length=1)
    headers: Dict[str, str] = Field(default_factory=dict)


class UpdateFieldAction(BaseModel):
    """Write a value into the reviewed submission"""
    type: Literal["update_field"] = "update_field"
    field: str
    value: Any = None


class CreateTaskAction(BaseModel):
    """Create a follow-up task"""
    type: Literal["create_task"] = "create_task"
    title: str
    description: Optional[str] = None
    assignee_id: Optional[str] = None


class AssignUserAction(BaseModel):
    """Assign the reviewed submission to a user"""
    type: Literal["assign_user"] = "assign_user"
    user_id: str


Action = Annotated[
    Union[EmailAction, SmsAction, WebhookAction, UpdateFieldAction, CreateTaskAction, AssignUserAction],
    Field(discriminator="type")
]


# ============================================================================
# Step & Workflow Templates
# ============================================================================

class TimeoutPolicy(BaseModel):
    """What happens when a step stays in progress too long"""
    model_config = ConfigDict(extra="forbid")

    duration_hours: float = Field(0, ge=0, description="Hours after activation before the step expires")
    action: TimeoutAction = Field(default=TimeoutAction.NOTIFY)
    escalate_to: List[AssigneeRef] = Field(default_factory=list, description="Escalation targets")


class StepSettings(BaseModel):
    """Per-step behaviour flags"""
    allow_parallel: bool = False
    require_all: bool = False
    allow_reassign: bool = True
    allow_comments: bool = True
    allow_attachments: bool = True


class StepTemplate(BaseModel):
    """One stage of a workflow template"""
    model_config = ConfigDict(extra="forbid")

    step_id: str = Field(..., min_length=1, description="Unique step ID within the template")
    name: str = Field(..., description="Display name")
    kind: StepKind = Field(default=StepKind.APPROVAL)
    order: int = Field(..., description="Order index, unique within template")
    required: bool = Field(default=True)
    assignees: List[AssigneeRef] = Field(default_factory=list)
    conditions: List[Condition] = Field(default_factory=list, description="Gate for whether the step applies")
    actions: List[Action] = Field(default_factory=list, description="Run when the workflow completes")
    timeout: Optional[TimeoutPolicy] = None
    settings: StepSettings = Field(default_factory=StepSettings)


class AutoArchivePolicy(BaseModel):
    """Archival hint for external housekeeping"""
    enabled: bool = False
    after_days: int = Field(30, ge=1)


class WorkflowSettings(BaseModel):
    """Template-wide settings"""
    allow_resubmission: bool = True
    require_comments: bool = False
    notify_submitter: bool = True
    escalation_enabled: bool = True
    auto_archive: AutoArchivePolicy = Field(default_factory=AutoArchivePolicy)


class WorkflowTemplate(BaseModel):
    """Immutable, versioned workflow definition"""
    model_config = ConfigDict(extra="ignore")

    template_id: str = Field(..., description="Stable template family ID")
    version: int = Field(default=1, ge=1, description="Definition version")
    name: str
    description: Optional[str] = None
    form_id: Optional[str] = None
    tenant_id: str
    active: bool = True
    steps: List[StepTemplate] = Field(default_factory=list)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    created_by: Optional[str] = None
    created_at: datetime

    def get_step(self, step_id: str) -> Optional[StepTemplate]:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None


# ============================================================================
# Executions
# ============================================================================

class StepExecution(BaseModel):
    """Runtime state of one template step inside one execution"""
    model_config = ConfigDict(extra="ignore")

    step_id: str
    status: StepStatus = StepStatus.PENDING
    assigned_to: List[str] = Field(default_factory=list, description="Assignee snapshot taken at activation")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    decision: Optional[Decision] = None
    comments: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    timeout_at: Optional[datetime] = None
    escalated_to: List[str] = Field(default_factory=list)
    escalated_at: Optional[datetime] = None


class ExecutionMetadata(BaseModel):
    """Bookkeeping for an execution"""
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    estimated_duration: float = Field(0, description="Estimated hours")
    actual_duration: Optional[float] = Field(None, description="Actual hours, set on completion")
    resubmission_count: int = 0


class WorkflowExecution(BaseModel):
    """One running instance of a template against one submission"""
    model_config = ConfigDict(extra="ignore")

    execution_id: str
    template_id: str
    template_version: int
    submission_id: str
    tenant_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: int = 0
    steps: List[StepExecution] = Field(default_factory=list)
    submitted_by: str
    submitted_at: datetime
    completed_at: Optional[datetime] = None
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)
    version: int = Field(default=1, description="Optimistic concurrency version")

    def find_step(self, step_id: str) -> Optional[StepExecution]:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None


class Comment(BaseModel):
    """Append-only remark on an execution step"""
    model_config = ConfigDict(extra="ignore")

    comment_id: str
    execution_id: str
    step_id: str
    user_id: str
    comment: str
    attachments: List[str] = Field(default_factory=list)
    is_internal: bool = False
    created_at: datetime


class ExecutionView(BaseModel):
    """Execution with its comment thread"""
    execution: WorkflowExecution
    comments: List[Comment] = Field(default_factory=list)


# ============================================================================
# Collaborator payloads
# ============================================================================

class Submission(BaseModel):
    """The thing being reviewed (file or form submission)"""
    model_config = ConfigDict(extra="ignore")

    submission_id: str
    tenant_id: Optional[str] = None
    submitted_by: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class Notification(BaseModel):
    """Message handed to the notification dispatcher"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    tenant_id: str
    template_key: NotificationTemplateKey
    recipients: List[str]
    title: str
    message: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    channels: List[NotificationChannel] = Field(default_factory=lambda: [NotificationChannel.IN_APP])
    priority: Priority = Priority.MEDIUM
    action_url: Optional[str] = None
    execution_id: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING
    sent_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime


class SweepOutcome(BaseModel):
    """One step handled by a sweeper run"""
    execution_id: str
    step_id: str
    action: TimeoutAction
    assigned_to: List[str] = Field(default_factory=list)


# ============================================================================
# QC Revision Ladder
# ============================================================================

class StageConfig(BaseModel):
    """Per-tenant stage configuration"""
    name: QCStage
    display_name: str
    order: int
    is_active: bool = True


class StageTransition(BaseModel):
    """History record of one QC stage move"""
    transition_id: str
    file_id: str
    tenant_id: str
    from_stage: Optional[QCStage] = None
    to_stage: QCStage
    action: QCAction
    reviewer_id: Optional[str] = None
    comments: Optional[str] = None
    created_at: datetime


class FileWorkflowStatus(BaseModel):
    """Current QC position of a file"""
    model_config = ConfigDict(extra="ignore")

    file_id: str
    tenant_id: str
    original_name: Optional[str] = None
    current_stage: QCStage = QCStage.UPLOADED
    revision_count: int = 0
    assigned_to: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    history: List[StageTransition] = Field(default_factory=list)


class QCStats(BaseModel):
    """Aggregate QC ladder numbers for a tenant"""
    total_files: int
    by_stage: Dict[str, int]
    avg_revisions: float
    completion_rate: float
