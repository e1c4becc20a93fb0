"""Store protocols - persistence contract consumed by the engine"""
from datetime import datetime
from typing import ContextManager, List, Optional, Protocol

from ..domain.models import (
    WorkflowTemplate, WorkflowExecution, Comment,
    FileWorkflowStatus, StageTransition, StageConfig
)
from ..domain.enums import ExecutionStatus, QCStage


class WorkflowStore(Protocol):
    """Templates, executions and comments, keyed by generated ID and scoped by tenant"""

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Persist a new template version (never overwrites an existing one)."""

    def get_template(self, template_id: str, version: Optional[int] = None) -> Optional[WorkflowTemplate]:
        """Return the pinned version, or the latest one when version is None."""

    def list_templates(self, tenant_id: Optional[str] = None, active_only: bool = False) -> List[WorkflowTemplate]:
        """Return the latest version of every template."""

    def set_template_active(self, template_id: str, active: bool) -> WorkflowTemplate:
        """Flip the active flag on every version of a template."""

    def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist a new execution."""

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Return an execution by ID."""

    def update_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """
        Write the execution back if the stored version still equals
        execution.version; bumps the version on success and raises
        ConcurrencyError otherwise.
        """

    def list_executions(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100
    ) -> List[WorkflowExecution]:
        """List executions, newest first."""

    def find_expired_executions(
        self, now: datetime, limit: int = 100, after: Optional[str] = None
    ) -> List[WorkflowExecution]:
        """In-progress executions holding an in-progress step with timeout_at <= now,
        ordered by execution_id and starting after the given id."""

    def add_comment(self, comment: Comment) -> Comment:
        """Append a comment."""

    def list_comments(self, execution_id: str) -> List[Comment]:
        """Comments of an execution in creation order."""

    def lock(self, key: str) -> ContextManager[None]:
        """Serialize every read-decide-write sequence on one execution."""


class QCStore(Protocol):
    """File QC ladder state"""

    def create_file_status(self, status: FileWorkflowStatus) -> FileWorkflowStatus:
        """Persist the QC status of a newly uploaded file."""

    def get_file_status(self, file_id: str) -> Optional[FileWorkflowStatus]:
        """Return current QC status (without history)."""

    def save_file_status(self, status: FileWorkflowStatus) -> FileWorkflowStatus:
        """Overwrite the current QC status of a file."""

    def list_file_statuses(self, tenant_id: str, stage: Optional[QCStage] = None) -> List[FileWorkflowStatus]:
        """Files of a tenant, newest first."""

    def add_transition(self, transition: StageTransition) -> StageTransition:
        """Append a stage transition record."""

    def list_transitions(self, file_id: str) -> List[StageTransition]:
        """Transitions of a file, oldest first."""

    def get_stage_configs(self, tenant_id: str) -> List[StageConfig]:
        """Stage configuration of a tenant ordered by stage order."""

    def save_stage_configs(self, tenant_id: str, configs: List[StageConfig]) -> None:
        """Store the stage configuration of a tenant."""

    def lock(self, key: str) -> ContextManager[None]:
        """Serialize mutations of one file."""
