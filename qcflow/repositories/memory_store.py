"""In-memory stores

Useful for tests or when no database is configured. Data is not persisted
across process restarts. Every read and write copies the model so callers
never share mutable state with the store.
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..domain.models import (
    WorkflowTemplate, WorkflowExecution, Comment,
    FileWorkflowStatus, StageTransition, StageConfig
)
from ..domain.enums import ExecutionStatus, StepStatus, QCStage
from ..domain.errors import (
    ConcurrencyError, ExecutionNotFoundError, TemplateNotFoundError,
    FileNotFoundInWorkflowError
)
from ..utils.time import ensure_utc
from .locking import KeyedLock


class InMemoryWorkflowStore:
    """Dict-backed WorkflowStore"""

    def __init__(self):
        self._templates: Dict[Tuple[str, int], WorkflowTemplate] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._comments: Dict[str, List[Comment]] = {}
        self._lock = KeyedLock()

    # =========================================================================
    # Templates
    # =========================================================================

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        key = (template.template_id, template.version)
        if key in self._templates:
            raise ConcurrencyError(
                f"Template {template.template_id} version {template.version} already exists",
                details={"template_id": template.template_id, "version": template.version}
            )
        self._templates[key] = template.model_copy(deep=True)
        return template

    def get_template(self, template_id: str, version: Optional[int] = None) -> Optional[WorkflowTemplate]:
        if version is not None:
            template = self._templates.get((template_id, version))
            return template.model_copy(deep=True) if template else None

        versions = [t for (tid, _), t in self._templates.items() if tid == template_id]
        if not versions:
            return None
        return max(versions, key=lambda t: t.version).model_copy(deep=True)

    def list_templates(self, tenant_id: Optional[str] = None, active_only: bool = False) -> List[WorkflowTemplate]:
        latest: Dict[str, WorkflowTemplate] = {}
        for (template_id, version), template in self._templates.items():
            if template_id not in latest or latest[template_id].version < version:
                latest[template_id] = template

        templates = [
            t.model_copy(deep=True) for t in latest.values()
            if (tenant_id is None or t.tenant_id == tenant_id) and (not active_only or t.active)
        ]
        return sorted(templates, key=lambda t: t.created_at, reverse=True)

    def set_template_active(self, template_id: str, active: bool) -> WorkflowTemplate:
        found = False
        for (tid, _), template in self._templates.items():
            if tid == template_id:
                template.active = active
                found = True
        if not found:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        return self.get_template(template_id)

    # =========================================================================
    # Executions
    # =========================================================================

    def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        self._executions[execution.execution_id] = execution.model_copy(deep=True)
        self._comments.setdefault(execution.execution_id, [])
        return execution

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    def update_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        stored = self._executions.get(execution.execution_id)
        if stored is None:
            raise ExecutionNotFoundError(f"Execution {execution.execution_id} not found")
        if stored.version != execution.version:
            raise ConcurrencyError(
                f"Execution {execution.execution_id} was modified. Please refresh and try again.",
                details={"expected_version": execution.version, "actual_version": stored.version}
            )

        execution.version += 1
        self._executions[execution.execution_id] = execution.model_copy(deep=True)
        return execution

    def list_executions(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100
    ) -> List[WorkflowExecution]:
        executions = [
            e for e in self._executions.values()
            if (tenant_id is None or e.tenant_id == tenant_id) and (status is None or e.status == status)
        ]
        executions.sort(key=lambda e: e.submitted_at, reverse=True)
        return [e.model_copy(deep=True) for e in executions[:limit]]

    def find_expired_executions(
        self, now: datetime, limit: int = 100, after: Optional[str] = None
    ) -> List[WorkflowExecution]:
        expired = []
        for execution_id in sorted(self._executions):
            execution = self._executions[execution_id]
            if after is not None and execution_id <= after:
                continue
            if execution.status != ExecutionStatus.IN_PROGRESS:
                continue
            if any(
                step.status == StepStatus.IN_PROGRESS
                and step.timeout_at is not None
                and ensure_utc(step.timeout_at) <= now
                for step in execution.steps
            ):
                expired.append(execution.model_copy(deep=True))
            if len(expired) >= limit:
                break
        return expired

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(self, comment: Comment) -> Comment:
        self._comments.setdefault(comment.execution_id, []).append(comment.model_copy(deep=True))
        return comment

    def list_comments(self, execution_id: str) -> List[Comment]:
        return [c.model_copy(deep=True) for c in self._comments.get(execution_id, [])]

    def lock(self, key: str):
        return self._lock(key)


class InMemoryQCStore:
    """Dict-backed QCStore"""

    def __init__(self):
        self._files: Dict[str, FileWorkflowStatus] = {}
        self._transitions: Dict[str, List[StageTransition]] = {}
        self._stages: Dict[str, List[StageConfig]] = {}
        self._lock = KeyedLock()

    def create_file_status(self, status: FileWorkflowStatus) -> FileWorkflowStatus:
        self._files[status.file_id] = status.model_copy(deep=True, update={"history": []})
        return status

    def get_file_status(self, file_id: str) -> Optional[FileWorkflowStatus]:
        status = self._files.get(file_id)
        return status.model_copy(deep=True) if status else None

    def save_file_status(self, status: FileWorkflowStatus) -> FileWorkflowStatus:
        if status.file_id not in self._files:
            raise FileNotFoundInWorkflowError(f"File {status.file_id} not found")
        self._files[status.file_id] = status.model_copy(deep=True, update={"history": []})
        return status

    def list_file_statuses(self, tenant_id: str, stage: Optional[QCStage] = None) -> List[FileWorkflowStatus]:
        files = [
            f for f in self._files.values()
            if f.tenant_id == tenant_id and (stage is None or f.current_stage == stage)
        ]
        files.sort(key=lambda f: f.created_at, reverse=True)
        return [f.model_copy(deep=True) for f in files]

    def add_transition(self, transition: StageTransition) -> StageTransition:
        self._transitions.setdefault(transition.file_id, []).append(transition.model_copy(deep=True))
        return transition

    def list_transitions(self, file_id: str) -> List[StageTransition]:
        return [t.model_copy(deep=True) for t in self._transitions.get(file_id, [])]

    def get_stage_configs(self, tenant_id: str) -> List[StageConfig]:
        configs = self._stages.get(tenant_id, [])
        return sorted((c.model_copy() for c in configs), key=lambda c: c.order)

    def save_stage_configs(self, tenant_id: str, configs: List[StageConfig]) -> None:
        self._stages[tenant_id] = [c.model_copy() for c in configs]

    def lock(self, key: str):
        return self._lock(key)
