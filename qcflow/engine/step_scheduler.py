"""Step Scheduler - Locate and activate the next pending step"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .assignee_resolver import AssigneeResolver
from .condition_evaluator import ConditionEvaluator
from ..domain.models import WorkflowExecution, WorkflowTemplate, StepTemplate, StepExecution
from ..domain.enums import ExecutionStatus, StepStatus
from ..utils.time import add_hours, hours_between
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AdvanceResult:
    """Outcome of one scheduler pass"""
    activated: Optional[StepExecution] = None
    step_template: Optional[StepTemplate] = None
    skipped: List[str] = field(default_factory=list)
    completed: bool = False


def compute_deadline(step: StepTemplate, started_at: datetime) -> Optional[datetime]:
    """Deadline for an activated step, or None when it has no timeout policy"""
    if step.timeout is None:
        return None
    return add_hours(started_at, step.timeout.duration_hours)


class StepScheduler:
    """
    Drives an execution forward one activation at a time

    Steps are scanned positionally; StepExecution[i] always mirrors
    template.steps[i]. The scheduler only mutates the execution object; the
    caller persists it and sends notifications.
    """

    def __init__(self, evaluator: ConditionEvaluator, resolver: AssigneeResolver):
        self.evaluator = evaluator
        self.resolver = resolver

    def advance(
        self,
        execution: WorkflowExecution,
        template: WorkflowTemplate,
        data: Optional[Dict[str, Any]],
        now: datetime
    ) -> AdvanceResult:
        """
        Activate the first applicable pending step, skipping those whose
        conditions fail, or complete the execution when none is left.

        Args:
            execution: Execution to mutate
            template: Pinned template version
            data: Submission snapshot; None means it could not be loaded and
                every step is treated as applicable
            now: Activation timestamp

        Returns:
            AdvanceResult describing what happened
        """
        result = AdvanceResult()

        for index, step_exec in enumerate(execution.steps):
            if step_exec.status != StepStatus.PENDING:
                continue

            step = template.steps[index]

            if data is not None and not self.evaluator.evaluate(step.conditions, data):
                self._skip(step_exec)
                result.skipped.append(step.step_id)
                logger.info(
                    f"Skipped step {step.step_id}: conditions not met",
                    extra={"execution_id": execution.execution_id, "step_id": step.step_id}
                )
                continue

            assignees = self.resolver.resolve(step.assignees, execution.tenant_id, data)

            if not assignees and not step.required:
                self._skip(step_exec)
                result.skipped.append(step.step_id)
                logger.info(
                    f"Skipped optional step {step.step_id}: no assignees resolved",
                    extra={"execution_id": execution.execution_id, "step_id": step.step_id}
                )
                continue

            if not assignees:
                logger.warning(
                    f"Required step {step.step_id} activated without assignees",
                    extra={"execution_id": execution.execution_id, "step_id": step.step_id}
                )

            self._activate(step_exec, step, assignees, now)
            execution.current_step = index
            execution.status = ExecutionStatus.IN_PROGRESS

            logger.info(
                f"Activated step {step.step_id}",
                extra={
                    "execution_id": execution.execution_id,
                    "step_id": step.step_id,
                    "status": execution.status.value
                }
            )
            result.activated = step_exec
            result.step_template = step
            return result

        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = now
        execution.metadata.actual_duration = round(hours_between(execution.submitted_at, now), 2)
        result.completed = True

        logger.info(
            f"Execution completed: {execution.execution_id}",
            extra={"execution_id": execution.execution_id, "status": execution.status.value}
        )
        return result

    def rewind(self, execution: WorkflowExecution) -> List[str]:
        """
        Reset forward progress after a change request

        Every in-progress or approved step goes back to pending with its
        completion metadata cleared. Skipped steps stay skipped. Returns the
        IDs of the steps that were reset.
        """
        reset = []
        for step_exec in execution.steps:
            if step_exec.status in (StepStatus.IN_PROGRESS, StepStatus.APPROVED):
                step_exec.status = StepStatus.PENDING
                step_exec.decision = None
                step_exec.completed_at = None
                step_exec.completed_by = None
                step_exec.timeout_at = None
                step_exec.escalated_at = None
                reset.append(step_exec.step_id)

        execution.status = ExecutionStatus.PENDING
        execution.current_step = 0

        logger.info(
            f"Rewound execution {execution.execution_id}; reset {len(reset)} step(s)",
            extra={"execution_id": execution.execution_id, "status": execution.status.value}
        )
        return reset

    @staticmethod
    def _skip(step_exec: StepExecution) -> None:
        step_exec.status = StepStatus.SKIPPED
        step_exec.assigned_to = []

    @staticmethod
    def _activate(step_exec: StepExecution, step: StepTemplate, assignees: List[str], now: datetime) -> None:
        step_exec.status = StepStatus.IN_PROGRESS
        step_exec.assigned_to = assignees
        step_exec.started_at = now
        step_exec.completed_at = None
        step_exec.completed_by = None
        step_exec.decision = None
        step_exec.timeout_at = compute_deadline(step, now)
        step_exec.escalated_to = []
        step_exec.escalated_at = None
