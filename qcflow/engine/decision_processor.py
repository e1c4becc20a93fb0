"""Decision Processor - Validate and apply a decision to an active step"""
from datetime import datetime
from typing import List, Optional, Tuple

from ..domain.models import WorkflowExecution, WorkflowTemplate, StepExecution, StepTemplate
from ..domain.enums import Decision, StepStatus
from ..domain.errors import (
    StepNotFoundError, StepNotInProgressError, UserNotAssignedError, ValidationError
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Author recorded on decisions synthesized by the timeout sweeper
SYSTEM_ACTOR = "system"

DECISION_TO_STATUS = {
    Decision.APPROVE: StepStatus.APPROVED,
    Decision.REJECT: StepStatus.REJECTED,
    # The step stays pending; the caller rewinds the execution
    Decision.REQUEST_CHANGES: StepStatus.PENDING,
}


class DecisionProcessor:
    """
    Enforces one decision per step

    The in-progress check is the compare-and-swap guard: callers hold the
    execution lock, so a second decision on the same step always sees the
    first one's result and fails with StepNotInProgressError.
    """

    def apply(
        self,
        execution: WorkflowExecution,
        template: WorkflowTemplate,
        step_id: str,
        decision: Decision,
        user_id: str,
        now: datetime,
        comment: Optional[str] = None,
        attachments: Optional[List[str]] = None,
        system: bool = False
    ) -> Tuple[StepExecution, StepTemplate]:
        """
        Validate and record a decision

        Args:
            execution: Execution to mutate
            template: Pinned template version
            step_id: Step being decided
            decision: approve / reject / request_changes
            user_id: Deciding user
            now: Decision timestamp
            comment: Optional free-text comment
            attachments: Optional attachment references
            system: Skip the assignee check (timeout auto-decisions only)

        Returns:
            The updated step execution and its template
        """
        step_exec = execution.find_step(step_id)
        step = template.get_step(step_id)
        if step_exec is None or step is None:
            raise StepNotFoundError(
                f"Step {step_id} not found in execution {execution.execution_id}",
                details={"execution_id": execution.execution_id, "step_id": step_id}
            )

        if step_exec.status != StepStatus.IN_PROGRESS:
            raise StepNotInProgressError(
                "Step is not in progress",
                details={"step_id": step_id, "status": step_exec.status.value}
            )

        if not system and user_id not in step_exec.assigned_to:
            raise UserNotAssignedError(
                f"User {user_id} is not assigned to step {step_id}",
                details={"step_id": step_id, "user_id": user_id}
            )

        if not system and template.settings.require_comments and not (comment or "").strip():
            raise ValidationError("A comment is required for this workflow", details={"step_id": step_id})

        if attachments and not step.settings.allow_attachments:
            raise ValidationError("Attachments are not allowed on this step", details={"step_id": step_id})

        step_exec.status = DECISION_TO_STATUS[decision]
        step_exec.decision = decision
        step_exec.completed_by = user_id
        step_exec.completed_at = now
        step_exec.comments = comment
        step_exec.attachments = list(attachments or [])

        logger.info(
            f"Step {step_id} decided: {decision.value}",
            extra={
                "execution_id": execution.execution_id,
                "step_id": step_id,
                "user_id": user_id,
                "decision": decision.value
            }
        )
        return step_exec, step
