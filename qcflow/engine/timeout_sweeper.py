"""Timeout Sweeper - Apply timeout policies to expired steps

Runs on an interval (see scheduler.sweeper_scheduler) or on demand. Every
expired in-progress step gets its template's timeout action:

- escalate: assignees replaced by the escalation targets, deadline restamped
- auto_approve / auto_reject: system decision through the engine's locked
  decision path
- notify: reminder to the current assignees, no state change

Expired executions are read in pages ordered by execution id, so steps that
stay expired (reminders, guarded escalations) never hide later ones.
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from .assignee_resolver import AssigneeResolver
from .collaborators import SubmissionSource
from .notification_adapter import NotificationAdapter
from .step_scheduler import compute_deadline
from ..domain.models import SweepOutcome, WorkflowExecution, WorkflowTemplate, StepTemplate, StepExecution
from ..domain.enums import Decision, StepStatus, TimeoutAction
from ..domain.errors import DomainError, TemplateNotFoundError
from ..repositories.base import WorkflowStore
from ..utils.time import ensure_utc, is_expired
from ..utils.logger import get_logger

logger = get_logger(__name__)

# (started_at, timeout_at) of one activation of a step
ActivationStamp = Tuple[Optional[datetime], Optional[datetime]]

# (execution_id, step_id, decision, comment, expected activation) -> updated execution, or None if stale
DecideFn = Callable[[str, str, Decision, str, ActivationStamp], Optional[WorkflowExecution]]


def activation_stamp(step_exec: StepExecution) -> ActivationStamp:
    """Identify the current activation; a rewind and reactivation changes it"""
    started_at = ensure_utc(step_exec.started_at) if step_exec.started_at else None
    timeout_at = ensure_utc(step_exec.timeout_at) if step_exec.timeout_at else None
    return started_at, timeout_at


class TimeoutSweeper:
    """Finds expired steps and applies their timeout action"""

    def __init__(
        self,
        store: WorkflowStore,
        resolver: AssigneeResolver,
        notifier: NotificationAdapter,
        submissions: SubmissionSource,
        decide: DecideFn,
        clock: Callable[[], datetime],
        reminder_interval: timedelta = timedelta(minutes=60),
        batch_size: int = 100
    ):
        self.store = store
        self.resolver = resolver
        self.notifier = notifier
        self.submissions = submissions
        self.decide = decide
        self.clock = clock
        self.reminder_interval = reminder_interval
        self.batch_size = batch_size
        self._last_reminded: Dict[Tuple[str, str], datetime] = {}  # Track last reminder sent per step

    def sweep(self) -> List[SweepOutcome]:
        """
        Run one sweep over every execution with an expired step

        Returns:
            One outcome per step that was escalated, auto-decided or reminded
        """
        now = self.clock()
        outcomes: List[SweepOutcome] = []
        still_expired: Set[Tuple[str, str]] = set()
        after: Optional[str] = None

        while True:
            page = self.store.find_expired_executions(now, limit=self.batch_size, after=after)
            for execution in page:
                for step_exec in execution.steps:
                    if step_exec.status != StepStatus.IN_PROGRESS or not is_expired(step_exec.timeout_at, now):
                        continue
                    still_expired.add((execution.execution_id, step_exec.step_id))
                    outcome = self._sweep_step(execution, step_exec, now)
                    if outcome:
                        outcomes.append(outcome)
            if len(page) < self.batch_size:
                break
            after = page[-1].execution_id

        self._prune_reminders(still_expired)

        if outcomes:
            logger.info(f"Timeout sweep handled {len(outcomes)} step(s)")
        return outcomes

    def _sweep_step(self, execution: WorkflowExecution, step_exec: StepExecution, now: datetime) -> Optional[SweepOutcome]:
        try:
            return self._handle_step(execution, step_exec, now)
        except DomainError as e:
            # Lost a race with a human decision or a collaborator failed; next sweep retries
            logger.warning(
                f"Sweep of step {step_exec.step_id} failed: {e.message}",
                extra={
                    "execution_id": execution.execution_id,
                    "step_id": step_exec.step_id,
                    "error_code": e.error_code
                }
            )
            return None

    def _prune_reminders(self, still_expired: Set[Tuple[str, str]]) -> None:
        # Steps decided, reactivated or escalated since their last reminder start over
        for key in list(self._last_reminded):
            if key not in still_expired:
                del self._last_reminded[key]

    def _handle_step(
        self,
        execution: WorkflowExecution,
        step_exec: StepExecution,
        now: datetime
    ) -> Optional[SweepOutcome]:
        step_id = step_exec.step_id
        template = self.store.get_template(execution.template_id, execution.template_version)
        if template is None:
            raise TemplateNotFoundError(
                f"Template {execution.template_id} v{execution.template_version} not found"
            )

        step = template.get_step(step_id)
        if step is None or step.timeout is None:
            return None

        action = step.timeout.action
        if action == TimeoutAction.ESCALATE and not template.settings.escalation_enabled:
            action = TimeoutAction.NOTIFY

        if action in (TimeoutAction.AUTO_APPROVE, TimeoutAction.AUTO_REJECT):
            if action == TimeoutAction.AUTO_APPROVE:
                decision, comment = Decision.APPROVE, "Automatically approved after timeout"
            else:
                decision, comment = Decision.REJECT, "Automatically rejected after timeout"
            updated = self.decide(execution.execution_id, step_id, decision, comment, activation_stamp(step_exec))
            if updated is None:
                return None
            return self._outcome(updated, step_id, action)

        if action == TimeoutAction.ESCALATE:
            return self._escalate(execution.execution_id, template, step, now)

        return self._remind(execution, step, now)

    def _escalate(
        self,
        execution_id: str,
        template: WorkflowTemplate,
        step: StepTemplate,
        now: datetime
    ) -> Optional[SweepOutcome]:
        with self.store.lock(execution_id):
            execution = self.store.get_execution(execution_id)
            if execution is None:
                return None
            step_exec = execution.find_step(step.step_id)
            if step_exec is None or step_exec.status != StepStatus.IN_PROGRESS:
                return None
            if not is_expired(step_exec.timeout_at, now):
                return None
            # Already escalated within this expiry window
            if step_exec.escalated_at and ensure_utc(step_exec.escalated_at) >= ensure_utc(step_exec.timeout_at):
                return None

            submission = self.submissions.get_submission(execution.submission_id)
            data = submission.data if submission else None
            targets = self.resolver.resolve(step.timeout.escalate_to, execution.tenant_id, data)

            if targets:
                step_exec.assigned_to = targets
            else:
                logger.warning(
                    f"Escalation of step {step.step_id} resolved no targets; keeping current assignees",
                    extra={"execution_id": execution_id, "step_id": step.step_id}
                )
            step_exec.escalated_to = targets
            step_exec.escalated_at = now
            step_exec.timeout_at = compute_deadline(step, now)

            self.store.update_execution(execution)

        logger.info(
            f"Escalated step {step.step_id} to {len(targets)} user(s)",
            extra={"execution_id": execution_id, "step_id": step.step_id}
        )
        self.notifier.step_escalated(execution, step, targets or step_exec.assigned_to)

        return SweepOutcome(
            execution_id=execution_id,
            step_id=step.step_id,
            action=TimeoutAction.ESCALATE,
            assigned_to=step_exec.assigned_to
        )

    def _remind(self, execution: WorkflowExecution, step: StepTemplate, now: datetime) -> Optional[SweepOutcome]:
        key = (execution.execution_id, step.step_id)
        last_reminder = self._last_reminded.get(key)
        if last_reminder and now - last_reminder < self.reminder_interval:
            return None

        step_exec = execution.find_step(step.step_id)
        self.notifier.step_reminder(execution, step, step_exec.assigned_to)
        self._last_reminded[key] = now

        return SweepOutcome(
            execution_id=execution.execution_id,
            step_id=step.step_id,
            action=TimeoutAction.NOTIFY,
            assigned_to=step_exec.assigned_to
        )

    @staticmethod
    def _outcome(execution: WorkflowExecution, step_id: str, action: TimeoutAction) -> SweepOutcome:
        step_exec = execution.find_step(step_id)
        return SweepOutcome(
            execution_id=execution.execution_id,
            step_id=step_id,
            action=action,
            assigned_to=step_exec.assigned_to if step_exec else []
        )
