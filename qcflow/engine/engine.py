"""
Workflow Engine - The Brain of the System

This module contains the WorkflowEngine class that drives a submission
through the ordered steps of a workflow template.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor wiring store, collaborators and components

2. EXECUTION START
   - start_workflow: create an execution and activate its first step
   - estimate_duration: hours estimate from step kinds

3. DECISIONS
   - process_step: public decision entry point
   - _decide_as_system: timeout auto-decisions
   - _decide: locked read-decide-write shared by both
   - _after_decision: approve / reject / request_changes branches

4. EXECUTION LIFECYCLE
   - resubmit, reassign_step, cancel_workflow

5. QUERIES & COMMENTS
   - get_execution, list_executions, add_comment

6. TIMEOUTS
   - sweep_timeouts

=============================================================================
CONCURRENCY
=============================================================================

Every mutation runs inside store.lock(execution_id) around the full
read-decide-write sequence, and the store rejects stale versions. Side
effects (notifications, completion actions) are collected while the lock
is held and run only after the write commits; their failures are logged
and never reach the state machine.

=============================================================================
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .action_executor import ActionExecutor
from .assignee_resolver import AssigneeResolver
from .collaborators import IdentityResolver, NotificationDispatcher, RecordUpdater, SubmissionSource
from .condition_evaluator import ConditionEvaluator
from .decision_processor import DecisionProcessor, SYSTEM_ACTOR
from .notification_adapter import NotificationAdapter
from .step_scheduler import StepScheduler, AdvanceResult
from .timeout_sweeper import ActivationStamp, TimeoutSweeper, activation_stamp
from ..domain.models import (
    WorkflowTemplate, WorkflowExecution, StepExecution, StepTemplate, ExecutionMetadata,
    ExecutionView, Comment, SweepOutcome
)
from ..domain.enums import Decision, ExecutionStatus, Priority, StepKind, StepStatus
from ..domain.errors import (
    ExecutionNotFoundError, InvalidStateError, PermissionDeniedError,
    StepNotFoundError, StepNotInProgressError, SubmissionNotFoundError,
    TemplateInactiveError, TemplateNotFoundError, UserNotAssignedError, ValidationError
)
from ..repositories.base import WorkflowStore
from ..config.settings import settings
from ..utils.idgen import generate_comment_id, generate_execution_id
from ..utils.time import hours_between, is_expired, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Base hours per step kind for the estimated duration
STEP_KIND_HOURS: Dict[StepKind, float] = {
    StepKind.APPROVAL: 4,
    StepKind.REVIEW: 2,
    StepKind.NOTIFICATION: 0.1,
    StepKind.CONDITION: 0.1,
    StepKind.ACTION: 0.5,
}

Effect = Callable[[], Any]


class WorkflowEngine:
    """
    The Workflow Engine - Central orchestrator for workflow executions

    Responsibilities:
    - Create executions pinned to a template version
    - Activate steps in template order, skipping those whose conditions fail
    - Apply decisions with a one-decision-per-step guarantee
    - Rewind on change requests, reject, complete and run completion actions
    - Apply timeout policies through the sweeper
    """

    def __init__(
        self,
        store: WorkflowStore,
        identity: IdentityResolver,
        dispatcher: NotificationDispatcher,
        submissions: SubmissionSource,
        updater: Optional[RecordUpdater] = None,
        clock: Optional[Callable[[], datetime]] = None,
        action_executor: Optional[ActionExecutor] = None,
        reminder_interval_minutes: Optional[int] = None
    ):
        self.store = store
        self.submissions = submissions
        self.clock = clock or utc_now

        self.condition_evaluator = ConditionEvaluator()
        self.assignee_resolver = AssigneeResolver(identity, self.condition_evaluator)
        self.scheduler = StepScheduler(self.condition_evaluator, self.assignee_resolver)
        self.decision_processor = DecisionProcessor()
        self.notifier = NotificationAdapter(dispatcher)
        self.actions = action_executor or ActionExecutor(self.notifier, updater)

        interval = reminder_interval_minutes
        if interval is None:
            interval = settings.reminder_interval_minutes
        self.sweeper = TimeoutSweeper(
            store=store,
            resolver=self.assignee_resolver,
            notifier=self.notifier,
            submissions=submissions,
            decide=self._decide_as_system,
            clock=self.clock,
            reminder_interval=timedelta(minutes=interval)
        )

    # =========================================================================
    # Execution Start
    # =========================================================================

    def start_workflow(
        self,
        template_id: str,
        submission_id: str,
        submitted_by: str,
        tenant_id: Optional[str] = None,
        priority: Priority = Priority.MEDIUM,
        tags: Optional[List[str]] = None
    ) -> WorkflowExecution:
        """
        Start a workflow for a submission

        Algorithm:
        1. Load the latest template version; it must be active
        2. Load the submission snapshot
        3. Create the execution with one pending StepExecution per template step
        4. Run the scheduler to activate the first applicable step
        5. Notify the assignees

        Returns:
            The execution after its first step was activated
        """
        template = self.store.get_template(template_id)
        if template is None or (tenant_id and template.tenant_id != tenant_id):
            raise TemplateNotFoundError(f"Template {template_id} not found")
        if not template.active:
            raise TemplateInactiveError(f"Template {template_id} is not active")

        submission = self.submissions.get_submission(submission_id)
        # Other tenants' submissions are reported as missing
        if submission is None or (submission.tenant_id and submission.tenant_id != template.tenant_id):
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")

        now = self.clock()
        execution = WorkflowExecution(
            execution_id=generate_execution_id(),
            template_id=template.template_id,
            template_version=template.version,
            submission_id=submission_id,
            tenant_id=template.tenant_id,
            status=ExecutionStatus.PENDING,
            current_step=0,
            steps=[StepExecution(step_id=step.step_id) for step in template.steps],
            submitted_by=submitted_by,
            submitted_at=now,
            metadata=ExecutionMetadata(
                priority=priority,
                tags=list(tags or []),
                estimated_duration=self.estimate_duration(template)
            )
        )
        self.store.create_execution(execution)

        logger.info(
            f"Started workflow {template.template_id} v{template.version}",
            extra={
                "execution_id": execution.execution_id,
                "template_id": template.template_id,
                "tenant_id": template.tenant_id,
                "user_id": submitted_by
            }
        )

        effects: List[Effect] = []
        with self.store.lock(execution.execution_id):
            result = self.scheduler.advance(execution, template, submission.data, now)
            self._queue_advance_effects(effects, execution, template, result)
            self.store.update_execution(execution)

        self._run_effects(effects)
        return execution

    @staticmethod
    def estimate_duration(template: WorkflowTemplate) -> float:
        """Estimated hours to complete, from the kinds of its steps"""
        return round(sum(STEP_KIND_HOURS.get(step.kind, 1) for step in template.steps), 2)

    # =========================================================================
    # Decisions
    # =========================================================================

    def process_step(
        self,
        execution_id: str,
        step_id: str,
        decision: Decision,
        user_id: str,
        comment: Optional[str] = None,
        attachments: Optional[List[str]] = None,
        tenant_id: Optional[str] = None
    ) -> WorkflowExecution:
        """
        Apply a human decision to an active step

        Raises:
            ExecutionNotFoundError / StepNotFoundError: unknown IDs
            StepNotInProgressError: step already decided or not active
            UserNotAssignedError: user not in the step's assignee snapshot
        """
        return self._decide(
            execution_id, step_id, decision, user_id,
            comment=comment, attachments=attachments, tenant_id=tenant_id
        )

    def _decide_as_system(
        self,
        execution_id: str,
        step_id: str,
        decision: Decision,
        comment: str,
        expected: ActivationStamp
    ) -> Optional[WorkflowExecution]:
        """
        Timeout decision for the activation the sweeper read

        Returns None without deciding when, under the lock, the step is no
        longer that activation or its deadline has not passed.
        """
        return self._decide(
            execution_id, step_id, decision, SYSTEM_ACTOR,
            comment=comment, system=True, expected=expected
        )

    def _decide(
        self,
        execution_id: str,
        step_id: str,
        decision: Decision,
        user_id: str,
        comment: Optional[str] = None,
        attachments: Optional[List[str]] = None,
        tenant_id: Optional[str] = None,
        system: bool = False,
        expected: Optional[ActivationStamp] = None
    ) -> Optional[WorkflowExecution]:
        effects: List[Effect] = []

        with self.store.lock(execution_id):
            execution = self._load_execution(execution_id, tenant_id)
            template = self._load_template(execution)
            now = self.clock()

            if expected is not None and not self._still_due(execution, step_id, expected, now):
                logger.info(
                    f"Skipping timeout decision on step {step_id}: step changed since the sweep read it",
                    extra={"execution_id": execution_id, "step_id": step_id}
                )
                return None

            step_exec, step = self.decision_processor.apply(
                execution, template, step_id, decision, user_id, now,
                comment=comment, attachments=attachments, system=system
            )
            self._after_decision(execution, template, step, decision, user_id, comment, now, effects)
            self.store.update_execution(execution)

            if comment:
                self.store.add_comment(Comment(
                    comment_id=generate_comment_id(),
                    execution_id=execution_id,
                    step_id=step_id,
                    user_id=user_id,
                    comment=comment,
                    attachments=list(attachments or []),
                    created_at=now
                ))

        self._run_effects(effects)
        return execution

    def _after_decision(
        self,
        execution: WorkflowExecution,
        template: WorkflowTemplate,
        step: StepTemplate,
        decision: Decision,
        user_id: str,
        comment: Optional[str],
        now: datetime,
        effects: List[Effect]
    ) -> None:
        if decision == Decision.APPROVE:
            effects.append(lambda: self.notifier.step_decided(execution, template, step, decision, user_id, comment))
            result = self.scheduler.advance(execution, template, self._submission_data(execution), now)
            self._queue_advance_effects(effects, execution, template, result)

        elif decision == Decision.REJECT:
            execution.status = ExecutionStatus.REJECTED
            execution.completed_at = now
            execution.metadata.actual_duration = self._elapsed_hours(execution, now)
            logger.info(
                f"Execution rejected at step {step.step_id}",
                extra={"execution_id": execution.execution_id, "step_id": step.step_id, "user_id": user_id}
            )
            effects.append(lambda: self.notifier.step_decided(execution, template, step, decision, user_id, comment))
            effects.append(lambda: self.notifier.workflow_rejected(execution, template, step, user_id, comment))

        else:
            self.scheduler.rewind(execution)
            effects.append(lambda: self.notifier.changes_requested(execution, step, user_id, comment))

    # =========================================================================
    # Execution Lifecycle
    # =========================================================================

    def resubmit(self, execution_id: str, user_id: str, tenant_id: Optional[str] = None) -> WorkflowExecution:
        """Restart forward progress after a change request (submitter only)"""
        effects: List[Effect] = []

        with self.store.lock(execution_id):
            execution = self._load_execution(execution_id, tenant_id)
            template = self._load_template(execution)

            if not template.settings.allow_resubmission:
                raise InvalidStateError("Resubmission is not allowed for this workflow")
            if execution.submitted_by != user_id:
                raise PermissionDeniedError("Only the submitter can resubmit")
            if execution.status != ExecutionStatus.PENDING:
                raise InvalidStateError(
                    f"Execution is {execution.status.value}; only pending executions can be resubmitted",
                    details={"status": execution.status.value}
                )

            execution.metadata.resubmission_count += 1
            result = self.scheduler.advance(execution, template, self._submission_data(execution), self.clock())
            self._queue_advance_effects(effects, execution, template, result)
            self.store.update_execution(execution)

        logger.info(
            f"Execution resubmitted ({execution.metadata.resubmission_count})",
            extra={"execution_id": execution_id, "user_id": user_id}
        )
        self._run_effects(effects)
        return execution

    def reassign_step(
        self,
        execution_id: str,
        step_id: str,
        actor_id: str,
        new_assignees: List[str],
        tenant_id: Optional[str] = None
    ) -> WorkflowExecution:
        """Replace the assignee snapshot of an active step"""
        assignees = list(dict.fromkeys(a for a in new_assignees if a))
        if not assignees:
            raise ValidationError("At least one assignee is required")

        with self.store.lock(execution_id):
            execution = self._load_execution(execution_id, tenant_id)
            template = self._load_template(execution)
            step_exec = execution.find_step(step_id)
            step = template.get_step(step_id)
            if step_exec is None or step is None:
                raise StepNotFoundError(f"Step {step_id} not found in execution {execution_id}")

            if not step.settings.allow_reassign:
                raise PermissionDeniedError("Reassignment is not allowed for this step")
            if step_exec.status != StepStatus.IN_PROGRESS:
                raise StepNotInProgressError("Step is not in progress", details={"step_id": step_id})
            if actor_id not in step_exec.assigned_to:
                raise UserNotAssignedError(f"User {actor_id} is not assigned to step {step_id}")

            step_exec.assigned_to = assignees
            self.store.update_execution(execution)

        logger.info(
            f"Reassigned step {step_id} to {len(assignees)} user(s)",
            extra={"execution_id": execution_id, "step_id": step_id, "user_id": actor_id}
        )
        self.notifier.step_reassigned(execution, step, assignees, actor_id)
        return execution

    def cancel_workflow(
        self,
        execution_id: str,
        user_id: str,
        reason: Optional[str] = None,
        tenant_id: Optional[str] = None
    ) -> WorkflowExecution:
        """Cancel a non-terminal execution (submitter only)"""
        with self.store.lock(execution_id):
            execution = self._load_execution(execution_id, tenant_id)

            if execution.status.is_terminal:
                raise InvalidStateError(
                    f"Execution is already {execution.status.value}",
                    details={"status": execution.status.value}
                )
            if execution.submitted_by != user_id:
                raise PermissionDeniedError("Only the submitter can cancel this workflow")

            now = self.clock()
            execution.status = ExecutionStatus.CANCELLED
            execution.completed_at = now
            execution.metadata.actual_duration = self._elapsed_hours(execution, now)

            # Active steps will never be decided
            for step_exec in execution.steps:
                if step_exec.status == StepStatus.IN_PROGRESS:
                    step_exec.status = StepStatus.SKIPPED

            self.store.update_execution(execution)

        logger.info(
            f"Execution cancelled: {execution_id}",
            extra={"execution_id": execution_id, "user_id": user_id}
        )
        self.notifier.workflow_cancelled(execution, user_id, reason)
        return execution

    # =========================================================================
    # Queries & Comments
    # =========================================================================

    def get_execution(self, execution_id: str, tenant_id: Optional[str] = None) -> ExecutionView:
        execution = self._load_execution(execution_id, tenant_id)
        return ExecutionView(execution=execution, comments=self.store.list_comments(execution_id))

    def list_executions(
        self,
        tenant_id: str,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100
    ) -> List[WorkflowExecution]:
        return self.store.list_executions(tenant_id=tenant_id, status=status, limit=limit)

    def add_comment(
        self,
        execution_id: str,
        step_id: str,
        user_id: str,
        text: str,
        attachments: Optional[List[str]] = None,
        is_internal: bool = False,
        tenant_id: Optional[str] = None
    ) -> Comment:
        """Append a comment to a step; comments are never edited or deleted"""
        if not (text or "").strip():
            raise ValidationError("Comment text is required")

        execution = self._load_execution(execution_id, tenant_id)
        template = self._load_template(execution)
        step = template.get_step(step_id)
        if execution.find_step(step_id) is None or step is None:
            raise StepNotFoundError(f"Step {step_id} not found in execution {execution_id}")

        if not step.settings.allow_comments:
            raise ValidationError("Comments are not allowed on this step", details={"step_id": step_id})
        if attachments and not step.settings.allow_attachments:
            raise ValidationError("Attachments are not allowed on this step", details={"step_id": step_id})

        comment = Comment(
            comment_id=generate_comment_id(),
            execution_id=execution_id,
            step_id=step_id,
            user_id=user_id,
            comment=text,
            attachments=list(attachments or []),
            is_internal=is_internal,
            created_at=self.clock()
        )
        self.store.add_comment(comment)

        logger.info(
            f"Comment added on step {step_id}",
            extra={"execution_id": execution_id, "step_id": step_id, "user_id": user_id}
        )
        return comment

    # =========================================================================
    # Timeouts
    # =========================================================================

    def sweep_timeouts(self) -> List[SweepOutcome]:
        """Apply timeout policies to every expired in-progress step"""
        return self.sweeper.sweep()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_execution(self, execution_id: str, tenant_id: Optional[str] = None) -> WorkflowExecution:
        execution = self.store.get_execution(execution_id)
        # Other tenants' executions are reported as missing
        if execution is None or (tenant_id and execution.tenant_id != tenant_id):
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        return execution

    def _load_template(self, execution: WorkflowExecution) -> WorkflowTemplate:
        template = self.store.get_template(execution.template_id, execution.template_version)
        if template is None:
            raise TemplateNotFoundError(
                f"Template {execution.template_id} v{execution.template_version} not found"
            )
        return template

    def _submission_data(self, execution: WorkflowExecution) -> Optional[Dict[str, Any]]:
        submission = self.submissions.get_submission(execution.submission_id)
        if submission is None:
            logger.warning(
                f"Submission {execution.submission_id} not found; treating every step as applicable",
                extra={"execution_id": execution.execution_id}
            )
            return None
        return submission.data

    @staticmethod
    def _still_due(execution: WorkflowExecution, step_id: str, expected: ActivationStamp, now: datetime) -> bool:
        step_exec = execution.find_step(step_id)
        if step_exec is None or step_exec.status != StepStatus.IN_PROGRESS:
            # Let the decision processor report the precise error
            return True
        if activation_stamp(step_exec) != expected:
            return False
        return is_expired(step_exec.timeout_at, now)

    def _elapsed_hours(self, execution: WorkflowExecution, now: datetime) -> float:
        return round(hours_between(execution.submitted_at, now), 2)

    def _queue_advance_effects(
        self,
        effects: List[Effect],
        execution: WorkflowExecution,
        template: WorkflowTemplate,
        result: AdvanceResult
    ) -> None:
        if result.activated is not None:
            assignees = list(result.activated.assigned_to)
            step = result.step_template
            effects.append(lambda: self.notifier.step_assigned(execution, step, assignees))
        elif result.completed:
            effects.append(lambda: self.notifier.workflow_completed(execution, template))
            effects.append(lambda: self.actions.run_completion_actions(execution, template))

    @staticmethod
    def _run_effects(effects: List[Effect]) -> None:
        for effect in effects:
            try:
                effect()
            except Exception as e:
                logger.error(f"Side effect failed after commit: {e}")
