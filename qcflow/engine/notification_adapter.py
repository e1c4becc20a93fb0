"""Notification Adapter - Engine state changes to dispatcher messages

Delivery is best effort. Every failure is logged and swallowed so a broken
dispatcher never blocks or rolls back a state transition.
"""
from typing import Any, Dict, List, Optional

from .collaborators import NotificationDispatcher
from ..domain.models import Notification, WorkflowExecution, WorkflowTemplate, StepTemplate
from ..domain.enums import (
    Decision, NotificationChannel, NotificationTemplateKey, Priority, QCStage
)
from ..utils.idgen import generate_notification_id
from ..utils.time import format_iso, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationAdapter:
    """Build and send notifications for engine events"""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher

    # =========================================================================
    # Step events
    # =========================================================================

    def step_assigned(
        self,
        execution: WorkflowExecution,
        step: StepTemplate,
        assignees: List[str]
    ) -> None:
        self._send(
            execution,
            NotificationTemplateKey.STEP_ASSIGNED,
            recipients=assignees,
            title="Review Required",
            message=f"Step '{step.name}' is waiting for your decision.",
            payload={
                "step_id": step.step_id,
                "step_name": step.name,
                "kind": step.kind.value,
                "due_at": self._due_at(execution, step)
            }
        )

    def step_reassigned(
        self,
        execution: WorkflowExecution,
        step: StepTemplate,
        assignees: List[str],
        reassigned_by: str
    ) -> None:
        self._send(
            execution,
            NotificationTemplateKey.STEP_REASSIGNED,
            recipients=assignees,
            title="Review Reassigned to You",
            message=f"{reassigned_by} has reassigned step '{step.name}' to you.",
            payload={"step_id": step.step_id, "step_name": step.name, "reassigned_by": reassigned_by}
        )

    def step_decided(
        self,
        execution: WorkflowExecution,
        template: WorkflowTemplate,
        step: StepTemplate,
        decision: Decision,
        decided_by: str,
        comment: Optional[str] = None
    ) -> None:
        if not template.settings.notify_submitter:
            return
        self._send(
            execution,
            NotificationTemplateKey.STEP_DECIDED,
            recipients=[execution.submitted_by],
            title="Step Decided",
            message=f"Step '{step.name}' was decided: {decision.value}.",
            payload={
                "step_id": step.step_id,
                "decision": decision.value,
                "decided_by": decided_by,
                "comment": comment
            }
        )

    def step_escalated(self, execution: WorkflowExecution, step: StepTemplate, targets: List[str]) -> None:
        self._send(
            execution,
            NotificationTemplateKey.STEP_ESCALATED,
            recipients=targets,
            title="Escalated Review",
            message=f"Step '{step.name}' passed its deadline and was escalated to you.",
            payload={"step_id": step.step_id, "step_name": step.name, "due_at": self._due_at(execution, step)},
            priority=Priority.HIGH
        )

    def step_reminder(self, execution: WorkflowExecution, step: StepTemplate, assignees: List[str]) -> None:
        self._send(
            execution,
            NotificationTemplateKey.STEP_REMINDER,
            recipients=assignees,
            title="Review Overdue",
            message=f"Step '{step.name}' is past its deadline and still needs your decision.",
            payload={"step_id": step.step_id, "step_name": step.name},
            priority=Priority.HIGH
        )

    def changes_requested(
        self,
        execution: WorkflowExecution,
        step: StepTemplate,
        requested_by: str,
        comment: Optional[str]
    ) -> None:
        # Sent regardless of notify_submitter; the submitter must act
        self._send(
            execution,
            NotificationTemplateKey.CHANGES_REQUESTED,
            recipients=[execution.submitted_by],
            title="Changes Requested",
            message=comment or f"Changes were requested at step '{step.name}'.",
            payload={"step_id": step.step_id, "requested_by": requested_by, "comment": comment}
        )

    # =========================================================================
    # Workflow events
    # =========================================================================

    def workflow_completed(self, execution: WorkflowExecution, template: WorkflowTemplate) -> None:
        if not template.settings.notify_submitter:
            return
        self._send(
            execution,
            NotificationTemplateKey.WORKFLOW_COMPLETED,
            recipients=[execution.submitted_by],
            title="Workflow Completed",
            message=f"Your submission passed '{template.name}'.",
            payload={"template_name": template.name}
        )

    def workflow_rejected(
        self,
        execution: WorkflowExecution,
        template: WorkflowTemplate,
        step: StepTemplate,
        rejected_by: str,
        comment: Optional[str]
    ) -> None:
        if not template.settings.notify_submitter:
            return
        self._send(
            execution,
            NotificationTemplateKey.WORKFLOW_REJECTED,
            recipients=[execution.submitted_by],
            title="Workflow Rejected",
            message=f"Your submission was rejected at step '{step.name}'.",
            payload={"step_id": step.step_id, "rejected_by": rejected_by, "comment": comment}
        )

    def workflow_cancelled(self, execution: WorkflowExecution, cancelled_by: str, reason: Optional[str]) -> None:
        self._send(
            execution,
            NotificationTemplateKey.WORKFLOW_CANCELLED,
            recipients=[execution.submitted_by],
            title="Workflow Cancelled",
            message=f"Workflow {execution.execution_id} was cancelled.",
            payload={"cancelled_by": cancelled_by, "reason": reason}
        )

    def action_message(
        self,
        execution: WorkflowExecution,
        recipients: List[str],
        title: str,
        message: str,
        channel: NotificationChannel
    ) -> None:
        """
        Send a message configured by a post-completion action

        Unlike the other events this raises on delivery failure so the
        action executor can record the action as failed.
        """
        notification = self._build(
            execution.tenant_id,
            NotificationTemplateKey.ACTION_MESSAGE,
            recipients,
            title,
            message,
            payload={"execution_id": execution.execution_id},
            channels=[channel],
            execution_id=execution.execution_id
        )
        self.dispatcher.dispatch(notification)

    # =========================================================================
    # QC ladder
    # =========================================================================

    def qc_assigned(self, tenant_id: str, file_id: str, reviewer_id: str, stage: QCStage) -> None:
        notification = self._build(
            tenant_id,
            NotificationTemplateKey.QC_ASSIGNED,
            [reviewer_id],
            "File Assigned for Review",
            f"File {file_id} is waiting for your review at stage {stage.value}.",
            payload={"file_id": file_id, "stage": stage.value},
            action_url=f"/files/{file_id}"
        )
        self._deliver(notification)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _send(
        self,
        execution: WorkflowExecution,
        template_key: NotificationTemplateKey,
        recipients: List[str],
        title: str,
        message: str,
        payload: Dict[str, Any],
        priority: Optional[Priority] = None
    ) -> None:
        payload = {"execution_id": execution.execution_id, **payload}
        notification = self._build(
            execution.tenant_id,
            template_key,
            recipients,
            title,
            message,
            payload=payload,
            priority=priority or execution.metadata.priority,
            action_url=f"/workflows/executions/{execution.execution_id}",
            execution_id=execution.execution_id
        )
        self._deliver(notification)

    def _build(
        self,
        tenant_id: str,
        template_key: NotificationTemplateKey,
        recipients: List[str],
        title: str,
        message: str,
        payload: Dict[str, Any],
        channels: Optional[List[NotificationChannel]] = None,
        priority: Priority = Priority.MEDIUM,
        action_url: Optional[str] = None,
        execution_id: Optional[str] = None
    ) -> Notification:
        return Notification(
            notification_id=generate_notification_id(),
            tenant_id=tenant_id,
            template_key=template_key,
            recipients=list(dict.fromkeys(r for r in recipients if r)),
            title=title,
            message=message,
            payload=payload,
            channels=channels or [NotificationChannel.IN_APP, NotificationChannel.EMAIL],
            priority=priority,
            action_url=action_url,
            execution_id=execution_id,
            created_at=utc_now()
        )

    @staticmethod
    def _due_at(execution: WorkflowExecution, step: StepTemplate) -> Optional[str]:
        step_exec = execution.find_step(step.step_id)
        if step_exec is None or step_exec.timeout_at is None:
            return None
        return format_iso(step_exec.timeout_at)

    def _deliver(self, notification: Notification) -> None:
        if not notification.recipients:
            logger.debug(f"Skipping {notification.template_key.value}: no recipients")
            return
        try:
            self.dispatcher.dispatch(notification)
        except Exception as e:
            # Don't fail the state transition if delivery fails
            logger.warning(
                f"Failed to dispatch {notification.template_key.value}: {e}",
                extra={"execution_id": notification.execution_id, "tenant_id": notification.tenant_id}
            )
