"""Action Executor - Post-completion actions

Each Action variant has its own handler looked up by type. One failing
action is logged and recorded; the rest still run.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import httpx

from .collaborators import RecordUpdater
from .notification_adapter import NotificationAdapter
from ..domain.models import (
    WorkflowExecution, WorkflowTemplate, EmailAction, SmsAction, WebhookAction,
    UpdateFieldAction, CreateTaskAction, AssignUserAction
)
from ..domain.enums import ActionType, NotificationChannel
from ..domain.errors import ValidationError, WebhookError
from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ActionResult:
    """What happened to one action"""
    step_id: str
    action_type: ActionType
    success: bool
    error: Optional[str] = None


class ActionExecutor:
    """Run every step's actions once an execution completes"""

    def __init__(
        self,
        notifier: NotificationAdapter,
        updater: Optional[RecordUpdater] = None,
        http_client: Optional[httpx.Client] = None,
        webhook_timeout: Optional[float] = None
    ):
        self.notifier = notifier
        self.updater = updater
        self._http_client = http_client
        self.webhook_timeout = webhook_timeout or settings.webhook_timeout_seconds

        self._handlers: Dict[ActionType, Callable] = {
            ActionType.EMAIL: self._send_email,
            ActionType.SMS: self._send_sms,
            ActionType.WEBHOOK: self._call_webhook,
            ActionType.UPDATE_FIELD: self._update_field,
            ActionType.CREATE_TASK: self._create_task,
            ActionType.ASSIGN_USER: self._assign_user,
        }

    def run_completion_actions(self, execution: WorkflowExecution, template: WorkflowTemplate) -> List[ActionResult]:
        results = []

        for step in template.steps:
            for action in step.actions:
                action_type = ActionType(action.type)
                try:
                    self._handlers[action_type](execution, action)
                    results.append(ActionResult(step.step_id, action_type, True))
                except Exception as e:
                    logger.error(
                        f"Action {action_type.value} on step {step.step_id} failed: {e}",
                        extra={"execution_id": execution.execution_id, "step_id": step.step_id}
                    )
                    results.append(ActionResult(step.step_id, action_type, False, str(e)))

        if results:
            failed = sum(1 for r in results if not r.success)
            logger.info(
                f"Ran {len(results)} completion action(s), {failed} failed",
                extra={"execution_id": execution.execution_id}
            )
        return results

    # =========================================================================
    # Handlers
    # =========================================================================

    def _send_email(self, execution: WorkflowExecution, action: EmailAction) -> None:
        self.notifier.action_message(
            execution,
            recipients=action.recipients or [execution.submitted_by],
            title=action.subject,
            message=action.body or action.subject,
            channel=NotificationChannel.EMAIL
        )

    def _send_sms(self, execution: WorkflowExecution, action: SmsAction) -> None:
        self.notifier.action_message(
            execution,
            recipients=action.recipients or [execution.submitted_by],
            title="SMS",
            message=action.message,
            channel=NotificationChannel.SMS
        )

    def _call_webhook(self, execution: WorkflowExecution, action: WebhookAction) -> None:
        body = {"execution": execution.model_dump(mode="json"), "action": "completed"}
        headers = {"Content-Type": "application/json", **action.headers}

        try:
            if self._http_client is not None:
                response = self._http_client.post(action.url, json=body, headers=headers, timeout=self.webhook_timeout)
            else:
                with httpx.Client(timeout=self.webhook_timeout) as client:
                    response = client.post(action.url, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise WebhookError(f"Webhook {action.url} failed: {e}", details={"url": action.url})

        logger.info(f"Webhook delivered: {action.url}", extra={"execution_id": execution.execution_id})

    def _update_field(self, execution: WorkflowExecution, action: UpdateFieldAction) -> None:
        self._require_updater().update_field(execution.submission_id, action.field, action.value)

    def _create_task(self, execution: WorkflowExecution, action: CreateTaskAction) -> None:
        self._require_updater().create_task(
            tenant_id=execution.tenant_id,
            title=action.title,
            description=action.description,
            assignee_id=action.assignee_id,
            execution_id=execution.execution_id
        )

    def _assign_user(self, execution: WorkflowExecution, action: AssignUserAction) -> None:
        self._require_updater().assign_user(execution.submission_id, action.user_id)

    def _require_updater(self) -> RecordUpdater:
        if self.updater is None:
            raise ValidationError("No record updater configured")
        return self.updater
