"""Notification Service - Dispatcher implementations

The engine hands every message to one NotificationDispatcher:

- OutboxNotificationDispatcher: writes to the Mongo outbox for an external
  delivery worker
- HttpNotificationDispatcher: POSTs the message to a notification endpoint
- InMemoryNotificationDispatcher: records messages (tests, local runs)
"""
from typing import List, Optional

import httpx

from ..domain.models import Notification
from ..domain.enums import NotificationTemplateKey
from ..domain.errors import NotificationDeliveryError, PersistenceError
from ..repositories.notification_repo import NotificationRepository
from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


class OutboxNotificationDispatcher:
    """Enqueue notifications in the outbox; sending happens asynchronously"""

    def __init__(self, repo: Optional[NotificationRepository] = None):
        self.repo = repo or NotificationRepository()

    def dispatch(self, notification: Notification) -> None:
        try:
            self.repo.create_notification(notification)
        except PersistenceError as e:
            raise NotificationDeliveryError(
                f"Failed to enqueue {notification.template_key.value}",
                details={"notification_id": notification.notification_id, "error": e.message}
            )


class HttpNotificationDispatcher:
    """Deliver notifications to an HTTP endpoint"""

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None
    ):
        self.endpoint_url = endpoint_url or settings.notification_endpoint_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._client = client

    def dispatch(self, notification: Notification) -> None:
        if not self.endpoint_url:
            raise NotificationDeliveryError("Notification endpoint is not configured")

        body = notification.model_dump(mode="json")
        try:
            if self._client is not None:
                response = self._client.post(self.endpoint_url, json=body, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.endpoint_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(
                f"Notification endpoint call failed: {e}",
                details={"notification_id": notification.notification_id}
            )

        logger.debug(
            f"Delivered {notification.template_key.value} to {len(notification.recipients)} recipient(s)",
            extra={"execution_id": notification.execution_id}
        )


class InMemoryNotificationDispatcher:
    """Collect notifications in a list"""

    def __init__(self):
        self.sent: List[Notification] = []
        self.fail_with: Optional[Exception] = None

    def dispatch(self, notification: Notification) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(notification)

    def by_key(self, template_key: NotificationTemplateKey) -> List[Notification]:
        return [n for n in self.sent if n.template_key == template_key]

    def recipients_of(self, template_key: NotificationTemplateKey) -> List[str]:
        recipients: List[str] = []
        for notification in self.by_key(template_key):
            recipients.extend(notification.recipients)
        return recipients

    def clear(self) -> None:
        self.sent.clear()
