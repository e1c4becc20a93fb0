"""Notification Repository - Data access for the notification outbox

Messages are written as PENDING; an external delivery worker picks them up
and marks them SENT or FAILED.
"""
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from .mongo_client import get_collection
from .workflow_repo import persistence_guard
from ..domain.models import Notification
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._outbox: Collection = collection if collection is not None else get_collection("notification_outbox")

    def create_notification(self, notification: Notification) -> Notification:
        """Create a notification in outbox"""
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        with persistence_guard("create_notification"):
            self._outbox.insert_one(doc)
        logger.info(
            f"Created notification: {notification.template_key.value}",
            extra={"execution_id": notification.execution_id}
        )
        return notification

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        """Get notification by ID"""
        with persistence_guard("get_notification"):
            doc = self._outbox.find_one({"notification_id": notification_id})
        if doc:
            doc.pop("_id", None)
            return Notification.model_validate(doc)
        return None

    def get_pending_notifications(self, limit: int = 100) -> List[Notification]:
        """Oldest PENDING notifications first"""
        notifications = []
        with persistence_guard("get_pending_notifications"):
            cursor = self._outbox.find(
                {"status": NotificationStatus.PENDING.value}
            ).sort("created_at", ASCENDING).limit(limit)
            for doc in cursor:
                doc.pop("_id", None)
                notifications.append(Notification.model_validate(doc))
        return notifications

    def mark_sent(self, notification_id: str) -> None:
        self._set_status(notification_id, NotificationStatus.SENT, {"sent_at": utc_now()})

    def mark_failed(self, notification_id: str, error: str) -> None:
        self._set_status(notification_id, NotificationStatus.FAILED, {"last_error": error})

    def get_notifications_for_execution(self, execution_id: str) -> List[Notification]:
        notifications = []
        with persistence_guard("get_notifications_for_execution"):
            cursor = self._outbox.find({"execution_id": execution_id}).sort("created_at", DESCENDING)
            for doc in cursor:
                doc.pop("_id", None)
                notifications.append(Notification.model_validate(doc))
        return notifications

    def count_by_status(self) -> Dict[str, int]:
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        with persistence_guard("count_by_status"):
            return {doc["_id"]: doc["count"] for doc in self._outbox.aggregate(pipeline)}

    def _set_status(self, notification_id: str, status: NotificationStatus, fields: Dict[str, Any]) -> None:
        with persistence_guard("update_notification"):
            result = self._outbox.update_one(
                {"notification_id": notification_id},
                {"$set": {"status": status.value, **fields}}
            )
        if result.matched_count == 0:
            raise NotFoundError(f"Notification {notification_id} not found")
