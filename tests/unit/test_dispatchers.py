"""Notification dispatcher implementations"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from qcflow.domain.enums import NotificationTemplateKey
from qcflow.domain.errors import NotificationDeliveryError, PersistenceError
from qcflow.domain.models import Notification
from qcflow.services.notification_service import (
    HttpNotificationDispatcher, InMemoryNotificationDispatcher, OutboxNotificationDispatcher
)


def make_notification(key=NotificationTemplateKey.STEP_ASSIGNED, recipients=("bob",)) -> Notification:
    return Notification(
        notification_id="NTF-1",
        tenant_id="tenant-1",
        template_key=key,
        recipients=list(recipients),
        title="Review Required",
        message="Step 'Manager' is waiting for your decision.",
        execution_id="WF-1",
        created_at=datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
    )


class BrokenRepo:
    def create_notification(self, notification):
        raise PersistenceError("insert failed")


class ListRepo:
    def __init__(self):
        self.created = []

    def create_notification(self, notification):
        self.created.append(notification)
        return notification


def test_http_dispatcher_posts_json_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    dispatcher = HttpNotificationDispatcher("http://notify.local/send", timeout=2, client=client)

    dispatcher.dispatch(make_notification())

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert json.loads(seen[0].content)["template_key"] == "STEP_ASSIGNED"


def test_http_dispatcher_raises_on_error_status():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    dispatcher = HttpNotificationDispatcher("http://notify.local/send", timeout=2, client=client)

    with pytest.raises(NotificationDeliveryError) as exc_info:
        dispatcher.dispatch(make_notification())

    assert exc_info.value.details["notification_id"] == "NTF-1"


def test_http_dispatcher_without_endpoint_raises():
    dispatcher = HttpNotificationDispatcher(endpoint_url="", timeout=2)
    dispatcher.endpoint_url = ""

    with pytest.raises(NotificationDeliveryError):
        dispatcher.dispatch(make_notification())


def test_outbox_dispatcher_enqueues():
    repo = ListRepo()

    OutboxNotificationDispatcher(repo).dispatch(make_notification())

    assert [n.notification_id for n in repo.created] == ["NTF-1"]


def test_outbox_dispatcher_wraps_persistence_errors():
    dispatcher = OutboxNotificationDispatcher(BrokenRepo())

    with pytest.raises(NotificationDeliveryError) as exc_info:
        dispatcher.dispatch(make_notification())

    assert exc_info.value.details["error"] == "insert failed"


def test_in_memory_dispatcher_records_and_filters():
    dispatcher = InMemoryNotificationDispatcher()
    dispatcher.dispatch(make_notification())
    dispatcher.dispatch(make_notification(NotificationTemplateKey.STEP_REMINDER, recipients=("carol", "dave")))

    assert dispatcher.recipients_of(NotificationTemplateKey.STEP_REMINDER) == ["carol", "dave"]
    assert len(dispatcher.by_key(NotificationTemplateKey.STEP_ASSIGNED)) == 1

    dispatcher.clear()
    dispatcher.fail_with = NotificationDeliveryError("down")
    with pytest.raises(NotificationDeliveryError):
        dispatcher.dispatch(make_notification())
    assert dispatcher.sent == []
