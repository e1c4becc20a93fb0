"""Post-completion actions"""
import json

import httpx
import pytest

from qcflow.domain.models import (
    AssignUserAction, CreateTaskAction, EmailAction, SmsAction, UpdateFieldAction, WebhookAction
)
from qcflow.domain.enums import (
    ActionType, Decision, ExecutionStatus, NotificationChannel, NotificationTemplateKey
)
from qcflow.engine import ActionExecutor, NotificationAdapter, WorkflowEngine

from tests.conftest import user_step


def mock_client(status_code=200, seen=None) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def completed(engine, make_template, store):
    """Run a one-step workflow with the given actions to completion"""

    def _complete(actions):
        template = make_template([user_step("a", 0, "bob", actions=actions)])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        execution = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        return execution, store.get_template(template.template_id)

    return _complete


def test_record_actions_run_on_completion(completed, submissions):
    execution, _ = completed([
        UpdateFieldAction(field="review_status", value="approved"),
        CreateTaskAction(title="Archive submission", assignee_id="ops-1"),
        AssignUserAction(user_id="ops-2"),
    ])

    assert execution.status == ExecutionStatus.COMPLETED
    assert submissions.submissions["sub-1"].data["review_status"] == "approved"
    assert [t["title"] for t in submissions.tasks] == ["Archive submission"]
    assert submissions.tasks[0]["execution_id"] == execution.execution_id
    assert submissions.assignments["sub-1"] == "ops-2"


def test_email_and_sms_default_to_the_submitter(completed, dispatcher):
    completed([EmailAction(subject="Approved"), SmsAction(recipients=["bob"], message="Done")])

    messages = dispatcher.by_key(NotificationTemplateKey.ACTION_MESSAGE)
    assert [(m.recipients, m.channels) for m in messages] == [
        (["alice"], [NotificationChannel.EMAIL]),
        (["bob"], [NotificationChannel.SMS]),
    ]


def test_actions_are_not_run_on_rejection(engine, make_template, submissions):
    template = make_template([user_step("a", 0, "bob", actions=[UpdateFieldAction(field="x", value=1)])])
    execution = engine.start_workflow(template.template_id, "sub-1", "alice")

    engine.process_step(execution.execution_id, "a", Decision.REJECT, "bob")

    assert "x" not in submissions.submissions["sub-1"].data


class TestExecutor:

    def test_webhook_posts_the_execution(self, completed, dispatcher, submissions):
        execution, template = completed([])
        seen = []
        executor = ActionExecutor(NotificationAdapter(dispatcher), submissions, http_client=mock_client(seen=seen))
        template.steps[0].actions = [WebhookAction(url="https://hooks.example.com/done", headers={"X-Token": "abc"})]

        results = executor.run_completion_actions(execution, template)

        assert [r.success for r in results] == [True]
        assert str(seen[0].url) == "https://hooks.example.com/done"
        assert seen[0].headers["X-Token"] == "abc"
        body = json.loads(seen[0].content)
        assert body["action"] == "completed"
        assert body["execution"]["execution_id"] == execution.execution_id

    def test_one_failing_action_does_not_stop_the_rest(self, completed, dispatcher, submissions):
        execution, template = completed([])
        executor = ActionExecutor(NotificationAdapter(dispatcher), submissions, http_client=mock_client(500))
        template.steps[0].actions = [
            WebhookAction(url="https://hooks.example.com/broken"),
            UpdateFieldAction(field="archived", value=True),
        ]

        results = executor.run_completion_actions(execution, template)

        assert [(r.action_type, r.success) for r in results] == [
            (ActionType.WEBHOOK, False),
            (ActionType.UPDATE_FIELD, True),
        ]
        assert "broken" in results[0].error
        assert submissions.submissions["sub-1"].data["archived"] is True

    def test_undeliverable_email_is_reported_as_failed(self, completed, dispatcher, submissions):
        execution, template = completed([])
        dispatcher.fail_with = RuntimeError("smtp down")
        executor = ActionExecutor(NotificationAdapter(dispatcher), submissions)
        template.steps[0].actions = [EmailAction(subject="Approved")]

        results = executor.run_completion_actions(execution, template)

        assert results[0].success is False
        assert "smtp down" in results[0].error

    def test_record_actions_without_updater_fail(self, completed, dispatcher):
        execution, template = completed([])
        executor = ActionExecutor(NotificationAdapter(dispatcher))
        template.steps[0].actions = [AssignUserAction(user_id="ops-1")]

        results = executor.run_completion_actions(execution, template)

        assert results[0].success is False


def test_failing_action_leaves_execution_completed(store, directory, dispatcher, submissions, clock, make_template):
    notifier = NotificationAdapter(dispatcher)
    engine = WorkflowEngine(
        store=store,
        identity=directory,
        dispatcher=dispatcher,
        submissions=submissions,
        clock=clock,
        action_executor=ActionExecutor(notifier, submissions, http_client=mock_client(503))
    )
    template = make_template([user_step("a", 0, "bob", actions=[
        WebhookAction(url="https://hooks.example.com/down"),
        UpdateFieldAction(field="done", value=True),
    ])])
    execution = engine.start_workflow(template.template_id, "sub-1", "alice")

    result = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

    assert result.status == ExecutionStatus.COMPLETED
    assert engine.get_execution(execution.execution_id).execution.status == ExecutionStatus.COMPLETED
    assert submissions.submissions["sub-1"].data["done"] is True
