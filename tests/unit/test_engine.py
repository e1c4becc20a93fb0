"""Workflow engine: start, decisions, rewind, lifecycle and errors"""
import pytest

from qcflow.domain.models import Condition, RoleAssignee, StepTemplate, WorkflowSettings, StepSettings
from qcflow.domain.enums import (
    ConditionOperator, Decision, ExecutionStatus, NotificationTemplateKey, StepKind, StepStatus
)
from qcflow.domain.errors import (
    ExecutionNotFoundError, InvalidStateError, PermissionDeniedError, StepNotFoundError,
    StepNotInProgressError, SubmissionNotFoundError, TemplateInactiveError,
    TemplateNotFoundError, UserNotAssignedError, ValidationError
)

from tests.conftest import TENANT, user_step


def statuses(execution):
    return [s.status for s in execution.steps]


# =============================================================================
# Start
# =============================================================================

class TestStartWorkflow:

    def test_creates_one_step_execution_per_template_step(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol"), user_step("c", 2, "dan")])

        execution = engine.start_workflow(template.template_id, "sub-1", "alice", tenant_id=TENANT)

        assert len(execution.steps) == len(template.steps)
        assert statuses(execution) == [StepStatus.IN_PROGRESS, StepStatus.PENDING, StepStatus.PENDING]
        assert execution.status == ExecutionStatus.IN_PROGRESS
        assert execution.current_step == 0
        assert execution.steps[0].assigned_to == ["bob"]
        assert execution.template_version == 1

    def test_get_execution_reflects_first_active_step(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        view = engine.get_execution(execution.execution_id)

        assert view.execution.steps[0].status == StepStatus.IN_PROGRESS
        assert view.execution.steps[0].started_at is not None
        assert view.comments == []

    def test_notifies_first_step_assignees(self, engine, make_template, dispatcher):
        template = make_template([StepTemplate(step_id="a", name="A", order=0, assignees=[RoleAssignee(id="managers")])])

        engine.start_workflow(template.template_id, "sub-1", "alice")

        assert dispatcher.recipients_of(NotificationTemplateKey.STEP_ASSIGNED) == ["mgr-1", "mgr-2"]

    def test_estimated_duration_comes_from_step_kinds(self, engine, make_template):
        template = make_template([
            user_step("a", 0, "bob", kind=StepKind.APPROVAL),
            user_step("b", 1, "bob", kind=StepKind.REVIEW),
        ])

        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        assert execution.metadata.estimated_duration == 6

    def test_unknown_template(self, engine):
        with pytest.raises(TemplateNotFoundError):
            engine.start_workflow("WFT-missing", "sub-1", "alice")

    def test_template_from_other_tenant_is_not_found(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        with pytest.raises(TemplateNotFoundError):
            engine.start_workflow(template.template_id, "sub-1", "alice", tenant_id="other")

    def test_inactive_template(self, engine, make_template, template_service, actor):
        template = make_template([user_step("a", 0, "bob")])
        template_service.deactivate_template(template.template_id, actor)

        with pytest.raises(TemplateInactiveError):
            engine.start_workflow(template.template_id, "sub-1", "alice")

    def test_unknown_submission(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        with pytest.raises(SubmissionNotFoundError):
            engine.start_workflow(template.template_id, "sub-missing", "alice")

    def test_other_tenants_submission_is_not_found(self, engine, make_template, submissions):
        submissions.add("sub-foreign", {"status": "open"}, tenant_id="tenant-2", submitted_by="eve")
        template = make_template([user_step("a", 0, "bob")])

        with pytest.raises(SubmissionNotFoundError):
            engine.start_workflow(template.template_id, "sub-foreign", "alice")
        assert engine.list_executions(TENANT) == []

    def test_every_step_skipped_completes_immediately(self, engine, make_template, dispatcher):
        never = [Condition(field="priority", operator=ConditionOperator.EQUALS, value="never")]
        template = make_template([user_step("a", 0, "bob", conditions=never)])

        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        assert execution.status == ExecutionStatus.COMPLETED
        assert statuses(execution) == [StepStatus.SKIPPED]
        assert dispatcher.by_key(NotificationTemplateKey.STEP_ASSIGNED) == []


# =============================================================================
# Decisions
# =============================================================================

class TestDecisions:

    def test_single_step_approve_completes(self, engine, make_template, dispatcher):
        template = make_template([user_step("review", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        result = engine.process_step(execution.execution_id, "review", Decision.APPROVE, "bob")

        assert result.status == ExecutionStatus.COMPLETED
        assert result.completed_at is not None
        assert not any(s.status == StepStatus.PENDING for s in result.steps)
        assert result.steps[0].decision == Decision.APPROVE
        assert result.steps[0].completed_by == "bob"
        assert len(dispatcher.by_key(NotificationTemplateKey.WORKFLOW_COMPLETED)) == 1

    def test_failed_condition_step_is_skipped(self, engine, make_template, dispatcher):
        low_only = [Condition(field="priority", operator=ConditionOperator.EQUALS, value="low")]
        template = make_template([
            user_step("first", 0, "bob"),
            user_step("low_priority", 1, "carol", conditions=low_only),
            user_step("final", 2, "dan"),
        ])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        result = engine.process_step(execution.execution_id, "first", Decision.APPROVE, "bob")

        assert statuses(result) == [StepStatus.APPROVED, StepStatus.SKIPPED, StepStatus.IN_PROGRESS]
        assert result.current_step == 2
        assert "carol" not in dispatcher.recipients_of(NotificationTemplateKey.STEP_ASSIGNED)
        assert "dan" in dispatcher.recipients_of(NotificationTemplateKey.STEP_ASSIGNED)

    def test_reject_ends_execution(self, engine, make_template, dispatcher):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        result = engine.process_step(execution.execution_id, "a", Decision.REJECT, "bob", comment="Incomplete")

        assert result.status == ExecutionStatus.REJECTED
        assert statuses(result) == [StepStatus.REJECTED, StepStatus.PENDING]
        assert dispatcher.recipients_of(NotificationTemplateKey.WORKFLOW_REJECTED) == ["alice"]

    def test_request_changes_rewinds_every_approval(self, engine, make_template, dispatcher):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol"), user_step("c", 2, "dan")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        engine.process_step(execution.execution_id, "b", Decision.APPROVE, "carol")

        result = engine.process_step(execution.execution_id, "c", Decision.REQUEST_CHANGES, "dan", comment="Fix totals")

        assert result.status == ExecutionStatus.PENDING
        assert result.current_step == 0
        assert statuses(result) == [StepStatus.PENDING] * 3
        assert all(s.decision is None and s.completed_at is None for s in result.steps[:2])
        # The requesting step keeps its decision record until it is reactivated
        assert result.steps[2].decision == Decision.REQUEST_CHANGES
        assert result.steps[2].completed_by == "dan"
        assert dispatcher.by_key(NotificationTemplateKey.CHANGES_REQUESTED)[0].message == "Fix totals"

    def test_request_changes_keeps_skipped_steps_skipped(self, engine, make_template):
        low_only = [Condition(field="priority", operator=ConditionOperator.EQUALS, value="low")]
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol", conditions=low_only), user_step("c", 2, "dan")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

        result = engine.process_step(execution.execution_id, "c", Decision.REQUEST_CHANGES, "dan")

        assert statuses(result) == [StepStatus.PENDING, StepStatus.SKIPPED, StepStatus.PENDING]

    def test_second_decision_on_same_step_fails(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob", "carol"), user_step("b", 1, "dan")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

        with pytest.raises(StepNotInProgressError):
            engine.process_step(execution.execution_id, "a", Decision.REJECT, "carol")

    def test_decision_on_pending_step_fails(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "dan")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(StepNotInProgressError):
            engine.process_step(execution.execution_id, "b", Decision.APPROVE, "dan")

    def test_user_not_assigned(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(UserNotAssignedError):
            engine.process_step(execution.execution_id, "a", Decision.APPROVE, "mallory")

    def test_unknown_execution_and_step(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(ExecutionNotFoundError):
            engine.process_step("EXEC-missing", "a", Decision.APPROVE, "bob")
        with pytest.raises(StepNotFoundError):
            engine.process_step(execution.execution_id, "zzz", Decision.APPROVE, "bob")

    def test_execution_from_other_tenant_is_not_found(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(ExecutionNotFoundError):
            engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob", tenant_id="other")

    def test_require_comments(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")], settings=WorkflowSettings(require_comments=True))
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(ValidationError):
            engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob", comment="  ")

        result = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob", comment="Looks good")
        assert result.status == ExecutionStatus.COMPLETED

    def test_decision_comment_is_stored(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob", comment="Approved with notes")

        comments = engine.get_execution(execution.execution_id).comments
        assert [(c.user_id, c.comment) for c in comments] == [("bob", "Approved with notes")]

    def test_attachments_rejected_when_step_disallows_them(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob", settings=StepSettings(allow_attachments=False))])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(ValidationError):
            engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob", attachments=["file-1"])

    def test_notify_submitter_off_suppresses_decision_notices(self, engine, make_template, dispatcher):
        template = make_template([user_step("a", 0, "bob")], settings=WorkflowSettings(notify_submitter=False))
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

        assert dispatcher.by_key(NotificationTemplateKey.STEP_DECIDED) == []
        assert dispatcher.by_key(NotificationTemplateKey.WORKFLOW_COMPLETED) == []

    def test_dispatcher_failure_does_not_fail_decision(self, engine, make_template, dispatcher):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        dispatcher.fail_with = RuntimeError("smtp down")

        result = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

        assert statuses(result) == [StepStatus.APPROVED, StepStatus.IN_PROGRESS]
        persisted = engine.get_execution(execution.execution_id).execution
        assert statuses(persisted) == [StepStatus.APPROVED, StepStatus.IN_PROGRESS]

    def test_missing_submission_treats_steps_as_applicable(self, engine, make_template, submissions):
        low_only = [Condition(field="priority", operator=ConditionOperator.EQUALS, value="low")]
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol", conditions=low_only)])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        del submissions.submissions["sub-1"]

        result = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

        assert result.steps[1].status == StepStatus.IN_PROGRESS


# =============================================================================
# Assignment edge cases
# =============================================================================

class TestAssignment:

    def test_optional_step_without_assignees_is_skipped(self, engine, make_template):
        template = make_template([
            StepTemplate(step_id="a", name="A", order=0, required=False, assignees=[RoleAssignee(id="nobody")]),
            user_step("b", 1, "bob"),
        ])

        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        assert statuses(execution) == [StepStatus.SKIPPED, StepStatus.IN_PROGRESS]

    def test_required_step_without_assignees_still_activates(self, engine, make_template):
        template = make_template([StepTemplate(step_id="a", name="A", order=0, assignees=[RoleAssignee(id="nobody")])])

        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        assert execution.steps[0].status == StepStatus.IN_PROGRESS
        assert execution.steps[0].assigned_to == []

    def test_assignee_snapshot_is_taken_at_activation(self, engine, make_template, directory):
        template = make_template([
            user_step("a", 0, "bob"),
            StepTemplate(step_id="b", name="B", order=1, assignees=[RoleAssignee(id="finance")]),
        ])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        directory.add_role(TENANT, "finance", ["fin-2"])

        result = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        directory.add_role(TENANT, "finance", ["fin-3"])

        assert result.steps[1].assigned_to == ["fin-2"]
        with pytest.raises(UserNotAssignedError):
            engine.process_step(execution.execution_id, "b", Decision.APPROVE, "fin-3")


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    def test_resubmit_restarts_from_first_step(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        engine.process_step(execution.execution_id, "b", Decision.REQUEST_CHANGES, "carol")

        result = engine.resubmit(execution.execution_id, "alice")

        assert result.status == ExecutionStatus.IN_PROGRESS
        assert statuses(result) == [StepStatus.IN_PROGRESS, StepStatus.PENDING]
        assert result.metadata.resubmission_count == 1

    def test_resubmit_rules(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(InvalidStateError):
            engine.resubmit(execution.execution_id, "alice")

        engine.process_step(execution.execution_id, "a", Decision.REQUEST_CHANGES, "bob")
        with pytest.raises(PermissionDeniedError):
            engine.resubmit(execution.execution_id, "bob")

    def test_resubmit_disabled_by_template(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")], settings=WorkflowSettings(allow_resubmission=False))
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(execution.execution_id, "a", Decision.REQUEST_CHANGES, "bob")

        with pytest.raises(InvalidStateError):
            engine.resubmit(execution.execution_id, "alice")

    def test_reassign_replaces_snapshot(self, engine, make_template, dispatcher):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        result = engine.reassign_step(execution.execution_id, "a", "bob", ["erin", "erin"])

        assert result.steps[0].assigned_to == ["erin"]
        assert dispatcher.recipients_of(NotificationTemplateKey.STEP_REASSIGNED) == ["erin"]
        with pytest.raises(UserNotAssignedError):
            engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "erin")

    def test_reassign_rules(self, engine, make_template):
        template = make_template([
            user_step("a", 0, "bob", settings=StepSettings(allow_reassign=False)),
            user_step("b", 1, "carol"),
        ])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(ValidationError):
            engine.reassign_step(execution.execution_id, "a", "bob", [])
        with pytest.raises(PermissionDeniedError):
            engine.reassign_step(execution.execution_id, "a", "bob", ["erin"])
        with pytest.raises(StepNotInProgressError):
            engine.reassign_step(execution.execution_id, "b", "carol", ["erin"])

    def test_cancel(self, engine, make_template, dispatcher):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        result = engine.cancel_workflow(execution.execution_id, "alice", reason="Duplicate")

        assert result.status == ExecutionStatus.CANCELLED
        assert statuses(result) == [StepStatus.SKIPPED, StepStatus.PENDING]
        assert dispatcher.by_key(NotificationTemplateKey.WORKFLOW_CANCELLED)[0].payload["reason"] == "Duplicate"
        with pytest.raises(StepNotInProgressError):
            engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

    def test_cancel_rules(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(PermissionDeniedError):
            engine.cancel_workflow(execution.execution_id, "bob")

        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        with pytest.raises(InvalidStateError):
            engine.cancel_workflow(execution.execution_id, "alice")


# =============================================================================
# Comments & versioning
# =============================================================================

class TestCommentsAndVersions:

    def test_comments_are_append_only_and_ordered(self, engine, make_template, clock):
        template = make_template([user_step("a", 0, "bob")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        first = engine.add_comment(execution.execution_id, "a", "alice", "Please review quickly")
        clock.advance(minutes=5)
        engine.add_comment(execution.execution_id, "a", "bob", "On it", is_internal=True)

        comments = engine.get_execution(execution.execution_id).comments
        assert [c.comment for c in comments] == ["Please review quickly", "On it"]
        assert comments[0].comment_id == first.comment_id
        assert comments[1].is_internal is True

    def test_comment_validation(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob", settings=StepSettings(allow_comments=False))])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        with pytest.raises(ValidationError):
            engine.add_comment(execution.execution_id, "a", "alice", "")
        with pytest.raises(ValidationError):
            engine.add_comment(execution.execution_id, "a", "alice", "hello")
        with pytest.raises(StepNotFoundError):
            engine.add_comment(execution.execution_id, "zzz", "alice", "hello")

    def test_running_execution_keeps_its_template_version(self, engine, make_template, template_service, actor):
        template = make_template([user_step("a", 0, "bob"), user_step("b", 1, "carol")])
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")

        template_service.publish_new_version(template.template_id, actor, steps=[user_step("only", 0, "zed")])

        result = engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")
        assert result.template_version == 1
        assert result.steps[1].assigned_to == ["carol"]

        newer = engine.start_workflow(template.template_id, "sub-1", "alice")
        assert newer.template_version == 2
        assert [s.step_id for s in newer.steps] == ["only"]

    def test_list_executions_filters_by_tenant_and_status(self, engine, make_template):
        template = make_template([user_step("a", 0, "bob")])
        first = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(first.execution_id, "a", Decision.APPROVE, "bob")

        assert len(engine.list_executions(TENANT)) == 2
        completed = engine.list_executions(TENANT, status=ExecutionStatus.COMPLETED)
        assert [e.execution_id for e in completed] == [first.execution_id]
        assert engine.list_executions("other") == []
