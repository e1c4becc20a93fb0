"""Assignee resolution: users, roles, groups and conditional refs"""
from qcflow.domain.models import (
    Condition, ConditionalAssignee, GroupAssignee, RoleAssignee, UserAssignee
)
from qcflow.domain.enums import ConditionOperator
from qcflow.engine import AssigneeResolver

from tests.conftest import TENANT


def test_expands_roles_and_groups_in_order(directory):
    resolver = AssigneeResolver(directory)
    refs = [UserAssignee(id="u-1"), RoleAssignee(id="managers"), GroupAssignee(id="directors")]

    assert resolver.resolve(refs, TENANT) == ["u-1", "mgr-1", "mgr-2", "dir-1"]


def test_deduplicates_keeping_first_appearance(directory):
    resolver = AssigneeResolver(directory)
    refs = [UserAssignee(id="mgr-2"), RoleAssignee(id="managers"), UserAssignee(id="mgr-1")]

    assert resolver.resolve(refs, TENANT) == ["mgr-2", "mgr-1"]


def test_roles_are_scoped_to_the_tenant(directory):
    resolver = AssigneeResolver(directory)

    assert resolver.resolve([RoleAssignee(id="managers")], "other-tenant") == []


def test_conditional_assignee_follows_submission_data(directory):
    resolver = AssigneeResolver(directory)
    ref = ConditionalAssignee(
        id="cfo",
        conditions=[Condition(field="amount", operator=ConditionOperator.GREATER_THAN, value=10000)]
    )

    assert resolver.resolve([ref], TENANT, {"amount": 50000}) == ["cfo"]
    assert resolver.resolve([ref], TENANT, {"amount": 100}) == []


def test_unresolvable_role_contributes_nobody(directory):
    directory.unavailable.add("finance")
    resolver = AssigneeResolver(directory)

    refs = [RoleAssignee(id="finance"), UserAssignee(id="u-1")]
    assert resolver.resolve(refs, TENANT) == ["u-1"]


def test_empty_refs_resolve_to_empty(directory):
    assert AssigneeResolver(directory).resolve([], TENANT) == []
