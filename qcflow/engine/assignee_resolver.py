"""Assignee Resolver - Expand assignee references into user IDs"""
from typing import Any, Dict, List, Optional

from .collaborators import IdentityResolver
from .condition_evaluator import ConditionEvaluator
from ..domain.models import (
    AssigneeRef, UserAssignee, RoleAssignee, GroupAssignee, ConditionalAssignee
)
from ..domain.errors import CollaboratorError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AssigneeResolver:
    """
    Resolve a list of AssigneeRef into a de-duplicated list of user IDs

    Order of first appearance is kept so notifications go out in the order
    the template lists its reviewers. A role or group that cannot be
    resolved contributes nobody; the failure is logged.
    """

    def __init__(self, identity: IdentityResolver, evaluator: Optional[ConditionEvaluator] = None):
        self.identity = identity
        self.evaluator = evaluator or ConditionEvaluator()

    def resolve(
        self,
        refs: List[AssigneeRef],
        tenant_id: str,
        data: Optional[Dict[str, Any]] = None
    ) -> List[str]:
        resolved: Dict[str, None] = {}

        for ref in refs:
            for user_id in self._resolve_one(ref, tenant_id, data):
                if user_id:
                    resolved.setdefault(user_id, None)

        return list(resolved)

    def _resolve_one(
        self,
        ref: AssigneeRef,
        tenant_id: str,
        data: Optional[Dict[str, Any]]
    ) -> List[str]:
        if isinstance(ref, UserAssignee):
            return [ref.id]

        if isinstance(ref, ConditionalAssignee):
            return [ref.id] if self.evaluator.evaluate(ref.conditions, data) else []

        try:
            if isinstance(ref, RoleAssignee):
                return list(self.identity.users_for_role(ref.id, tenant_id))
            if isinstance(ref, GroupAssignee):
                return list(self.identity.users_for_group(ref.id, tenant_id))
        except CollaboratorError as e:
            logger.warning(
                f"Could not resolve {ref.type} {ref.id}: {e.message}",
                extra={"tenant_id": tenant_id, "error_code": e.error_code}
            )
            return []

        return []
