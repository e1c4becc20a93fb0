"""Directory Service - Role and group membership lookups"""
from typing import Dict, List, Optional, Set, Tuple

from pymongo.collection import Collection

from ..domain.errors import IdentityResolutionError, PersistenceError
from ..repositories.mongo_client import get_collection
from ..repositories.workflow_repo import persistence_guard
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryService:
    """
    Identity resolver backed by the `directory_memberships` collection.

    One document per (tenant_id, kind, ref_id) holding a `members` list of
    user IDs. `kind` is "role" or "group".
    """

    def __init__(self, collection: Optional[Collection] = None):
        self._memberships: Collection = collection if collection is not None else get_collection("directory_memberships")

    def users_for_role(self, role_id: str, tenant_id: str) -> List[str]:
        return self._members("role", role_id, tenant_id)

    def users_for_group(self, group_id: str, tenant_id: str) -> List[str]:
        return self._members("group", group_id, tenant_id)

    def set_members(self, kind: str, ref_id: str, tenant_id: str, members: List[str]) -> None:
        """Replace the member list of a role or group"""
        with persistence_guard("set_members"):
            self._memberships.update_one(
                {"tenant_id": tenant_id, "kind": kind, "ref_id": ref_id},
                {"$set": {"members": list(dict.fromkeys(members))}},
                upsert=True
            )
        logger.info(f"Updated {kind} {ref_id} membership", extra={"tenant_id": tenant_id})

    def _members(self, kind: str, ref_id: str, tenant_id: str) -> List[str]:
        try:
            with persistence_guard("directory_lookup"):
                doc = self._memberships.find_one({"tenant_id": tenant_id, "kind": kind, "ref_id": ref_id})
        except PersistenceError as e:
            raise IdentityResolutionError(
                f"Could not resolve {kind} {ref_id}",
                details={"tenant_id": tenant_id, "error": e.message}
            )

        if not doc:
            logger.debug(f"No {kind} {ref_id} in tenant {tenant_id}", extra={"tenant_id": tenant_id})
            return []
        return list(doc.get("members", []))


class InMemoryDirectory:
    """Dict-backed identity resolver for tests and local runs"""

    def __init__(
        self,
        roles: Optional[Dict[Tuple[str, str], List[str]]] = None,
        groups: Optional[Dict[Tuple[str, str], List[str]]] = None
    ):
        # Keyed by (tenant_id, ref_id)
        self._roles: Dict[Tuple[str, str], List[str]] = dict(roles or {})
        self._groups: Dict[Tuple[str, str], List[str]] = dict(groups or {})
        self.unavailable: Set[str] = set()

    def add_role(self, tenant_id: str, role_id: str, members: List[str]) -> None:
        self._roles[(tenant_id, role_id)] = list(members)

    def add_group(self, tenant_id: str, group_id: str, members: List[str]) -> None:
        self._groups[(tenant_id, group_id)] = list(members)

    def users_for_role(self, role_id: str, tenant_id: str) -> List[str]:
        if role_id in self.unavailable:
            raise IdentityResolutionError(f"Role {role_id} could not be resolved")
        return list(self._roles.get((tenant_id, role_id), []))

    def users_for_group(self, group_id: str, tenant_id: str) -> List[str]:
        if group_id in self.unavailable:
            raise IdentityResolutionError(f"Group {group_id} could not be resolved")
        return list(self._groups.get((tenant_id, group_id), []))

    def set_members(self, kind: str, ref_id: str, tenant_id: str, members: List[str]) -> None:
        target = self._roles if kind == "role" else self._groups
        target[(tenant_id, ref_id)] = list(dict.fromkeys(members))
