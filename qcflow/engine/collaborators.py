"""Collaborator protocols - narrow interfaces the engine consumes"""
from typing import Any, List, Optional, Protocol

from ..domain.models import Notification, Submission


class IdentityResolver(Protocol):
    """Maps role and group references to user IDs"""

    def users_for_role(self, role_id: str, tenant_id: str) -> List[str]:
        """Return every user holding the role in the tenant."""

    def users_for_group(self, group_id: str, tenant_id: str) -> List[str]:
        """Return every member of the group in the tenant."""


class NotificationDispatcher(Protocol):
    """Fire-and-forget delivery of a message to a set of users"""

    def dispatch(self, notification: Notification) -> None:
        """Deliver (or enqueue) the notification. May raise CollaboratorError."""


class SubmissionSource(Protocol):
    """Read access to the thing being reviewed"""

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        """Return the submission snapshot, or None when it does not exist."""


class RecordUpdater(Protocol):
    """Write access used by post-completion actions"""

    def update_field(self, submission_id: str, field: str, value: Any) -> None:
        """Set one field on the submission."""

    def create_task(
        self,
        tenant_id: str,
        title: str,
        description: Optional[str],
        assignee_id: Optional[str],
        execution_id: str
    ) -> str:
        """Create a follow-up task and return its ID."""

    def assign_user(self, submission_id: str, user_id: str) -> None:
        """Assign the submission to a user."""
