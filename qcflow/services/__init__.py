"""Service modules - Collaborators and template administration"""
from .workflow_service import WorkflowService
from .directory_service import DirectoryService, InMemoryDirectory
from .notification_service import (
    OutboxNotificationDispatcher, HttpNotificationDispatcher, InMemoryNotificationDispatcher
)
from .submission_service import SubmissionService, InMemorySubmissionStore

__all__ = [
    "WorkflowService",
    "DirectoryService",
    "InMemoryDirectory",
    "OutboxNotificationDispatcher",
    "HttpNotificationDispatcher",
    "InMemoryNotificationDispatcher",
    "SubmissionService",
    "InMemorySubmissionStore",
]
