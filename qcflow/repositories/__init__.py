"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .base import WorkflowStore, QCStore
from .memory_store import InMemoryWorkflowStore, InMemoryQCStore
from .workflow_repo import MongoWorkflowStore
from .qc_repo import MongoQCStore
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "WorkflowStore",
    "QCStore",
    "InMemoryWorkflowStore",
    "InMemoryQCStore",
    "MongoWorkflowStore",
    "MongoQCStore",
    "NotificationRepository",
]
