"""Bootstrap - Wire the engine and its collaborators from settings"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from .config.settings import Settings, get_settings
from .engine import WorkflowEngine, QCLadder, NotificationAdapter
from .repositories.memory_store import InMemoryWorkflowStore, InMemoryQCStore
from .repositories.workflow_repo import MongoWorkflowStore
from .repositories.qc_repo import MongoQCStore
from .services.directory_service import DirectoryService, InMemoryDirectory
from .services.notification_service import (
    OutboxNotificationDispatcher, HttpNotificationDispatcher, InMemoryNotificationDispatcher
)
from .services.submission_service import SubmissionService, InMemorySubmissionStore
from .services.workflow_service import WorkflowService
from .utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Container:
    """Everything the host needs, built once per process"""
    engine: WorkflowEngine
    templates: WorkflowService
    qc: QCLadder
    directory: Any
    dispatcher: Any
    submissions: Any


def build_dispatcher(config: Settings):
    backend = config.notification_backend.lower()
    if backend == "http":
        return HttpNotificationDispatcher(config.notification_endpoint_url, config.notification_timeout_seconds)
    if backend == "memory":
        return InMemoryNotificationDispatcher()
    if backend == "outbox" and config.uses_mongo:
        return OutboxNotificationDispatcher()
    if backend == "outbox":
        logger.warning("Outbox notifications need the mongo store; falling back to in-memory dispatcher")
        return InMemoryNotificationDispatcher()
    raise ValueError(f"Unknown notification backend: {config.notification_backend}")


def build_container(config: Optional[Settings] = None) -> Container:
    """
    Build the engine for the configured storage backend

    Args:
        config: Settings to use (defaults to the process settings)

    Returns:
        Container with engine, template service and QC ladder
    """
    config = config or get_settings()
    backend = config.storage_backend.lower()

    if backend == "mongo":
        store = MongoWorkflowStore()
        qc_store = MongoQCStore()
        directory = DirectoryService()
        submissions = SubmissionService()
    elif backend == "memory":
        store = InMemoryWorkflowStore()
        qc_store = InMemoryQCStore()
        directory = InMemoryDirectory()
        submissions = InMemorySubmissionStore()
    else:
        raise ValueError(f"Unknown storage backend: {config.storage_backend}")

    dispatcher = build_dispatcher(config)
    engine = WorkflowEngine(
        store=store,
        identity=directory,
        dispatcher=dispatcher,
        submissions=submissions,
        updater=submissions,
        reminder_interval_minutes=config.reminder_interval_minutes
    )

    logger.info(
        f"Engine ready (storage={backend}, notifications={config.notification_backend})"
    )
    return Container(
        engine=engine,
        templates=WorkflowService(store),
        qc=QCLadder(qc_store, notifier=NotificationAdapter(dispatcher)),
        directory=directory,
        dispatcher=dispatcher,
        submissions=submissions
    )


@lru_cache()
def get_container() -> Container:
    """Get cached container instance"""
    return build_container()
