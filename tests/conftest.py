"""
Pytest Configuration and Fixtures

Every fixture wires the engine against the in-memory store and
collaborators, with a controllable clock.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

from qcflow.domain.models import ActorContext, StepTemplate, UserAssignee, WorkflowSettings, WorkflowTemplate
from qcflow.engine import WorkflowEngine, QCLadder, NotificationAdapter
from qcflow.repositories.memory_store import InMemoryWorkflowStore, InMemoryQCStore
from qcflow.services.directory_service import InMemoryDirectory
from qcflow.services.notification_service import InMemoryNotificationDispatcher
from qcflow.services.submission_service import InMemorySubmissionStore
from qcflow.services.workflow_service import WorkflowService

TENANT = "tenant-1"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float = 0, minutes: float = 0) -> datetime:
        self.now = self.now + timedelta(hours=hours, minutes=minutes)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def directory() -> InMemoryDirectory:
    directory = InMemoryDirectory()
    directory.add_role(TENANT, "managers", ["mgr-1", "mgr-2"])
    directory.add_role(TENANT, "finance", ["fin-1"])
    directory.add_group(TENANT, "directors", ["dir-1"])
    return directory


@pytest.fixture
def dispatcher() -> InMemoryNotificationDispatcher:
    return InMemoryNotificationDispatcher()


@pytest.fixture
def submissions() -> InMemorySubmissionStore:
    submissions = InMemorySubmissionStore()
    submissions.add("sub-1", {"priority": "high", "amount": 500}, tenant_id=TENANT, submitted_by="alice")
    return submissions


@pytest.fixture
def engine(store, directory, dispatcher, submissions, clock) -> WorkflowEngine:
    return WorkflowEngine(
        store=store,
        identity=directory,
        dispatcher=dispatcher,
        submissions=submissions,
        updater=submissions,
        clock=clock,
        reminder_interval_minutes=60
    )


@pytest.fixture
def template_service(store) -> WorkflowService:
    return WorkflowService(store)


@pytest.fixture
def actor() -> ActorContext:
    return ActorContext(user_id="admin", tenant_id=TENANT, roles=["admin"])


@pytest.fixture
def make_template(template_service, actor) -> Callable[..., WorkflowTemplate]:
    """Create and store a template from a list of steps"""

    def _make(steps: List[StepTemplate], settings: Optional[WorkflowSettings] = None, name: str = "Review") -> WorkflowTemplate:
        return template_service.create_template(name=name, steps=steps, actor=actor, settings=settings)

    return _make


def user_step(step_id: str, order: int, *users: str, **kwargs) -> StepTemplate:
    """Approval step assigned to explicit users"""
    return StepTemplate(
        step_id=step_id,
        name=step_id.replace("_", " ").title(),
        order=order,
        assignees=[UserAssignee(id=u) for u in users],
        **kwargs
    )


@pytest.fixture
def qc_store() -> InMemoryQCStore:
    return InMemoryQCStore()


@pytest.fixture
def qc_ladder(qc_store, dispatcher, clock) -> QCLadder:
    return QCLadder(qc_store, notifier=NotificationAdapter(dispatcher), clock=clock)
