"""Submission Service - Data source for reviewed submissions and action target"""
from typing import Any, Dict, List, Optional

from pymongo.collection import Collection

from ..domain.models import Submission
from ..domain.errors import SubmissionNotFoundError
from ..repositories.mongo_client import get_collection
from ..repositories.workflow_repo import persistence_guard
from ..utils.idgen import generate_task_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class SubmissionService:
    """SubmissionSource and RecordUpdater over the `submissions` and `tasks` collections"""

    def __init__(self, submissions: Optional[Collection] = None, tasks: Optional[Collection] = None):
        self._submissions: Collection = submissions if submissions is not None else get_collection("submissions")
        self._tasks: Collection = tasks if tasks is not None else get_collection("tasks")

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        with persistence_guard("get_submission"):
            doc = self._submissions.find_one({"submission_id": submission_id})
        if doc:
            doc.pop("_id", None)
            return Submission.model_validate(doc)
        return None

    def save_submission(self, submission: Submission) -> Submission:
        doc = submission.model_dump()
        with persistence_guard("save_submission"):
            self._submissions.update_one(
                {"submission_id": submission.submission_id},
                {"$set": doc},
                upsert=True
            )
        return submission

    def update_field(self, submission_id: str, field: str, value: Any) -> None:
        with persistence_guard("update_field"):
            result = self._submissions.update_one(
                {"submission_id": submission_id},
                {"$set": {f"data.{field}": value, "updated_at": utc_now()}}
            )
        if result.matched_count == 0:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        logger.info(f"Updated field {field} on submission {submission_id}")

    def create_task(
        self,
        tenant_id: str,
        title: str,
        description: Optional[str],
        assignee_id: Optional[str],
        execution_id: str
    ) -> str:
        task_id = generate_task_id()
        with persistence_guard("create_task"):
            self._tasks.insert_one({
                "_id": task_id,
                "task_id": task_id,
                "tenant_id": tenant_id,
                "title": title,
                "description": description,
                "assignee_id": assignee_id,
                "execution_id": execution_id,
                "status": "open",
                "created_at": utc_now()
            })
        logger.info(f"Created task {task_id}", extra={"execution_id": execution_id, "tenant_id": tenant_id})
        return task_id

    def assign_user(self, submission_id: str, user_id: str) -> None:
        with persistence_guard("assign_user"):
            result = self._submissions.update_one(
                {"submission_id": submission_id},
                {"$set": {"assigned_to": user_id, "updated_at": utc_now()}}
            )
        if result.matched_count == 0:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        logger.info(f"Assigned submission {submission_id} to {user_id}", extra={"user_id": user_id})


class InMemorySubmissionStore:
    """Dict-backed SubmissionSource and RecordUpdater"""

    def __init__(self):
        self.submissions: Dict[str, Submission] = {}
        self.assignments: Dict[str, str] = {}
        self.tasks: List[Dict[str, Any]] = []

    def add(self, submission_id: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> Submission:
        submission = Submission(submission_id=submission_id, data=data or {}, **kwargs)
        self.submissions[submission_id] = submission
        return submission

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        submission = self.submissions.get(submission_id)
        return submission.model_copy(deep=True) if submission else None

    def update_field(self, submission_id: str, field: str, value: Any) -> None:
        if submission_id not in self.submissions:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        self.submissions[submission_id].data[field] = value

    def create_task(
        self,
        tenant_id: str,
        title: str,
        description: Optional[str],
        assignee_id: Optional[str],
        execution_id: str
    ) -> str:
        task_id = generate_task_id()
        self.tasks.append({
            "task_id": task_id,
            "tenant_id": tenant_id,
            "title": title,
            "description": description,
            "assignee_id": assignee_id,
            "execution_id": execution_id
        })
        return task_id

    def assign_user(self, submission_id: str, user_id: str) -> None:
        if submission_id not in self.submissions:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        self.assignments[submission_id] = user_id
