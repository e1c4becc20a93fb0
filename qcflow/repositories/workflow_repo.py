"""Workflow Repository - MongoDB store for templates, executions and comments"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from .mongo_client import get_collection
from .locking import MongoLeaseLock
from ..config.settings import settings
from ..domain.models import WorkflowTemplate, WorkflowExecution, Comment
from ..domain.enums import ExecutionStatus, StepStatus
from ..domain.errors import (
    ConcurrencyError, ExecutionNotFoundError, PersistenceError, TemplateNotFoundError
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


@contextmanager
def persistence_guard(operation: str) -> Iterator[None]:
    """Translate driver errors into PersistenceError"""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} failed: {e}", extra={"error_code": PersistenceError.error_code})
        raise PersistenceError(f"Store operation failed: {operation}", details={"error": str(e)})


def to_document(model, id_field: str) -> Dict[str, Any]:
    # Don't use mode="json" - it converts datetime to strings, breaking range queries
    doc = model.model_dump()
    doc["_id"] = doc[id_field]
    return doc


class MongoWorkflowStore:
    """WorkflowStore backed by MongoDB"""

    def __init__(
        self,
        templates: Optional[Collection] = None,
        executions: Optional[Collection] = None,
        comments: Optional[Collection] = None,
        locks: Optional[Collection] = None
    ):
        self._templates: Collection = templates if templates is not None else get_collection("workflow_templates")
        self._executions: Collection = executions if executions is not None else get_collection("workflow_executions")
        self._comments: Collection = comments if comments is not None else get_collection("workflow_comments")
        self._lock = MongoLeaseLock(
            locks if locks is not None else get_collection("execution_locks"),
            ttl_seconds=settings.execution_lock_ttl_seconds,
            wait_seconds=settings.execution_lock_wait_seconds
        )

    # =========================================================================
    # Templates
    # =========================================================================

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        doc = template.model_dump()
        doc["_id"] = f"{template.template_id}:v{template.version}"

        with persistence_guard("save_template"):
            try:
                self._templates.insert_one(doc)
            except DuplicateKeyError:
                raise ConcurrencyError(
                    f"Template {template.template_id} version {template.version} already exists",
                    details={"template_id": template.template_id, "version": template.version}
                )

        logger.info(
            f"Saved template {template.template_id} v{template.version}",
            extra={"template_id": template.template_id, "tenant_id": template.tenant_id}
        )
        return template

    def get_template(self, template_id: str, version: Optional[int] = None) -> Optional[WorkflowTemplate]:
        query: Dict[str, Any] = {"template_id": template_id}
        if version is not None:
            query["version"] = version

        with persistence_guard("get_template"):
            doc = self._templates.find_one(query, sort=[("version", DESCENDING)])
        if doc:
            doc.pop("_id", None)
            return WorkflowTemplate.model_validate(doc)
        return None

    def list_templates(self, tenant_id: Optional[str] = None, active_only: bool = False) -> List[WorkflowTemplate]:
        match: Dict[str, Any] = {}
        if tenant_id:
            match["tenant_id"] = tenant_id
        if active_only:
            match["active"] = True

        pipeline = [
            {"$match": match},
            {"$sort": {"version": -1}},
            {"$group": {"_id": "$template_id", "doc": {"$first": "$$ROOT"}}},
            {"$replaceRoot": {"newRoot": "$doc"}},
            {"$sort": {"created_at": -1}},
        ]

        templates = []
        with persistence_guard("list_templates"):
            for doc in self._templates.aggregate(pipeline):
                doc.pop("_id", None)
                templates.append(WorkflowTemplate.model_validate(doc))
        return templates

    def set_template_active(self, template_id: str, active: bool) -> WorkflowTemplate:
        with persistence_guard("set_template_active"):
            result = self._templates.update_many({"template_id": template_id}, {"$set": {"active": active}})
        if result.matched_count == 0:
            raise TemplateNotFoundError(f"Template {template_id} not found")

        logger.info(f"Template {template_id} active={active}", extra={"template_id": template_id})
        return self.get_template(template_id)

    # =========================================================================
    # Executions
    # =========================================================================

    def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        with persistence_guard("create_execution"):
            self._executions.insert_one(to_document(execution, "execution_id"))
        logger.info(
            f"Created execution: {execution.execution_id}",
            extra={"execution_id": execution.execution_id, "tenant_id": execution.tenant_id}
        )
        return execution

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        with persistence_guard("get_execution"):
            doc = self._executions.find_one({"execution_id": execution_id})
        if doc:
            doc.pop("_id", None)
            return WorkflowExecution.model_validate(doc)
        return None

    def update_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Update execution with optimistic concurrency"""
        expected_version = execution.version
        doc = to_document(execution, "execution_id")
        doc.pop("_id")
        doc["version"] = expected_version + 1

        with persistence_guard("update_execution"):
            result = self._executions.find_one_and_update(
                {"execution_id": execution.execution_id, "version": expected_version},
                {"$set": doc},
                return_document=ReturnDocument.AFTER
            )

            if result is None:
                exists = self._executions.find_one({"execution_id": execution.execution_id}, {"version": 1})
                if exists:
                    raise ConcurrencyError(
                        f"Execution {execution.execution_id} was modified. Please refresh and try again.",
                        details={"expected_version": expected_version}
                    )
                raise ExecutionNotFoundError(f"Execution {execution.execution_id} not found")

        execution.version = expected_version + 1
        logger.debug(
            f"Updated execution: {execution.execution_id}",
            extra={"execution_id": execution.execution_id, "status": execution.status.value}
        )
        return execution

    def list_executions(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100
    ) -> List[WorkflowExecution]:
        query: Dict[str, Any] = {}
        if tenant_id:
            query["tenant_id"] = tenant_id
        if status:
            query["status"] = status.value

        executions = []
        with persistence_guard("list_executions"):
            cursor = self._executions.find(query).sort("submitted_at", DESCENDING).limit(limit)
            for doc in cursor:
                doc.pop("_id", None)
                executions.append(WorkflowExecution.model_validate(doc))
        return executions

    def find_expired_executions(
        self, now: datetime, limit: int = 100, after: Optional[str] = None
    ) -> List[WorkflowExecution]:
        query: Dict[str, Any] = {
            "status": ExecutionStatus.IN_PROGRESS.value,
            "steps": {
                "$elemMatch": {
                    "status": StepStatus.IN_PROGRESS.value,
                    "timeout_at": {"$ne": None, "$lte": now}
                }
            }
        }
        if after is not None:
            query["execution_id"] = {"$gt": after}

        executions = []
        with persistence_guard("find_expired_executions"):
            for doc in self._executions.find(query).sort("execution_id", ASCENDING).limit(limit):
                doc.pop("_id", None)
                executions.append(WorkflowExecution.model_validate(doc))
        return executions

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(self, comment: Comment) -> Comment:
        with persistence_guard("add_comment"):
            self._comments.insert_one(to_document(comment, "comment_id"))
        return comment

    def list_comments(self, execution_id: str) -> List[Comment]:
        comments = []
        with persistence_guard("list_comments"):
            cursor = self._comments.find({"execution_id": execution_id}).sort("created_at", ASCENDING)
            for doc in cursor:
                doc.pop("_id", None)
                comments.append(Comment.model_validate(doc))
        return comments

    def lock(self, key: str):
        return self._lock(key)
