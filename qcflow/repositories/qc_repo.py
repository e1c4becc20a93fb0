"""QC Repository - MongoDB store for the file QC revision ladder"""
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from .mongo_client import get_collection
from .locking import MongoLeaseLock
from .workflow_repo import persistence_guard, to_document
from ..config.settings import settings
from ..domain.models import FileWorkflowStatus, StageTransition, StageConfig
from ..domain.enums import QCStage
from ..domain.errors import FileNotFoundInWorkflowError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MongoQCStore:
    """QCStore backed by MongoDB"""

    def __init__(self):
        self._files: Collection = get_collection("file_workflow_status")
        self._transitions: Collection = get_collection("stage_transitions")
        self._stages: Collection = get_collection("workflow_stages")
        self._lock = MongoLeaseLock(
            get_collection("execution_locks"),
            ttl_seconds=settings.execution_lock_ttl_seconds,
            wait_seconds=settings.execution_lock_wait_seconds
        )

    def create_file_status(self, status: FileWorkflowStatus) -> FileWorkflowStatus:
        doc = to_document(status, "file_id")
        doc.pop("history", None)
        with persistence_guard("create_file_status"):
            self._files.insert_one(doc)
        logger.info(f"Registered file for QC: {status.file_id}", extra={"file_id": status.file_id})
        return status

    def get_file_status(self, file_id: str) -> Optional[FileWorkflowStatus]:
        with persistence_guard("get_file_status"):
            doc = self._files.find_one({"file_id": file_id})
        if doc:
            doc.pop("_id", None)
            return FileWorkflowStatus.model_validate(doc)
        return None

    def save_file_status(self, status: FileWorkflowStatus) -> FileWorkflowStatus:
        doc = status.model_dump(exclude={"history", "file_id"})
        with persistence_guard("save_file_status"):
            result = self._files.update_one({"file_id": status.file_id}, {"$set": doc})
        if result.matched_count == 0:
            raise FileNotFoundInWorkflowError(f"File {status.file_id} not found")
        return status

    def list_file_statuses(self, tenant_id: str, stage: Optional[QCStage] = None) -> List[FileWorkflowStatus]:
        query: Dict[str, Any] = {"tenant_id": tenant_id}
        if stage:
            query["current_stage"] = stage.value

        files = []
        with persistence_guard("list_file_statuses"):
            for doc in self._files.find(query).sort("created_at", DESCENDING):
                doc.pop("_id", None)
                files.append(FileWorkflowStatus.model_validate(doc))
        return files

    def add_transition(self, transition: StageTransition) -> StageTransition:
        with persistence_guard("add_transition"):
            self._transitions.insert_one(to_document(transition, "transition_id"))
        return transition

    def list_transitions(self, file_id: str) -> List[StageTransition]:
        transitions = []
        with persistence_guard("list_transitions"):
            for doc in self._transitions.find({"file_id": file_id}).sort("created_at", ASCENDING):
                doc.pop("_id", None)
                transitions.append(StageTransition.model_validate(doc))
        return transitions

    def get_stage_configs(self, tenant_id: str) -> List[StageConfig]:
        with persistence_guard("get_stage_configs"):
            cursor = self._stages.find({"tenant_id": tenant_id}).sort("order", ASCENDING)
            return [StageConfig.model_validate(doc) for doc in cursor]

    def save_stage_configs(self, tenant_id: str, configs: List[StageConfig]) -> None:
        docs = []
        for config in configs:
            doc = config.model_dump()
            doc["tenant_id"] = tenant_id
            docs.append(doc)

        with persistence_guard("save_stage_configs"):
            self._stages.delete_many({"tenant_id": tenant_id})
            if docs:
                self._stages.insert_many(docs)

    def lock(self, key: str):
        return self._lock(key)
