"""QC Ladder - Fixed revision ladder for file quality control

UPLOADED -> QC -> R1 -> R2 -> R3 -> R4 -> APPROVED | FAILED

Every review stage can APPROVE or FAIL a file; QC through R3 can also
ADJUST it, which sends it to the next revision round and counts one
revision. R4 is the last round and has no ADJUST.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .notification_adapter import NotificationAdapter
from ..domain.models import FileWorkflowStatus, QCStats, StageConfig, StageTransition
from ..domain.enums import QCAction, QCStage
from ..domain.errors import FileNotFoundInWorkflowError, InvalidStageActionError
from ..repositories.base import QCStore
from ..utils.idgen import generate_transition_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

STAGE_PROGRESSIONS: Dict[QCStage, Dict[QCAction, QCStage]] = {
    QCStage.UPLOADED: {QCAction.ASSIGN: QCStage.QC},
    QCStage.QC: {QCAction.APPROVE: QCStage.APPROVED, QCAction.ADJUST: QCStage.R1, QCAction.FAIL: QCStage.FAILED},
    QCStage.R1: {QCAction.APPROVE: QCStage.APPROVED, QCAction.ADJUST: QCStage.R2, QCAction.FAIL: QCStage.FAILED},
    QCStage.R2: {QCAction.APPROVE: QCStage.APPROVED, QCAction.ADJUST: QCStage.R3, QCAction.FAIL: QCStage.FAILED},
    QCStage.R3: {QCAction.APPROVE: QCStage.APPROVED, QCAction.ADJUST: QCStage.R4, QCAction.FAIL: QCStage.FAILED},
    QCStage.R4: {QCAction.APPROVE: QCStage.APPROVED, QCAction.FAIL: QCStage.FAILED},
    QCStage.APPROVED: {},
    QCStage.FAILED: {},
}

DEFAULT_STAGES: List[StageConfig] = [
    StageConfig(name=QCStage.UPLOADED, display_name="Uploaded", order=0),
    StageConfig(name=QCStage.QC, display_name="Quality Control", order=1),
    StageConfig(name=QCStage.R1, display_name="Revision 1", order=2),
    StageConfig(name=QCStage.R2, display_name="Revision 2", order=3),
    StageConfig(name=QCStage.R3, display_name="Revision 3", order=4),
    StageConfig(name=QCStage.R4, display_name="Revision 4", order=5),
    StageConfig(name=QCStage.APPROVED, display_name="Approved", order=6),
    StageConfig(name=QCStage.FAILED, display_name="Failed", order=7),
]


def allowed_actions(stage: QCStage) -> List[QCAction]:
    return list(STAGE_PROGRESSIONS.get(stage, {}))


class QCLadder:
    """State machine over the QC store; one lock per file"""

    def __init__(
        self,
        store: QCStore,
        notifier: Optional[NotificationAdapter] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock or utc_now

    # =========================================================================
    # Stage configuration
    # =========================================================================

    def initialize_stages(self, tenant_id: str) -> List[StageConfig]:
        """Store the default stage list unless the tenant already has one"""
        if self.store.get_stage_configs(tenant_id):
            return self.get_stages(tenant_id)
        self.store.save_stage_configs(tenant_id, DEFAULT_STAGES)
        logger.info("Initialized QC stages", extra={"tenant_id": tenant_id})
        return self.get_stages(tenant_id)

    def get_stages(self, tenant_id: str) -> List[StageConfig]:
        """Active stages for a tenant, falling back to the defaults"""
        configs = self.store.get_stage_configs(tenant_id)
        if not configs:
            return [c.model_copy() for c in DEFAULT_STAGES]
        return [c for c in configs if c.is_active]

    # =========================================================================
    # File operations
    # =========================================================================

    def register_file(self, file_id: str, tenant_id: str, original_name: Optional[str] = None) -> FileWorkflowStatus:
        now = self.clock()
        status = FileWorkflowStatus(
            file_id=file_id,
            tenant_id=tenant_id,
            original_name=original_name,
            current_stage=QCStage.UPLOADED,
            revision_count=0,
            created_at=now,
            updated_at=now
        )
        return self.store.create_file_status(status)

    def perform_action(
        self,
        file_id: str,
        action: QCAction,
        reviewer_id: str,
        tenant_id: str,
        comments: Optional[str] = None
    ) -> FileWorkflowStatus:
        """
        Apply a reviewer action to a file

        Raises:
            FileNotFoundInWorkflowError: unknown file
            InvalidStageActionError: action not allowed from the current stage
        """
        with self.store.lock(f"file:{file_id}"):
            status = self._load(file_id, tenant_id)
            current = status.current_stage
            progressions = STAGE_PROGRESSIONS.get(current, {})

            if action not in progressions:
                raise InvalidStageActionError(
                    f'Action "{action.value}" is not valid for stage "{current.value}"',
                    details={"file_id": file_id, "stage": current.value, "allowed": [a.value for a in progressions]}
                )

            new_stage = progressions[action]
            now = self.clock()

            if action == QCAction.ADJUST:
                status.revision_count += 1
            status.current_stage = new_stage
            status.assigned_to = None if new_stage.is_terminal else reviewer_id
            status.updated_at = now

            self.store.save_file_status(status)
            self.store.add_transition(StageTransition(
                transition_id=generate_transition_id(),
                file_id=file_id,
                tenant_id=tenant_id,
                from_stage=current,
                to_stage=new_stage,
                action=action,
                reviewer_id=reviewer_id,
                comments=comments,
                created_at=now
            ))

        logger.info(
            f"File {file_id}: {current.value} -> {new_stage.value}",
            extra={"file_id": file_id, "action": action.value, "stage": new_stage.value, "user_id": reviewer_id}
        )
        return self.get_status(file_id, tenant_id)

    def assign(
        self,
        file_id: str,
        reviewer_id: str,
        tenant_id: str,
        stage: Optional[QCStage] = None
    ) -> FileWorkflowStatus:
        """Assign a reviewer, optionally moving the file to another stage"""
        with self.store.lock(f"file:{file_id}"):
            status = self._load(file_id, tenant_id)
            current = status.current_stage
            now = self.clock()

            status.assigned_to = reviewer_id
            status.updated_at = now

            if stage and stage != current:
                status.current_stage = stage
                self.store.add_transition(StageTransition(
                    transition_id=generate_transition_id(),
                    file_id=file_id,
                    tenant_id=tenant_id,
                    from_stage=current,
                    to_stage=stage,
                    action=QCAction.ASSIGN,
                    reviewer_id=reviewer_id,
                    created_at=now
                ))

            self.store.save_file_status(status)

        logger.info(
            f"File {file_id} assigned to {reviewer_id}",
            extra={"file_id": file_id, "stage": status.current_stage.value, "user_id": reviewer_id}
        )
        if self.notifier:
            self.notifier.qc_assigned(tenant_id, file_id, reviewer_id, status.current_stage)
        return self.get_status(file_id, tenant_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_status(self, file_id: str, tenant_id: str) -> FileWorkflowStatus:
        """Current stage, revision count and assignee with the history oldest first"""
        status = self._load(file_id, tenant_id)
        status.history = self.store.list_transitions(file_id)
        return status

    def get_history(self, file_id: str, tenant_id: str) -> List[StageTransition]:
        """Stage transitions newest first"""
        self._load(file_id, tenant_id)
        return list(reversed(self.store.list_transitions(file_id)))

    def list_by_stage(
        self,
        tenant_id: str,
        stage: QCStage,
        assigned_to: Optional[str] = None
    ) -> List[FileWorkflowStatus]:
        files = self.store.list_file_statuses(tenant_id, stage)
        if assigned_to:
            files = [f for f in files if f.assigned_to == assigned_to]
        return files

    def get_stats(self, tenant_id: str) -> QCStats:
        files = self.store.list_file_statuses(tenant_id)
        total = len(files)
        by_stage: Dict[str, int] = {}
        total_revisions = 0
        completed = 0

        for f in files:
            by_stage[f.current_stage.value] = by_stage.get(f.current_stage.value, 0) + 1
            total_revisions += f.revision_count
            if f.current_stage.is_terminal:
                completed += 1

        return QCStats(
            total_files=total,
            by_stage=by_stage,
            avg_revisions=total_revisions / total if total else 0,
            completion_rate=(completed / total) * 100 if total else 0
        )

    def _load(self, file_id: str, tenant_id: str) -> FileWorkflowStatus:
        status = self.store.get_file_status(file_id)
        if status is None or status.tenant_id != tenant_id:
            raise FileNotFoundInWorkflowError(f"File {file_id} not found", details={"file_id": file_id})
        return status
