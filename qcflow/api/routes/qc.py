"""QC API Routes - File revision ladder"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_actor_dep, get_qc_ladder_dep
from ...domain.models import ActorContext
from ...domain.enums import QCAction, QCStage
from ...engine import QCLadder
from ...engine.qc_ladder import allowed_actions

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class RegisterFileRequest(BaseModel):
    file_id: str = Field(..., min_length=1)
    original_name: Optional[str] = None


class QCActionRequest(BaseModel):
    """Reviewer action on a file"""
    action: QCAction
    comments: Optional[str] = Field(None, max_length=5000)


class QCAssignRequest(BaseModel):
    reviewer_id: str = Field(..., min_length=1)
    stage: Optional[QCStage] = None


# ============================================================================
# Stage configuration
# ============================================================================

@router.get("/stages")
def get_stages(
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    return {"items": [s.model_dump(mode="json") for s in ladder.get_stages(actor.tenant_id)]}


@router.post("/stages/initialize")
def initialize_stages(
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    """Create the default stage list if the tenant has none"""
    return {"items": [s.model_dump(mode="json") for s in ladder.initialize_stages(actor.tenant_id)]}


@router.get("/stages/{stage}/files")
def list_files_in_stage(
    stage: QCStage,
    assigned_to: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    files = ladder.list_by_stage(actor.tenant_id, stage, assigned_to=assigned_to)
    return {"items": [f.model_dump(mode="json") for f in files], "total": len(files)}


@router.get("/stats")
def get_stats(
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    return ladder.get_stats(actor.tenant_id).model_dump(mode="json")


# ============================================================================
# Files
# ============================================================================

@router.post("/files", status_code=status.HTTP_201_CREATED)
def register_file(
    request: RegisterFileRequest,
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    """Enter a file at the UPLOADED stage"""
    return ladder.register_file(request.file_id, actor.tenant_id, original_name=request.original_name).model_dump(mode="json")


@router.get("/files/{file_id}")
def get_file_status(
    file_id: str,
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    file_status = ladder.get_status(file_id, actor.tenant_id)
    return {
        **file_status.model_dump(mode="json"),
        "allowed_actions": [a.value for a in allowed_actions(file_status.current_stage)]
    }


@router.get("/files/{file_id}/history")
def get_file_history(
    file_id: str,
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    return {"items": [t.model_dump(mode="json") for t in ladder.get_history(file_id, actor.tenant_id)]}


@router.post("/files/{file_id}/actions")
def perform_action(
    file_id: str,
    request: QCActionRequest,
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    file_status = ladder.perform_action(
        file_id,
        request.action,
        reviewer_id=actor.user_id,
        tenant_id=actor.tenant_id,
        comments=request.comments
    )
    return file_status.model_dump(mode="json")


@router.post("/files/{file_id}/assign")
def assign_reviewer(
    file_id: str,
    request: QCAssignRequest,
    actor: ActorContext = Depends(get_actor_dep),
    ladder: QCLadder = Depends(get_qc_ladder_dep)
):
    file_status = ladder.assign(file_id, request.reviewer_id, actor.tenant_id, stage=request.stage)
    return file_status.model_dump(mode="json")
