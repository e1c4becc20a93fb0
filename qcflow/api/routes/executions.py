"""Execution API Routes - Start workflows and act on steps"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_actor_dep, get_engine_dep
from ...domain.models import ActorContext
from ...domain.enums import Decision, ExecutionStatus, Priority
from ...engine import WorkflowEngine

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class StartWorkflowRequest(BaseModel):
    """Request to start a workflow for a submission"""
    template_id: str = Field(..., min_length=1)
    submission_id: str = Field(..., min_length=1)
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)


class StartWorkflowResponse(BaseModel):
    """Response after starting a workflow"""
    execution_id: str
    status: ExecutionStatus
    current_step: int


class DecisionRequest(BaseModel):
    """Decision on an active step"""
    decision: Decision
    comment: Optional[str] = Field(None, max_length=5000)
    attachments: List[str] = Field(default_factory=list)


class CommentRequest(BaseModel):
    """Comment on a step"""
    text: str = Field(..., min_length=1, max_length=5000)
    attachments: List[str] = Field(default_factory=list)
    is_internal: bool = False


class CommentResponse(BaseModel):
    comment_id: str


class ReassignRequest(BaseModel):
    """New assignees for an active step"""
    assignees: List[str] = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=StartWorkflowResponse, status_code=status.HTTP_201_CREATED)
def start_workflow(
    request: StartWorkflowRequest,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Start a workflow; the first applicable step is activated immediately"""
    execution = engine.start_workflow(
        template_id=request.template_id,
        submission_id=request.submission_id,
        submitted_by=actor.user_id,
        tenant_id=actor.tenant_id,
        priority=request.priority,
        tags=request.tags
    )
    return StartWorkflowResponse(
        execution_id=execution.execution_id,
        status=execution.status,
        current_step=execution.current_step
    )


@router.get("")
def list_executions(
    status_filter: Optional[ExecutionStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    executions = engine.list_executions(actor.tenant_id, status=status_filter, limit=limit)
    return {"items": [e.model_dump(mode="json") for e in executions], "total": len(executions)}


@router.get("/{execution_id}")
def get_execution(
    execution_id: str,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Execution with its steps and comment thread"""
    return engine.get_execution(execution_id, tenant_id=actor.tenant_id).model_dump(mode="json")


@router.post("/{execution_id}/steps/{step_id}/decision")
def decide_step(
    execution_id: str,
    step_id: str,
    request: DecisionRequest,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    execution = engine.process_step(
        execution_id,
        step_id,
        request.decision,
        actor.user_id,
        comment=request.comment,
        attachments=request.attachments,
        tenant_id=actor.tenant_id
    )
    return execution.model_dump(mode="json")


@router.post(
    "/{execution_id}/steps/{step_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED
)
def add_comment(
    execution_id: str,
    step_id: str,
    request: CommentRequest,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    comment = engine.add_comment(
        execution_id,
        step_id,
        actor.user_id,
        request.text,
        attachments=request.attachments,
        is_internal=request.is_internal,
        tenant_id=actor.tenant_id
    )
    return CommentResponse(comment_id=comment.comment_id)


@router.post("/{execution_id}/steps/{step_id}/reassign")
def reassign_step(
    execution_id: str,
    step_id: str,
    request: ReassignRequest,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    execution = engine.reassign_step(execution_id, step_id, actor.user_id, request.assignees, tenant_id=actor.tenant_id)
    return execution.model_dump(mode="json")


@router.post("/{execution_id}/resubmit")
def resubmit(
    execution_id: str,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Restart review after changes were requested"""
    return engine.resubmit(execution_id, actor.user_id, tenant_id=actor.tenant_id).model_dump(mode="json")


@router.post("/{execution_id}/cancel")
def cancel_workflow(
    execution_id: str,
    request: CancelRequest,
    actor: ActorContext = Depends(get_actor_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    execution = engine.cancel_workflow(execution_id, actor.user_id, reason=request.reason, tenant_id=actor.tenant_id)
    return execution.model_dump(mode="json")
