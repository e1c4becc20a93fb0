"""Template API Routes - Workflow template administration"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_actor_dep, get_template_service_dep
from ...domain.models import ActorContext, StepTemplate, WorkflowSettings
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateTemplateRequest(BaseModel):
    """Request to create a new template"""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    form_id: Optional[str] = None
    steps: List[StepTemplate] = Field(default_factory=list)
    settings: Optional[WorkflowSettings] = None


class PublishVersionRequest(BaseModel):
    """Request to publish a new template version"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    steps: Optional[List[StepTemplate]] = None
    settings: Optional[WorkflowSettings] = None


class ValidateStepsRequest(BaseModel):
    """Request to validate a step list without saving it"""
    steps: List[StepTemplate] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Validation result"""
    is_valid: bool
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[Dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Routes
# ============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_template(
    request: CreateTemplateRequest,
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    """Create version 1 of a template"""
    template = service.create_template(
        name=request.name,
        steps=request.steps,
        actor=actor,
        description=request.description,
        form_id=request.form_id,
        settings=request.settings
    )
    return template.model_dump(mode="json")


@router.get("")
def list_templates(
    active_only: bool = Query(False),
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    """Latest version of every template in the caller's tenant"""
    templates = service.list_templates(actor.tenant_id, active_only=active_only)
    return {"items": [t.model_dump(mode="json") for t in templates], "total": len(templates)}


@router.post("/validate", response_model=ValidationResult)
def validate_steps(
    request: ValidateStepsRequest,
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    return ValidationResult(**service.validate_steps(request.steps))


@router.get("/{template_id}")
def get_template(
    template_id: str,
    version: Optional[int] = Query(None, ge=1),
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    """Get the latest or a pinned version of a template"""
    return service.get_template(template_id, version=version, tenant_id=actor.tenant_id).model_dump(mode="json")


@router.post("/{template_id}/versions", status_code=status.HTTP_201_CREATED)
def publish_version(
    template_id: str,
    request: PublishVersionRequest,
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    """Publish version N+1; running executions keep their pinned version"""
    template = service.publish_new_version(
        template_id,
        actor,
        steps=request.steps,
        settings=request.settings,
        name=request.name,
        description=request.description
    )
    return template.model_dump(mode="json")


@router.post("/{template_id}/deactivate")
def deactivate_template(
    template_id: str,
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    template = service.deactivate_template(template_id, actor)
    logger.info(f"Deactivated template {template_id}", extra={"template_id": template_id, "user_id": actor.user_id})
    return template.model_dump(mode="json")


@router.post("/{template_id}/activate")
def activate_template(
    template_id: str,
    actor: ActorContext = Depends(get_actor_dep),
    service: WorkflowService = Depends(get_template_service_dep)
):
    template = service.activate_template(template_id, actor)
    logger.info(f"Activated template {template_id}", extra={"template_id": template_id, "user_id": actor.user_id})
    return template.model_dump(mode="json")
