"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header, HTTPException, status

from ..bootstrap import Container, get_container
from ..domain.models import ActorContext
from ..engine import WorkflowEngine, QCLadder
from ..services.workflow_service import WorkflowService


async def get_actor_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_user_roles: Optional[str] = Header(None, alias="X-User-Roles")
) -> ActorContext:
    """
    Caller identity supplied by the fronting gateway

    Authentication happens upstream; this service trusts the identity
    headers it is given.

    Raises:
        HTTPException: 401 if user or tenant header is missing
    """
    if not x_user_id or not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "X-User-Id and X-Tenant-Id headers are required"}}
        )

    roles = [r.strip() for r in (x_user_roles or "").split(",") if r.strip()]
    return ActorContext(user_id=x_user_id, tenant_id=x_tenant_id, roles=roles)


def get_container_dep() -> Container:
    return get_container()


def get_engine_dep() -> WorkflowEngine:
    return get_container().engine


def get_template_service_dep() -> WorkflowService:
    return get_container().templates


def get_qc_ladder_dep() -> QCLadder:
    return get_container().qc
