"""Admin API Routes - Directory membership, sweeper control and notification outbox"""
from typing import List, Literal
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_actor_dep, get_container_dep
from ...bootstrap import Container
from ...domain.models import ActorContext
from ...domain.errors import InvalidStateError, NotFoundError, PermissionDeniedError
from ...repositories.notification_repo import NotificationRepository
from ...services.notification_service import OutboxNotificationDispatcher
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

ADMIN_ROLE = "admin"


class MembershipRequest(BaseModel):
    """Full member list of a role or group"""
    members: List[str] = Field(default_factory=list)


def require_admin(actor: ActorContext = Depends(get_actor_dep)) -> ActorContext:
    """
    Require the admin role

    Raises:
        PermissionDeniedError: If the caller lacks the admin role
    """
    if ADMIN_ROLE not in actor.roles:
        raise PermissionDeniedError(
            "Admin role required",
            details={"user_id": actor.user_id}
        )
    return actor


@router.post("/sweep")
def run_sweep(
    actor: ActorContext = Depends(require_admin),
    container: Container = Depends(get_container_dep)
):
    """Run one timeout sweep now instead of waiting for the scheduler"""
    outcomes = container.engine.sweep_timeouts()
    logger.info(f"Manual sweep handled {len(outcomes)} steps", extra={"user_id": actor.user_id})
    return {"handled": len(outcomes), "items": [o.model_dump(mode="json") for o in outcomes]}


@router.put("/directory/{kind}/{ref_id}")
def set_membership(
    kind: Literal["role", "group"],
    ref_id: str,
    request: MembershipRequest,
    actor: ActorContext = Depends(require_admin),
    container: Container = Depends(get_container_dep)
):
    """Replace the members of a role or group in the caller's tenant"""
    container.directory.set_members(kind, ref_id, actor.tenant_id, request.members)
    return {"kind": kind, "ref_id": ref_id, "members": list(dict.fromkeys(request.members))}


# ============================================================================
# Notification outbox
# ============================================================================

class DeliveryFailureRequest(BaseModel):
    error: str = Field(..., min_length=1, max_length=2000)


def get_outbox_repo(container: Container = Depends(get_container_dep)) -> NotificationRepository:
    """
    Outbox repository of the configured dispatcher

    Raises:
        InvalidStateError: If notifications are not written to the outbox
    """
    dispatcher = container.dispatcher
    if not isinstance(dispatcher, OutboxNotificationDispatcher):
        raise InvalidStateError(
            "Notification outbox is not enabled",
            details={"dispatcher": type(dispatcher).__name__}
        )
    return dispatcher.repo


def _tenant_notification(repo: NotificationRepository, notification_id: str, tenant_id: str):
    notification = repo.get_notification(notification_id)
    if notification is None or notification.tenant_id != tenant_id:
        raise NotFoundError(f"Notification {notification_id} not found")
    return notification


@router.get("/outbox")
def get_outbox(
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(require_admin),
    repo: NotificationRepository = Depends(get_outbox_repo)
):
    """Status counts plus the oldest pending messages of the caller's tenant"""
    pending = [n for n in repo.get_pending_notifications(limit) if n.tenant_id == actor.tenant_id]
    return {
        "counts": repo.count_by_status(),
        "pending": [n.model_dump(mode="json") for n in pending]
    }


@router.get("/outbox/executions/{execution_id}")
def get_execution_notifications(
    execution_id: str,
    actor: ActorContext = Depends(require_admin),
    repo: NotificationRepository = Depends(get_outbox_repo)
):
    items = [
        n for n in repo.get_notifications_for_execution(execution_id)
        if n.tenant_id == actor.tenant_id
    ]
    return {"items": [n.model_dump(mode="json") for n in items]}


@router.post("/outbox/{notification_id}/sent")
def mark_notification_sent(
    notification_id: str,
    actor: ActorContext = Depends(require_admin),
    repo: NotificationRepository = Depends(get_outbox_repo)
):
    """Record delivery reported by the external worker"""
    _tenant_notification(repo, notification_id, actor.tenant_id)
    repo.mark_sent(notification_id)
    return repo.get_notification(notification_id).model_dump(mode="json")


@router.post("/outbox/{notification_id}/failed")
def mark_notification_failed(
    notification_id: str,
    request: DeliveryFailureRequest,
    actor: ActorContext = Depends(require_admin),
    repo: NotificationRepository = Depends(get_outbox_repo)
):
    _tenant_notification(repo, notification_id, actor.tenant_id)
    repo.mark_failed(notification_id, request.error)
    logger.warning(
        f"Notification {notification_id} marked failed: {request.error}",
        extra={"user_id": actor.user_id}
    )
    return repo.get_notification(notification_id).model_dump(mode="json")
