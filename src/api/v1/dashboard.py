"""Dashboard, catalogue, and notification endpoints for the GRS API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from src.api.v1.complaints import get_complaint_service
from src.middleware.auth import require_actor
from src.models.actor import Actor
from src.models.complaint import Complaint, ComplaintStats
from src.models.enums import (
    CATEGORIES,
    DEPARTMENTS,
    ComplaintPriority,
    ComplaintStatus,
    Role,
)
from src.services.complaints import ComplaintService
from src.services.notifications import InMemoryNotificationSink, Notification

router = APIRouter(tags=["dashboard"])


class DashboardResponse(BaseModel):
    actor: Actor
    stats: ComplaintStats
    recent_complaints: list[Complaint]


class CatalogueResponse(BaseModel):
    departments: list[str]
    categories: list[str]
    priorities: list[str]
    statuses: list[str]
    roles: list[str]


class NotificationListResponse(BaseModel):
    notifications: list[Notification]
    total: int


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    actor: Actor = Depends(require_actor),
    service: ComplaintService = Depends(get_complaint_service),
) -> DashboardResponse:
    """Per-status counters and the most recent complaints the caller can see."""
    return DashboardResponse(
        actor=actor,
        stats=await service.stats(actor),
        recent_complaints=await service.recent(actor),
    )


@router.get("/catalogue", response_model=CatalogueResponse)
async def catalogue() -> CatalogueResponse:
    """Values accepted by the submission and status-change forms."""
    return CatalogueResponse(
        departments=list(DEPARTMENTS),
        categories=list(CATEGORIES),
        priorities=[p.value for p in ComplaintPriority],
        statuses=[s.value for s in ComplaintStatus],
        roles=[r.value for r in Role],
    )


@router.get("/notifications", response_model=NotificationListResponse)
async def notifications(
    request: Request,
    limit: int = Query(default=10, ge=1, le=50),
    actor: Actor = Depends(require_actor),
) -> NotificationListResponse:
    """The caller's most recent success and error notices, newest first."""
    sink: InMemoryNotificationSink | None = getattr(request.app.state, "notifications", None)
    if sink is None:
        raise HTTPException(status_code=503, detail="Notification service not available")
    notices = sink.recent(limit, actor_id=actor.id)
    return NotificationListResponse(notifications=notices, total=len(notices))
