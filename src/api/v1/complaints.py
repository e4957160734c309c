"""Complaint endpoints for the GRS API v1.

Every endpoint acts on behalf of the session's actor: listings are
filtered to what the actor may see, and mutations go through the
policy checks in :class:`~src.services.complaints.ComplaintService`.
Rejections are returned with the human-readable reason as ``detail``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.middleware.auth import require_actor
from src.models.actor import Actor
from src.models.complaint import Complaint, ComplaintDraft, ComplaintResponse
from src.models.enums import ComplaintStatus
from src.services.complaint_store import (
    ComplaintBusy,
    ComplaintNotFound,
    StaleComplaint,
    StoreError,
    StoreUnavailable,
)
from src.services.complaints import ComplaintService
from src.services.policy import (
    EmptyMessage,
    NotVisible,
    NoOpTransition,
    PolicyError,
    Unauthorized,
)

router = APIRouter(prefix="/complaints", tags=["complaints"])

_ERROR_STATUS: dict[type[Exception], int] = {
    Unauthorized: 403,
    NotVisible: 404,
    ComplaintNotFound: 404,
    NoOpTransition: 409,
    StaleComplaint: 409,
    ComplaintBusy: 409,
    EmptyMessage: 422,
    StoreUnavailable: 503,
}


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class AddResponseRequest(BaseModel):
    message: str = Field(..., max_length=5000)


class StatusChangeRequest(BaseModel):
    status: ComplaintStatus


class ComplaintListResponse(BaseModel):
    complaints: list[Complaint]
    total: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_complaint_service(request: Request) -> ComplaintService:
    service: ComplaintService | None = getattr(request.app.state, "complaints", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Complaint service not available")
    return service


def _rejection(exc: PolicyError | StoreError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(type(exc), 400), detail=exc.reason)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    q: str | None = Query(default=None, max_length=200, description="Search title, category, description"),
    status: ComplaintStatus | None = Query(default=None, description="Only complaints in this status"),
    actor: Actor = Depends(require_actor),
    service: ComplaintService = Depends(get_complaint_service),
) -> ComplaintListResponse:
    """List the complaints visible to the caller, newest first."""
    complaints = await service.list_visible(actor, query=q, status=status)
    return ComplaintListResponse(complaints=complaints, total=len(complaints))


@router.post("", response_model=Complaint, status_code=201)
async def submit_complaint(
    body: ComplaintDraft,
    actor: Actor = Depends(require_actor),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    """File a new complaint.  Only citizens and NGOs may submit."""
    try:
        return await service.submit(actor, body)
    except (PolicyError, StoreError) as exc:
        raise _rejection(exc) from None


@router.get("/{complaint_id}", response_model=Complaint)
async def get_complaint(
    complaint_id: str,
    actor: Actor = Depends(require_actor),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    try:
        return await service.get(actor, complaint_id)
    except PolicyError as exc:
        raise _rejection(exc) from None


@router.post("/{complaint_id}/responses", response_model=ComplaintResponse, status_code=201)
async def add_response(
    complaint_id: str,
    body: AddResponseRequest,
    actor: Actor = Depends(require_actor),
    service: ComplaintService = Depends(get_complaint_service),
) -> ComplaintResponse:
    """Append a response to a complaint the caller can see."""
    try:
        return await service.respond(actor, complaint_id, body.message)
    except (PolicyError, StoreError) as exc:
        raise _rejection(exc) from None


@router.post("/{complaint_id}/status", response_model=Complaint)
async def change_status(
    complaint_id: str,
    body: StatusChangeRequest,
    actor: Actor = Depends(require_actor),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    """Move a complaint to a new status (authorities and admins only)."""
    try:
        return await service.change_status(actor, complaint_id, body.status)
    except (PolicyError, StoreError) as exc:
        raise _rejection(exc) from None
