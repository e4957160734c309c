"""Visibility and mutation policy for complaints.

Pure decision layer: every function takes the acting :class:`Actor`
explicitly (``None`` for an anonymous caller), performs no I/O, and
never mutates its inputs.  Callers run these checks before handing a
mutation to the complaint store.

Rules:

* citizens and NGOs see only the complaints they submitted;
* authorities see the complaints filed against their department, and
  nothing at all when they have no department;
* admins see everything;
* any role outside :class:`Role` sees nothing.

Anyone who can see a complaint may respond to it.  Only authorities and
admins may change its status, and a change to the current status is
rejected.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from src.models.actor import Actor
from src.models.complaint import Complaint, ComplaintResponse
from src.models.enums import FILING_ROLES, STAFF_ROLES, ComplaintStatus, Role

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class PolicyError(Exception):
    """Base class for rejected complaint operations.

    Attributes:
        reason: Human-readable explanation suitable for showing to the user.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class Unauthorized(PolicyError):
    """The actor's role or visibility does not permit the mutation."""


class NoOpTransition(PolicyError):
    """The requested status equals the complaint's current status."""

    def __init__(self, status: ComplaintStatus) -> None:
        self.status = status
        super().__init__(f"Complaint is already {status}.")


class EmptyMessage(PolicyError):
    """A response was submitted with no text."""

    def __init__(self) -> None:
        super().__init__("Response message cannot be empty.")


class NotVisible(PolicyError):
    """The complaint lies outside the actor's visible subset."""

    def __init__(self, complaint_id: str) -> None:
        self.complaint_id = complaint_id
        super().__init__(f"Complaint {complaint_id} was not found.")


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


def _is_visible(actor: Actor, complaint: Complaint) -> bool:
    match actor.role:
        case Role.CITIZEN | Role.NGO:
            return complaint.submitted_by == actor.id
        case Role.AUTHORITY:
            if not actor.department:
                return False
            return complaint.department == actor.department
        case Role.ADMIN:
            return True
        case _:
            return False


def visible(actor: Actor | None, complaints: Iterable[Complaint]) -> list[Complaint]:
    """Return the complaints *actor* may read, in input order.

    The order is whatever *complaints* yields; use
    :func:`sort_newest_first` when a stable order matters.
    """
    if actor is None:
        return []
    if actor.role not in tuple(Role):
        logger.warning("policy.unknown_role", actor_id=actor.id, role=str(actor.role))
        return []
    return [c for c in complaints if _is_visible(actor, c)]


def can_view(actor: Actor | None, complaint: Complaint) -> bool:
    return bool(visible(actor, (complaint,)))


def ensure_visible(actor: Actor | None, complaint: Complaint) -> Complaint:
    """Return *complaint* unchanged, or raise :class:`NotVisible`."""
    if not can_view(actor, complaint):
        raise NotVisible(complaint.id)
    return complaint


def sort_newest_first(complaints: Iterable[Complaint]) -> list[Complaint]:
    """Order by submission time, newest first, ties broken by id."""
    by_id = sorted(complaints, key=lambda c: c.id)
    return sorted(by_id, key=lambda c: c.submitted_date, reverse=True)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


def can_submit(actor: Actor | None) -> bool:
    return actor is not None and actor.role in FILING_ROLES


def can_respond(actor: Actor | None, complaint: Complaint) -> bool:
    return can_view(actor, complaint)


def can_change_status(actor: Actor | None, complaint: Complaint) -> bool:
    if actor is None or actor.role not in STAFF_ROLES:
        return False
    return can_view(actor, complaint)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def apply_response(
    actor: Actor | None,
    complaint: Complaint,
    message: str,
    *,
    now: datetime | None = None,
) -> tuple[Complaint, ComplaintResponse]:
    """Build a response from *actor* and append it to *complaint*.

    Returns the updated copy of the complaint together with the new
    response.  The response is flagged ``is_authority`` when the author
    is an authority or admin.

    Raises:
        Unauthorized: *actor* cannot see the complaint.
        EmptyMessage: *message* is blank after trimming.
    """
    if actor is None or not can_respond(actor, complaint):
        raise Unauthorized("You are not allowed to respond to this complaint.")

    text = message.strip()
    if not text:
        raise EmptyMessage()

    response = ComplaintResponse(
        message=text,
        responded_by=actor.id,
        responded_by_name=actor.display_name,
        responded_date=now or datetime.now(UTC),
        is_authority=actor.role in STAFF_ROLES,
    )
    updated = complaint.model_copy(update={"responses": (*complaint.responses, response)})
    return updated, response


def apply_status_change(
    actor: Actor | None,
    complaint: Complaint,
    new_status: ComplaintStatus,
) -> Complaint:
    """Return a copy of *complaint* with ``status`` replaced by *new_status*.

    *new_status* is expected to be a :class:`ComplaintStatus`; it is not
    re-validated here.

    Raises:
        Unauthorized: *actor* is not staff or cannot see the complaint.
        NoOpTransition: *new_status* equals the current status.
    """
    if not can_change_status(actor, complaint):
        raise Unauthorized("Only authorities and admins can change the status of this complaint.")
    if new_status == complaint.status:
        raise NoOpTransition(complaint.status)
    return complaint.model_copy(update={"status": new_status})
