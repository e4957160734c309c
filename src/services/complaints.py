"""Complaint workflows: submit, list, respond, and change status.

:class:`ComplaintService` glues the three collaborators together:

1. the policy engine (:mod:`src.services.policy`) decides whether the
   actor may see or change a complaint and builds the change;
2. the complaint store persists the change, guarded by the version of
   the complaint the decision was made against;
3. the notification sink records a success notice, or an error notice
   carrying the rejection reason before the error is re-raised.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from src.models.actor import Actor
from src.models.complaint import (
    Complaint,
    ComplaintDraft,
    ComplaintResponse,
    ComplaintStats,
)
from src.models.enums import ComplaintStatus, NotificationKind
from src.services import policy
from src.services.complaint_store import ComplaintNotFound, ComplaintStore, StoreError
from src.services.notifications import NotificationSink
from src.services.policy import PolicyError

logger = structlog.get_logger(__name__)


def _matches_query(complaint: Complaint, query: str) -> bool:
    needle = query.lower()
    return (
        needle in complaint.title.lower()
        or needle in complaint.category.lower()
        or needle in complaint.description.lower()
    )


class ComplaintService:
    """Actor-scoped complaint operations.

    Parameters
    ----------
    store:
        Persistence collaborator.
    notifications:
        Sink that receives one notice per mutation attempt.
    recent_limit:
        Number of complaints shown on the dashboard.
    """

    __slots__ = ("_notifications", "_recent_limit", "_store")

    def __init__(
        self,
        store: ComplaintStore,
        notifications: NotificationSink,
        *,
        recent_limit: int = 5,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._recent_limit = recent_limit

    @contextmanager
    def _reported(self, actor: Actor | None, operation: str) -> Iterator[None]:
        """Turn a rejected operation into an error notice and re-raise."""
        try:
            yield
        except (PolicyError, StoreError) as exc:
            actor_id = actor.id if actor else None
            logger.info(
                "complaints.rejected",
                operation=operation,
                actor_id=actor_id,
                error=type(exc).__name__,
            )
            self._notifications.notify(NotificationKind.ERROR, exc.reason, actor_id=actor_id)
            raise

    # -- Reads -----------------------------------------------------------------

    async def list_visible(
        self,
        actor: Actor | None,
        *,
        query: str | None = None,
        status: ComplaintStatus | None = None,
    ) -> list[Complaint]:
        """Complaints *actor* may see, newest first.

        *query* matches title, category, or description case-insensitively;
        *status* keeps only complaints in that state.
        """
        complaints = policy.visible(actor, await self._store.list_complaints())
        if query and query.strip():
            complaints = [c for c in complaints if _matches_query(c, query.strip())]
        if status is not None:
            complaints = [c for c in complaints if c.status == status]
        return policy.sort_newest_first(complaints)

    async def get(self, actor: Actor | None, complaint_id: str) -> Complaint:
        """Fetch one complaint.

        Raises :class:`~src.services.policy.NotVisible` both when the
        complaint does not exist and when the actor may not see it.
        """
        try:
            complaint = await self._store.get_complaint(complaint_id)
        except ComplaintNotFound:
            raise policy.NotVisible(complaint_id) from None
        return policy.ensure_visible(actor, complaint)

    async def stats(self, actor: Actor | None) -> ComplaintStats:
        complaints = policy.visible(actor, await self._store.list_complaints())
        counts = Counter(c.status for c in complaints)
        return ComplaintStats(
            total=len(complaints),
            pending=counts[ComplaintStatus.PENDING],
            in_progress=counts[ComplaintStatus.IN_PROGRESS],
            resolved=counts[ComplaintStatus.RESOLVED],
            closed=counts[ComplaintStatus.CLOSED],
        )

    async def recent(self, actor: Actor | None) -> list[Complaint]:
        return (await self.list_visible(actor))[: self._recent_limit]

    # -- Mutations -------------------------------------------------------------

    async def submit(self, actor: Actor | None, draft: ComplaintDraft) -> Complaint:
        """File a new complaint on behalf of a citizen or NGO actor."""
        with self._reported(actor, "submit"):
            if actor is None or not policy.can_submit(actor):
                raise policy.Unauthorized("Only citizens and NGOs can submit complaints.")
            complaint = Complaint(
                **draft.model_dump(),
                status=ComplaintStatus.PENDING,
                submitted_by=actor.id,
                submitted_by_name=actor.display_name,
            )
            stored = await self._store.insert_complaint(complaint)

        logger.info(
            "complaints.submitted",
            complaint_id=stored.id,
            actor_id=actor.id,
            department=stored.department,
            priority=str(stored.priority),
        )
        self._notifications.notify(
            NotificationKind.SUCCESS,
            f"Your complaint has been submitted successfully. Reference ID: {stored.id}",
            actor_id=actor.id,
        )
        return stored

    async def respond(self, actor: Actor | None, complaint_id: str, message: str) -> ComplaintResponse:
        """Append a response from *actor* to the complaint."""
        with self._reported(actor, "respond"):
            complaint = await self._store.get_complaint(complaint_id)
            _, response = policy.apply_response(actor, complaint, message)
            stored = await self._store.append_response(
                complaint.id,
                response,
                expected_version=complaint.version,
            )

        logger.info(
            "complaints.response_added",
            complaint_id=complaint_id,
            actor_id=stored.responded_by,
            is_authority=stored.is_authority,
        )
        self._notifications.notify(
            NotificationKind.SUCCESS,
            "Your response has been added to the complaint.",
            actor_id=stored.responded_by,
        )
        return stored

    async def change_status(
        self,
        actor: Actor | None,
        complaint_id: str,
        new_status: ComplaintStatus,
    ) -> Complaint:
        """Move the complaint to *new_status*."""
        with self._reported(actor, "change_status"):
            complaint = await self._store.get_complaint(complaint_id)
            changed = policy.apply_status_change(actor, complaint, new_status)
            stored = await self._store.update_complaint_status(
                changed.id,
                changed.status,
                expected_version=complaint.version,
            )

        logger.info(
            "complaints.status_changed",
            complaint_id=complaint_id,
            from_status=str(complaint.status),
            to_status=str(stored.status),
        )
        self._notifications.notify(
            NotificationKind.SUCCESS,
            f"Complaint status updated to {stored.status}",
            actor_id=actor.id if actor else None,
        )
        return stored
