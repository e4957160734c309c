"""User-facing notices for the GRS portal.

Every complaint operation ends with exactly one notice: ``success`` when
the store accepted the change, ``error`` with the rejection reason
otherwise.  The policy engine never emits notices itself; the
:class:`~src.services.complaints.ComplaintService` does after each
store call resolves or fails.

Notices are kept in a bounded in-process history so the HTTP layer can
show an actor what happened to their recent requests.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from src.models.enums import NotificationKind

logger = structlog.get_logger(__name__)


class Notification(BaseModel):
    """A single success or error notice."""

    notification_id: str = Field(default_factory=lambda: uuid4().hex)
    kind: NotificationKind
    message: str
    actor_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@runtime_checkable
class NotificationSink(Protocol):
    def notify(
        self,
        kind: NotificationKind,
        message: str,
        *,
        actor_id: str | None = None,
    ) -> Notification: ...


class InMemoryNotificationSink:
    """Logs every notice and keeps the newest *max_history* of them."""

    __slots__ = ("_history",)

    def __init__(self, *, max_history: int = 50) -> None:
        self._history: deque[Notification] = deque(maxlen=max_history)

    def notify(
        self,
        kind: NotificationKind,
        message: str,
        *,
        actor_id: str | None = None,
    ) -> Notification:
        notification = Notification(kind=kind, message=message, actor_id=actor_id)
        self._history.append(notification)

        if kind == NotificationKind.ERROR:
            logger.warning("notifications.error", actor_id=actor_id, message=message)
        else:
            logger.info("notifications.success", actor_id=actor_id, message=message)
        return notification

    def recent(self, limit: int = 10, *, actor_id: str | None = None) -> list[Notification]:
        """Return up to *limit* notices, newest first.

        When *actor_id* is given only that actor's notices are returned.
        """
        notices = [
            n for n in reversed(self._history)
            if actor_id is None or n.actor_id == actor_id
        ]
        return notices[:limit]

    def __len__(self) -> int:
        return len(self._history)
