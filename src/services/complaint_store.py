"""Complaint persistence on top of :class:`StorageManager`.

Each complaint is stored as JSON under ``complaint:<id>``; ids are
appended, in insertion order, to the list at ``complaint:index``.

Mutations are versioned.  Every write bumps ``version`` and stamps
``updated_at``, and is applied with an atomic compare-and-set, so two
writers (in this process or another one sharing Redis) can never both
build on the same version.  A caller that passes ``expected_version``
gets :class:`StaleComplaint` instead of overwriting a change made by
another session in between.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import structlog

from src.models.complaint import Complaint, ComplaintResponse
from src.models.enums import ComplaintStatus
from src.services.storage import StorageConflict, StorageManager, StorageUnavailable

logger = structlog.get_logger(__name__)

_INDEX_KEY = "complaint:index"


def _complaint_key(complaint_id: str) -> str:
    return f"complaint:{complaint_id}"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for persistence failures that callers can act on."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ComplaintNotFound(StoreError):
    def __init__(self, complaint_id: str) -> None:
        self.complaint_id = complaint_id
        super().__init__(f"Complaint {complaint_id} was not found.")


class StaleComplaint(StoreError):
    """The stored complaint changed since the caller last read it."""

    def __init__(self, complaint_id: str, expected: int, actual: int) -> None:
        self.complaint_id = complaint_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Complaint {complaint_id} was modified by someone else "
            f"(expected version {expected}, found {actual}). Reload and try again."
        )


class ComplaintBusy(StoreError):
    def __init__(self, complaint_id: str) -> None:
        self.complaint_id = complaint_id
        super().__init__(f"Complaint {complaint_id} is being updated by others. Try again shortly.")


class StoreUnavailable(StoreError):
    pass


@contextmanager
def _storage_guard() -> Iterator[None]:
    try:
        yield
    except StorageUnavailable as exc:
        raise StoreUnavailable(exc.reason) from exc


# ---------------------------------------------------------------------------
# Store contract
# ---------------------------------------------------------------------------


@runtime_checkable
class ComplaintStore(Protocol):
    async def list_complaints(self) -> Sequence[Complaint]: ...

    async def get_complaint(self, complaint_id: str) -> Complaint: ...

    async def insert_complaint(self, complaint: Complaint) -> Complaint: ...

    async def update_complaint_status(
        self,
        complaint_id: str,
        status: ComplaintStatus,
        *,
        expected_version: int | None = None,
    ) -> Complaint: ...

    async def append_response(
        self,
        complaint_id: str,
        response: ComplaintResponse,
        *,
        expected_version: int | None = None,
    ) -> ComplaintResponse: ...


# ---------------------------------------------------------------------------
# Storage-backed implementation
# ---------------------------------------------------------------------------


class StorageComplaintStore:
    """:class:`ComplaintStore` persisted through a :class:`StorageManager`.

    Backend failures surface as :class:`StoreUnavailable`.
    """

    __slots__ = ("_storage",)

    def __init__(self, storage: StorageManager) -> None:
        self._storage = storage

    async def _load(self, complaint_id: str) -> Complaint:
        raw = await self._storage.get(_complaint_key(complaint_id))
        if raw is None:
            raise ComplaintNotFound(complaint_id)
        return Complaint.model_validate(raw)

    async def _modify(
        self,
        complaint_id: str,
        expected_version: int | None,
        changes: Callable[[Complaint], dict[str, Any]],
    ) -> Complaint:
        """Apply *changes* to the stored complaint as one versioned write."""

        def mutate(raw: Any) -> dict[str, Any]:
            if raw is None:
                raise ComplaintNotFound(complaint_id)
            current = Complaint.model_validate(raw)
            if expected_version is not None and current.version != expected_version:
                raise StaleComplaint(complaint_id, expected_version, current.version)
            updated = current.model_copy(
                update={
                    **changes(current),
                    "updated_at": datetime.now(UTC),
                    "version": current.version + 1,
                },
            )
            return updated.model_dump(mode="json")

        with _storage_guard():
            try:
                stored = await self._storage.update(_complaint_key(complaint_id), mutate)
            except StorageConflict as exc:
                raise ComplaintBusy(complaint_id) from exc
        return Complaint.model_validate(stored)

    # -- ComplaintStore interface ---------------------------------------------

    async def list_complaints(self) -> list[Complaint]:
        complaints: list[Complaint] = []
        with _storage_guard():
            for complaint_id in await self._storage.members(_INDEX_KEY):
                try:
                    complaints.append(await self._load(complaint_id))
                except ComplaintNotFound:
                    logger.warning("complaint_store.dangling_index_entry", complaint_id=complaint_id)
        return complaints

    async def get_complaint(self, complaint_id: str) -> Complaint:
        with _storage_guard():
            return await self._load(complaint_id)

    async def insert_complaint(self, complaint: Complaint) -> Complaint:
        with _storage_guard():
            if not await self._storage.add(_complaint_key(complaint.id), complaint.model_dump(mode="json")):
                raise StoreError(f"Complaint {complaint.id} already exists.")
            await self._storage.push(_INDEX_KEY, complaint.id)

        logger.info(
            "complaint_store.inserted",
            complaint_id=complaint.id,
            department=complaint.department,
        )
        return complaint

    async def update_complaint_status(
        self,
        complaint_id: str,
        status: ComplaintStatus,
        *,
        expected_version: int | None = None,
    ) -> Complaint:
        updated = await self._modify(complaint_id, expected_version, lambda _: {"status": status})

        logger.info(
            "complaint_store.status_updated",
            complaint_id=complaint_id,
            status=str(status),
            version=updated.version,
        )
        return updated

    async def append_response(
        self,
        complaint_id: str,
        response: ComplaintResponse,
        *,
        expected_version: int | None = None,
    ) -> ComplaintResponse:
        updated = await self._modify(
            complaint_id,
            expected_version,
            lambda current: {"responses": (*current.responses, response)},
        )

        logger.info(
            "complaint_store.response_appended",
            complaint_id=complaint_id,
            response_id=response.id,
            version=updated.version,
        )
        return response
