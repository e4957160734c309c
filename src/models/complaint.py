"""Complaint and response models for the GRS portal.

A complaint is filed by a citizen or NGO against a department.  After
submission only its ``status`` and its ``responses`` change; responses
are append-only and kept in creation order.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.enums import ComplaintPriority, ComplaintStatus


class ComplaintResponse(BaseModel):
    """A single message appended to a complaint's thread."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    message: str
    responded_by: str
    responded_by_name: str
    responded_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_authority: bool = False


class Complaint(BaseModel):
    """A grievance record as persisted by the complaint store."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str
    category: str
    department: str
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    status: ComplaintStatus = ComplaintStatus.PENDING
    description: str
    location: str | None = None
    submitted_by: str
    submitted_by_name: str
    submitted_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    responses: tuple[ComplaintResponse, ...] = ()
    updated_at: datetime | None = None
    version: int = Field(default=1, ge=1)


class ComplaintDraft(BaseModel):
    """Fields a filer supplies when submitting a complaint.

    Status, ownership and timestamps are assigned on submission and
    cannot be supplied here.
    """

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    department: str = Field(..., min_length=1, max_length=100)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    description: str = Field(..., min_length=1, max_length=5000)
    location: str | None = Field(default=None, max_length=500)

    @field_validator("title", "category", "department", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("location")
    @classmethod
    def _blank_location_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class ComplaintStats(BaseModel):
    """Per-status counters over the complaints an actor can see."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    closed: int = 0
