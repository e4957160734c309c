from __future__ import annotations

from enum import StrEnum
from typing import Final


class Role(StrEnum):
    __slots__ = ()

    CITIZEN = "citizen"
    AUTHORITY = "authority"
    ADMIN = "admin"
    NGO = "ngo"


class ComplaintStatus(StrEnum):
    """Lifecycle states of a complaint.

    Every non-reflexive transition between these states is allowed;
    ``PENDING`` is the state assigned at submission.
    """

    __slots__ = ()

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ComplaintPriority(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationKind(StrEnum):
    __slots__ = ()

    SUCCESS = "success"
    ERROR = "error"


# Roles whose responses are marked as official and who may move status.
STAFF_ROLES: Final[frozenset[Role]] = frozenset({Role.AUTHORITY, Role.ADMIN})

# Roles that file complaints and only ever see their own.
FILING_ROLES: Final[frozenset[Role]] = frozenset({Role.CITIZEN, Role.NGO})

DEPARTMENTS: Final[tuple[str, ...]] = (
    "Public Works",
    "Water Supply",
    "Sanitation",
    "Roads & Transport",
    "Health",
    "Education",
    "Revenue",
    "Police",
    "Fire Department",
    "Other",
)

CATEGORIES: Final[tuple[str, ...]] = (
    "Water Supply",
    "Road Maintenance",
    "Garbage Collection",
    "Street Lighting",
    "Public Transport",
    "Healthcare",
    "Education",
    "Law & Order",
    "Corruption",
    "Environmental Issues",
    "Other",
)
