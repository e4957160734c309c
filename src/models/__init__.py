from src.models.actor import Actor, UserAccount
from src.models.complaint import (
    Complaint,
    ComplaintDraft,
    ComplaintResponse,
    ComplaintStats,
)
from src.models.enums import (
    CATEGORIES,
    DEPARTMENTS,
    FILING_ROLES,
    STAFF_ROLES,
    ComplaintPriority,
    ComplaintStatus,
    NotificationKind,
    Role,
)

__all__ = [
    "CATEGORIES",
    "DEPARTMENTS",
    "FILING_ROLES",
    "STAFF_ROLES",
    "Actor",
    "Complaint",
    "ComplaintDraft",
    "ComplaintPriority",
    "ComplaintResponse",
    "ComplaintStats",
    "ComplaintStatus",
    "NotificationKind",
    "Role",
    "UserAccount",
]
