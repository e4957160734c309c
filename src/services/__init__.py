"""GRS service layer -- policy engine, storage, sessions, and complaint workflows."""

from __future__ import annotations

from src.services.complaint_store import (
    ComplaintBusy,
    ComplaintNotFound,
    ComplaintStore,
    StaleComplaint,
    StorageComplaintStore,
    StoreError,
    StoreUnavailable,
)
from src.services.complaints import ComplaintService
from src.services.notifications import (
    InMemoryNotificationSink,
    Notification,
    NotificationSink,
)
from src.services.policy import (
    EmptyMessage,
    NotVisible,
    NoOpTransition,
    PolicyError,
    Unauthorized,
)
from src.services.session import (
    DuplicateAccount,
    InvalidCredentials,
    MissingDepartment,
    SessionError,
    SessionManager,
)
from src.services.storage import (
    InMemoryStorageBackend,
    RedisStorageBackend,
    StorageConflict,
    StorageManager,
    StorageUnavailable,
)

__all__ = [
    "ComplaintBusy",
    "ComplaintNotFound",
    "ComplaintService",
    "ComplaintStore",
    "DuplicateAccount",
    "EmptyMessage",
    "InMemoryNotificationSink",
    "InMemoryStorageBackend",
    "InvalidCredentials",
    "MissingDepartment",
    "NoOpTransition",
    "NotVisible",
    "Notification",
    "NotificationSink",
    "PolicyError",
    "RedisStorageBackend",
    "SessionError",
    "SessionManager",
    "StaleComplaint",
    "StorageComplaintStore",
    "StorageConflict",
    "StorageManager",
    "StorageUnavailable",
    "StoreError",
    "StoreUnavailable",
    "Unauthorized",
]
