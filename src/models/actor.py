"""Identity models: the authenticated actor and the stored user account."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import Role


class Actor(BaseModel):
    """An authenticated user session with a role and optional department.

    Built when a session starts and never modified afterwards; a role or
    department change only takes effect on the next login.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    role: Role
    department: str | None = None
    email: str = ""


class UserAccount(BaseModel):
    """A registered user.  ``password_hash`` never leaves the session layer."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    role: Role
    department: str | None = None
    password_hash: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_actor(self) -> Actor:
        return Actor(
            id=self.id,
            display_name=self.name,
            role=self.role,
            department=self.department,
            email=self.email,
        )
