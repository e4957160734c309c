"""Registration, login, and logout endpoints for the GRS API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Security
from pydantic import BaseModel, Field

from src.middleware.auth import get_session_manager, require_actor, session_token_header
from src.models.actor import Actor
from src.models.enums import Role
from src.services.session import (
    DuplicateAccount,
    InvalidCredentials,
    MissingDepartment,
    SessionError,
    SessionManager,
)

router = APIRouter(prefix="/auth", tags=["auth"])

_ERROR_STATUS: dict[type[SessionError], int] = {
    InvalidCredentials: 401,
    DuplicateAccount: 409,
    MissingDepartment: 422,
}


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=200)
    role: Role = Role.CITIZEN
    department: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=200)


class SessionResponse(BaseModel):
    token: str
    actor: Actor


class LogoutResponse(BaseModel):
    logged_out: bool


def _session_error(exc: SessionError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(exc), 400)
    return HTTPException(status_code=status_code, detail=exc.reason)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=SessionResponse, status_code=201)
async def register(
    body: RegisterRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Create an account and start a session for it."""
    try:
        token, actor = await sessions.register(
            name=body.name,
            email=body.email,
            password=body.password,
            role=body.role,
            department=body.department,
        )
    except SessionError as exc:
        raise _session_error(exc) from None
    return SessionResponse(token=token, actor=actor)


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    try:
        token, actor = await sessions.login(body.email, body.password)
    except SessionError as exc:
        raise _session_error(exc) from None
    return SessionResponse(token=token, actor=actor)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    token: str | None = Security(session_token_header),
    sessions: SessionManager = Depends(get_session_manager),
) -> LogoutResponse:
    if not token:
        return LogoutResponse(logged_out=False)
    return LogoutResponse(logged_out=await sessions.logout(token))


@router.get("/me", response_model=Actor)
async def me(actor: Actor = Depends(require_actor)) -> Actor:
    return actor
