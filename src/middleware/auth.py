"""Session token authentication for portal endpoints.

Provides FastAPI dependencies that resolve the ``X-Session-Token``
header to the :class:`Actor` bound to that session.  Endpoints receive
the actor explicitly and hand it to the service layer; nothing looks the
actor up from ambient state.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from src.models.actor import Actor
from src.services.session import SessionManager

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

session_token_header = APIKeyHeader(name="X-Session-Token", auto_error=False)


def get_session_manager(request: Request) -> SessionManager:
    sessions: SessionManager | None = getattr(request.app.state, "sessions", None)
    if sessions is None:
        raise HTTPException(status_code=503, detail="Session service not available")
    return sessions


async def require_actor(
    request: Request,
    token: str | None = Security(session_token_header),
) -> Actor:
    """FastAPI dependency that enforces a logged-in session.

    Raises 401 when the header is missing or the session has expired.

    Usage::

        @router.get("/complaints")
        async def list_complaints(actor: Actor = Depends(require_actor)): ...
    """
    if not token:
        logger.warning(
            "auth.missing_session_token",
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )
        raise HTTPException(
            status_code=401,
            detail="Missing X-Session-Token header.",
            headers={"WWW-Authenticate": "Session"},
        )

    actor = await get_session_manager(request).current_actor(token)
    if actor is None:
        logger.warning(
            "auth.invalid_session_token",
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )
        raise HTTPException(
            status_code=401,
            detail="Session expired or invalid. Please log in again.",
            headers={"WWW-Authenticate": "Session"},
        )

    return actor
