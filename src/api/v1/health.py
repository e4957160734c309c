"""Health check endpoints for the GRS API v1.

Provides liveness and readiness probes.  The readiness check verifies
that storage round-trips and that the session and complaint services
were initialised.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness check response with individual service statuses."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.

    Returns 200 if the application process is running and able to
    handle requests.  Does *not* check downstream dependencies.
    """
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe."""
    checks: dict[str, str] = {}
    all_ok = True

    storage = getattr(request.app.state, "storage", None)
    if storage is not None:
        try:
            await storage.set("_health_check", "ok", ttl_seconds=10)
            if await storage.get("_health_check") == "ok":
                checks["storage"] = "ok (redis)" if storage.using_redis else "ok (in-memory)"
            else:
                checks["storage"] = "degraded"
                all_ok = False
        except Exception as exc:
            checks["storage"] = f"error: {exc!s}"
            all_ok = False
    else:
        checks["storage"] = "not_configured"
        all_ok = False

    for name in ("sessions", "complaints"):
        if getattr(request.app.state, name, None) is not None:
            checks[name] = "ok"
        else:
            checks[name] = "not_initialised"
            all_ok = False

    status = "ready" if all_ok else "degraded"

    logger.info("health.readiness_check", status=status, checks=checks)

    return ReadinessResponse(status=status, checks=checks)
