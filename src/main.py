"""GRS Portal FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the portal services (storage, sessions,
complaint store, notifications, complaint workflows).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router
from src.services.complaint_store import StoreUnavailable
from src.services.storage import StorageUnavailable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[settings.log_level.upper()],
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the portal services.

    On startup:
      1. Initialise storage (Redis when configured, else in-memory)
      2. Initialise the session manager
      3. Initialise the complaint store and notification sink
      4. Create the ComplaintService
      5. Store everything on ``app.state``

    On shutdown:
      - Close the storage connection pool.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env)

    app.state.start_time = time.time()

    # -- 1. Storage ---------------------------------------------------------
    from src.services.storage import StorageManager

    storage = StorageManager(
        redis_url=settings.redis_url or None,
        namespace=settings.storage_namespace,
    )
    await storage.connect()
    app.state.storage = storage
    logger.info("app.storage_initialised", redis=storage.using_redis)

    # -- 2. Sessions --------------------------------------------------------
    from src.services.session import SessionManager

    sessions = SessionManager(
        storage,
        session_ttl_seconds=settings.session_ttl_seconds,
        min_password_length=settings.min_password_length,
        hash_iterations=settings.password_hash_iterations,
    )
    sessions.on_actor_change(
        lambda _token, actor: logger.info(
            "app.actor_changed",
            actor_id=actor.id if actor else None,
            role=str(actor.role) if actor else None,
        ),
    )
    app.state.sessions = sessions
    logger.info("app.sessions_initialised")

    # -- 3. Complaint store and notifications -------------------------------
    from src.services.complaint_store import StorageComplaintStore
    from src.services.notifications import InMemoryNotificationSink

    store = StorageComplaintStore(storage)
    sink = InMemoryNotificationSink(max_history=settings.notification_history_size)
    app.state.complaint_store = store
    app.state.notifications = sink

    # -- 4. Complaint workflows ---------------------------------------------
    from src.services.complaints import ComplaintService

    app.state.complaints = ComplaintService(
        store,
        sink,
        recent_limit=settings.recent_complaints_limit,
    )
    logger.info("app.complaint_service_initialised")

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    await storage.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="GRS Portal API",
    description=(
        "Grievance Redressal System -- citizens and NGOs file complaints, "
        "department authorities respond and track them to resolution."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
# allow_credentials=True must not be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Session-Token"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "X-Session-Token"],
    )

# -- Storage outages --------------------------------------------------------


async def _storage_unavailable_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error("app.storage_unavailable", path=request.url.path, error=type(exc).__name__)
    return ORJSONResponse(
        status_code=503,
        content={"detail": getattr(exc, "reason", "Storage is temporarily unavailable.")},
        headers={"Retry-After": "5"},
    )


app.add_exception_handler(StorageUnavailable, _storage_unavailable_handler)
app.add_exception_handler(StoreUnavailable, _storage_unavailable_handler)

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "GRS Portal API",
        "description": "Grievance Redressal System",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "auth": "/api/v1/auth",
            "complaints": "/api/v1/complaints",
            "dashboard": "/api/v1/dashboard",
            "catalogue": "/api/v1/catalogue",
            "notifications": "/api/v1/notifications",
            "health": "/api/v1/health",
        },
    }
