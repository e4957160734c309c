"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.

Includes:
    * Auth: register, login, logout, current actor
    * Complaints: list, submit, detail, responses, status changes
    * Dashboard: counters, catalogue, notifications
    * Health: liveness and readiness probes
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import auth, complaints, dashboard, health

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router)
api_router.include_router(complaints.router)
api_router.include_router(dashboard.router)
api_router.include_router(health.router)
