"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from healthcore.observability import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/health",
    summary="Health check",
    description="Basic health check endpoint.",
)
async def health():
    """Basic health check."""
    return {"status": "healthy", "service": "session-monitor"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if service is ready to receive traffic.",
)
async def ready(request: Request):
    """Readiness check.

    Verifies database and Redis connections are working.
    """
    checks = {
        "database": False,
        "redis": False,
    }

    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = True
    except Exception as e:
        logger.warning("Database readiness check failed", error=str(e))

    try:
        health_result = await request.app.state.redis.health_check()
        checks["redis"] = health_result.get("status") == "healthy"
    except Exception as e:
        logger.warning("Redis readiness check failed", error=str(e))

    all_ready = all(checks.values())

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
    }
