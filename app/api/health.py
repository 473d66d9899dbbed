"""Health and readiness endpoints.

  /health (liveness): always 200 while the process can respond.  The
    body reports each backing service as ok, degraded or not_configured.

  /ready (readiness): 503 when the database is configured but
    unreachable, because no enrollment operation can succeed without it.
    Redis only carries best-effort notifications, so it never makes the
    instance unready.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from sqlalchemy.exc import SQLAlchemyError

from app.db.engine import engine, ping_database
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_status() -> str:
    if engine is None:
        return "not_configured"
    try:
        await ping_database()
    except (SQLAlchemyError, OSError):
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"
    return "ok"


async def _redis_status() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    """Liveness probe + dependency status.

    Returns 200 even when degraded: the status field carries the actual
    health, and a non-2xx here would make the orchestrator restart us.
    """
    checks = {
        "database": await _database_status(),
        "redis": await _redis_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: can this instance serve enrollment requests?"""
    if await _database_status() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
