"""Health check endpoints for liveness and readiness probes."""
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.api.deps import get_db
from awards_api.cache import RedisCache, get_cache

logger = structlog.get_logger(__name__)

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """
    Liveness probe.

    Returns basic health status if the process is running.
    Does not check external dependencies.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": VERSION,
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
) -> JSONResponse:
    """
    Readiness probe.

    The database is required. Redis only backs the response cache, so an
    unreachable Redis is reported but does not fail readiness.
    """
    checks = {"database": "unknown", "redis": "unknown"}
    ready = True

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        checks["database"] = "disconnected"
        ready = False

    checks["redis"] = "connected" if await cache.ping() else "unavailable"

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
