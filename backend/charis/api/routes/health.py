import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from charis.db.base import get_session_factory
from charis.db.redis import get_redis

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check. Returns 503 while draining after SIGTERM."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "charis-agent"},
        )
    return {"status": "healthy", "service": "charis-agent"}


@router.get("/ready")
async def readiness_check():
    """Readiness check - verifies the database and Redis answer."""
    checks = {"database": False, "redis": False}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as exc:
        logger.error("ready_check_database_failed", error=str(exc), error_type=type(exc).__name__)

    try:
        await get_redis().ping()
        checks["redis"] = True
    except Exception as exc:
        logger.error("ready_check_redis_failed", error=str(exc), error_type=type(exc).__name__)

    all_healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
