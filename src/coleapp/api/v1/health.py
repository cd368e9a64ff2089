"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks.
Readiness pings the control-plane handle and, when configured, Redis.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.coleapp.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check control-plane database and Redis connectivity."""
    checks: dict = {"database": "ok", "redis": "ok"}

    try:
        handle = await request.app.state.registry.control_plane()
        await handle.ping()
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            if not await redis.ping():
                checks["redis"] = "error"
                checks["redis_error"] = "PING did not return PONG"
        except Exception as e:
            checks["redis"] = "error"
            checks["redis_error"] = str(e)

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 if the control plane answers, 503 otherwise.

    Redis is only a cache; its failure degrades the status but not readiness.
    """
    checks = await _check_dependencies(request)
    ready = checks["database"] == "ok"
    degraded = checks["redis"] == "error"

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready and not degraded else ("degraded" if ready else "unavailable"),
            "checks": checks,
        },
    )
