# orbit_api/routes/health.py
from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, List

import psutil
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from orbit_api import __version__
from orbit_api.core.config import settings
from orbit_api.core.logging import get_structlog_logger
from orbit_api.core.startup import get_environment_health
from orbit_api.db.session import health_check as database_health_check
from orbit_api.services.redis import health_check as redis_health_check

logger = get_structlog_logger()

router = APIRouter(tags=["health"])

# A failing critical check makes the service unhealthy, any other failure degraded.
CRITICAL_CHECKS = ("database",)


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    uptime: float
    checks: Dict[str, Dict[str, Any]]
    dependencies: List[str]


async def check_redis() -> Dict[str, Any]:
    """Check Redis connectivity. Redis is not used under test."""
    if settings.is_testing:
        return {"status": "disabled"}

    start_time = datetime.utcnow()
    result = await redis_health_check()
    result["response_time_ms"] = f"{(datetime.utcnow() - start_time).total_seconds() * 1000:.2f}"
    return result


def overall_status(checks: Dict[str, Dict[str, Any]]) -> str:
    result = "healthy"
    for name, check in checks.items():
        if check.get("status") in ("healthy", "disabled"):
            continue
        if name in CRITICAL_CHECKS:
            return "unhealthy"
        result = "degraded"
    return result


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Database, Redis and environment checks."""
    start_time = datetime.utcnow()

    environment = get_environment_health()
    checks = {
        "database": await database_health_check(),
        "redis": await check_redis(),
        "environment": environment,
    }
    current_status = overall_status(checks)

    process = psutil.Process()
    dependencies = [settings.database_dialect, "redis", "prometheus"]
    if settings.sentry_dsn:
        dependencies.append("sentry")

    response = HealthCheckResponse(
        status=current_status,
        service="orbit_api",
        environment=settings.environment,
        version=__version__,
        timestamp=datetime.utcnow().isoformat() + "Z",
        uptime=time.time() - process.create_time(),
        checks=checks,
        dependencies=dependencies,
    )

    log = logger.info if current_status == "healthy" else logger.warning
    log(
        "health.check",
        status=current_status,
        response_time_ms=(datetime.utcnow() - start_time).total_seconds() * 1000,
    )

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if current_status == "unhealthy" else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=response.model_dump())


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness():
    """Liveness check for containers."""
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }


@router.get("/health/ready")
async def readiness():
    """Ready once the database answers and Redis is reachable (or disabled)."""
    checks = {
        "database": (await database_health_check()).get("status", "unknown"),
        "redis": (await check_redis()).get("status", "unknown"),
    }
    is_ready = all(value in ("healthy", "disabled") for value in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if is_ready else "not_ready",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "checks": checks,
        },
    )
