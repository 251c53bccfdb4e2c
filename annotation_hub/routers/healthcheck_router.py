"""
Health check endpoints for Kubernetes probes and monitoring.

Provides:
- /health: Full health check with dependency status
- /health/live: Liveness probe (is the service running?)
- /health/ready: Readiness probe (can the service handle traffic?)
"""

import time
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from annotation_hub.core.cache import get_all_cache_stats
from annotation_hub.core.config import settings
from annotation_hub.core.database import check_mongodb_health

router = APIRouter(tags=["healthcheck"])


class DependencyStatus(BaseModel):
    """Status of a single dependency."""

    name: str
    status: str  # "healthy", "unhealthy"
    latency_ms: float | None = None


class HealthResponse(BaseModel):
    """Full health check response."""

    status: str
    service: str
    environment: str
    timestamp: str
    dependencies: list[DependencyStatus] = []
    caches: dict = {}


class LivenessResponse(BaseModel):
    status: str = "alive"
    timestamp: str


class ReadinessResponse(BaseModel):
    status: str  # "ready", "not_ready"
    timestamp: str
    checks: dict[str, str] = {}


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


async def _check_mongodb() -> DependencyStatus:
    started = time.perf_counter()
    healthy = await check_mongodb_health()
    return DependencyStatus(
        name="mongodb",
        status="healthy" if healthy else "unhealthy",
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
    )


@router.get(
    "/health",
    summary="Full health check",
    description="Returns detailed health status including all dependencies.",
    response_model=HealthResponse,
    responses={503: {"description": "Service is unhealthy"}},
)
async def health_check():
    mongodb = await _check_mongodb()
    response = HealthResponse(
        status=mongodb.status,
        service=settings.service_name,
        environment=settings.environment,
        timestamp=_timestamp(),
        dependencies=[mongodb],
        caches=get_all_cache_stats(),
    )
    if mongodb.status != "healthy":
        return JSONResponse(status_code=503, content=response.model_dump())
    return response


@router.get(
    "/health/live",
    summary="Liveness probe",
    description="Kubernetes liveness probe - checks if the service is running.",
    response_model=LivenessResponse,
)
async def liveness_probe():
    """
    Returns 200 if the service is running.
    This endpoint should always succeed if the process is alive.
    """
    return LivenessResponse(status="alive", timestamp=_timestamp())


@router.get(
    "/health/ready",
    summary="Readiness probe",
    description="Kubernetes readiness probe - checks if the service can handle traffic.",
    response_model=ReadinessResponse,
    responses={503: {"description": "Service is not ready"}},
)
async def readiness_probe():
    mongodb = await _check_mongodb()
    ready = mongodb.status == "healthy"
    response = ReadinessResponse(
        status="ready" if ready else "not_ready",
        timestamp=_timestamp(),
        checks={"mongodb": "ready" if ready else "not_ready"},
    )
    if not ready:
        return JSONResponse(status_code=503, content=response.model_dump())
    return response
