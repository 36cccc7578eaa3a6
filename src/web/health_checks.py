"""
Health Check System

Liveness and readiness checks for the care-team service:
- Basic health check (liveness)
- Readiness check (database reachable, system resources)
"""

from datetime import datetime
from typing import List, Optional
import logging
import time

import psutil
from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from database.async_engine import DatabaseHealth

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


# =============================================================================
# Response Models
# =============================================================================

class HealthStatus(BaseModel):
    """Overall health status"""
    status: str  # "healthy", "degraded", "unhealthy"
    timestamp: str
    version: str


class DependencyStatus(BaseModel):
    """Status of a dependency"""
    name: str
    status: str  # "up", "down"
    response_time_ms: Optional[float] = None
    message: Optional[str] = None


class SystemMetrics(BaseModel):
    """System resource metrics"""
    cpu_percent: float
    memory_percent: float
    disk_percent: float


class DetailedHealthResponse(BaseModel):
    """Detailed health check response"""
    status: str
    timestamp: str
    version: str
    uptime_seconds: float
    dependencies: List[DependencyStatus]
    metrics: SystemMetrics


# =============================================================================
# Health Check Logic
# =============================================================================

_app_start_time = datetime.now()


def _version(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    return settings.version if settings else "1.0.0"


async def check_database(request: Request) -> DependencyStatus:
    """Run SELECT 1 against the app's engine."""
    started = time.perf_counter()
    state = request.app.state
    result = await DatabaseHealth(
        settings=getattr(state, "database_settings", None),
        engine=getattr(state, "engine", None),
    ).check()
    elapsed = round((time.perf_counter() - started) * 1000, 2)

    if result.get("status") == "healthy":
        return DependencyStatus(
            name="database",
            status="up",
            response_time_ms=elapsed,
            message=f"{result.get('database')} connection OK",
        )
    return DependencyStatus(name="database", status="down", message=result.get("error"))


def get_system_metrics() -> SystemMetrics:
    """Get system resource metrics."""
    try:
        return SystemMetrics(
            cpu_percent=round(psutil.cpu_percent(interval=None), 2),
            memory_percent=round(psutil.virtual_memory().percent, 2),
            disk_percent=round(psutil.disk_usage("/").percent, 2),
        )
    except (OSError, psutil.Error) as e:
        logger.error(f"Failed to get system metrics: {e}")
        return SystemMetrics(cpu_percent=0.0, memory_percent=0.0, disk_percent=0.0)


def calculate_overall_status(dependencies: List[DependencyStatus]) -> str:
    """
    Calculate overall health status based on dependencies.

    - healthy: all dependencies are "up"
    - unhealthy: any dependency is "down"
    """
    if any(dep.status == "down" for dep in dependencies):
        return "unhealthy"
    return "healthy"


# =============================================================================
# Health Check Endpoints
# =============================================================================

@router.get("", response_model=HealthStatus)
async def health_check(request: Request):
    """
    Basic health check (liveness).

    Returns 200 if the application is running.
    """
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=_version(request),
    )


@router.get("/ready", response_model=DetailedHealthResponse)
async def readiness_check(request: Request):
    """
    Readiness check with dependency validation.

    Returns 503 when the database cannot be reached.
    """
    dependencies = [await check_database(request)]
    overall_status = calculate_overall_status(dependencies)

    response = DetailedHealthResponse(
        status=overall_status,
        timestamp=datetime.now().isoformat(),
        version=_version(request),
        uptime_seconds=round((datetime.now() - _app_start_time).total_seconds(), 2),
        dependencies=dependencies,
        metrics=get_system_metrics(),
    )

    if overall_status == "unhealthy":
        return Response(
            content=response.model_dump_json(),
            status_code=503,
            media_type="application/json",
        )
    return response
