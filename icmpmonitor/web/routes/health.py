"""Health check routes."""

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from icmpmonitor.monitor.service import get_monitor
from icmpmonitor.scheduler.job_scheduler import get_scheduler
from icmpmonitor.version import __version__, get_version_info

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    scheduler_running: bool
    hosts_monitored: int
    version: str
    message: str = "OK"


class VersionResponse(BaseModel):
    version: str
    build_date: Optional[str] = None
    git_commit: Optional[str] = None


def _scheduler_running() -> bool:
    scheduler = get_scheduler()
    return scheduler is not None and scheduler.running


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for service managers and monitoring."""
    scheduler_running = _scheduler_running()
    monitor = get_monitor()
    host_count = len(monitor.registry) if monitor and monitor.registry else 0
    healthy = scheduler_running and host_count > 0

    if healthy:
        message = "OK"
    elif not scheduler_running:
        message = "Scheduler not running"
    else:
        message = "No hosts monitored"

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        scheduler_running=scheduler_running,
        hosts_monitored=host_count,
        version=__version__,
        message=message,
    )


@router.get("/version", response_model=VersionResponse)
async def version():
    """Get application version information."""
    info = get_version_info()
    return VersionResponse(**info)


@router.get("/ready")
async def readiness_check():
    """Readiness check: the monitor is probing."""
    if _scheduler_running() and get_monitor() is not None:
        return {"ready": True}

    return {"ready": False, "reason": "Monitor not running"}


@router.get("/live")
async def liveness_check():
    """Liveness check - always returns OK if the process is serving."""
    return {"alive": True}


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
