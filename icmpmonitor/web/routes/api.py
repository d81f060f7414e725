"""REST API routes."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel

from icmpmonitor.monitor.service import get_monitor
from icmpmonitor.scheduler.job_scheduler import get_jobs_info

router = APIRouter()


# Response models
class HostResponse(BaseModel):
    name: str
    address: str
    state: str
    ping_interval: int
    max_delay: int
    tag: int
    sent_packets: int = 0
    received_packets: int = 0
    seconds_since_reply: float
    seconds_since_probe: Optional[float] = None
    last_rtt_ms: Optional[float] = None


class JobResponse(BaseModel):
    id: str
    name: str
    next_run: Optional[str] = None
    trigger: str


@router.get("/hosts", response_model=List[HostResponse])
async def list_hosts():
    """List monitored hosts in registry order."""
    monitor = get_monitor()
    if monitor is None:
        return []
    return [HostResponse(**info) for info in monitor.hosts_info()]


@router.get("/hosts/{name}", response_model=HostResponse)
async def get_host(name: str = Path(..., description="Host name as configured")):
    """Get one monitored host."""
    monitor = get_monitor()
    info = monitor.host_info(name) if monitor else None
    if info is None:
        raise HTTPException(status_code=404, detail=f"Host {name} not found")
    return HostResponse(**info)


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs():
    """List scheduled jobs."""
    return [JobResponse(**job) for job in get_jobs_info()]
