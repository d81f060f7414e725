"""FastAPI status server wrapping the monitor."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from icmpmonitor.config import load_hosts, settings
from icmpmonitor.monitor.registry import MonitorInitError, NoHostsError
from icmpmonitor.monitor.service import IcmpMonitor
from icmpmonitor.version import __version__

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the monitor with the server and stop it on shutdown."""
    logger.info("Starting ICMPmonitor status server...")

    # Hosts preloaded by the command line runner, if any
    hosts = getattr(app.state, "hosts", None)
    if hosts is None:
        hosts = load_hosts(settings.config_file)

    app.state.startup_error = None
    monitor = IcmpMonitor(settings, hosts)
    try:
        await monitor.start()
    except (NoHostsError, MonitorInitError) as e:
        # uvicorn only reports a generic startup failure
        app.state.startup_error = e
        raise
    app.state.monitor = monitor

    yield

    logger.info("Shutting down ICMPmonitor...")
    await monitor.stop()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="ICMPmonitor",
    description="ICMP echo host monitor status",
    version=__version__,
    lifespan=lifespan,
)

# Import and include routers
from icmpmonitor.web.routes import api, health  # noqa: E402

app.include_router(api.router, prefix="/api", tags=["API"])
app.include_router(health.router, tags=["Health"])
