"""Monitor lifecycle: registry, probe scheduler and reply reader on one loop."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from icmpmonitor.config import HostConfig, Settings
from icmpmonitor.metrics import host_up_status, hosts_monitored
from icmpmonitor.monitor.actions import CommandRunner
from icmpmonitor.monitor.packet import process_identifier
from icmpmonitor.monitor.prober import ProbeScheduler, compute_tick
from icmpmonitor.monitor.reader import ReplyReader
from icmpmonitor.monitor.registry import HostRegistry, build_registry
from icmpmonitor.scheduler import job_scheduler

logger = logging.getLogger(__name__)

# Monitor currently running in this process
_current: Optional["IcmpMonitor"] = None


def get_monitor() -> Optional["IcmpMonitor"]:
    """Get the running monitor, or None if not started."""
    return _current


class IcmpMonitor:
    """Owns the host registry and runs both monitoring activities.

    The probe pass is delivered by the APScheduler tick job, replies are
    handled by selector callbacks. Both run on the same event loop, so the
    selector wait is bounded by the next tick and host state is only ever
    touched by one of them at a time.
    """

    def __init__(self, settings: Settings, hosts: List[HostConfig], runner=None):
        self.settings = settings
        self.hosts = hosts
        self.runner = runner or CommandRunner()
        self.identifier = process_identifier()
        self.registry: Optional[HostRegistry] = None
        self.prober: Optional[ProbeScheduler] = None
        self.reader: Optional[ReplyReader] = None

    @property
    def running(self) -> bool:
        return self.registry is not None

    async def start(self) -> None:
        """Resolve hosts, open endpoints and start probing.

        Raises:
            MonitorInitError: If ICMP is unavailable.
            NoHostsError: If no host could be resolved and opened.
        """
        global _current

        self.registry = await build_registry(self.hosts)

        tick = compute_tick(self.registry.intervals, self.settings.tick_seconds)
        self.prober = ProbeScheduler(
            self.registry,
            self.runner,
            self.identifier,
            tick_seconds=tick,
            repeat_down=self.settings.repeat_down_command,
            verbose=self.settings.verbose,
        )
        self.reader = ReplyReader(
            self.registry,
            self.runner,
            self.identifier,
            verbose=self.settings.verbose,
        )

        hosts_monitored.set(len(self.registry))
        for record in self.registry:
            host_up_status.labels(host=record.name).set(1 if record.liveness.is_up else 0)

        self.reader.attach(asyncio.get_running_loop())
        job_scheduler.start_scheduler(self.prober.tick, tick)
        _current = self
        logger.info(
            "Monitoring %d host(s), echo identifier %d, tick %d second(s)",
            len(self.registry),
            self.identifier,
            tick,
        )

    async def stop(self) -> None:
        """Abandon timers and waits and close every endpoint."""
        global _current

        if _current is self:
            _current = None
        job_scheduler.shutdown_scheduler()
        if self.reader is not None:
            self.reader.detach()
        if self.registry is not None:
            self.registry.close()
            self.registry = None
        logger.info("Monitor stopped")

    async def run_forever(self) -> None:
        """Start and keep running until cancelled."""
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    def hosts_info(self) -> List[Dict[str, Any]]:
        if self.registry is None:
            return []
        return [record.to_dict() for record in self.registry]

    def host_info(self, name: str) -> Optional[Dict[str, Any]]:
        if self.registry is None:
            return None
        record = self.registry.find(name)
        return record.to_dict() if record else None
