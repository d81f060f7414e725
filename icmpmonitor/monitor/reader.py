"""Reply reader: correlate inbound echo replies with monitored hosts."""

import asyncio
import errno
import logging
import time
from typing import Callable, Dict, Optional

from icmpmonitor.metrics import (
    host_up_status,
    packets_discarded_total,
    replies_received_total,
    reply_rtt_seconds,
)
from icmpmonitor.monitor.actions import ACTION_UP
from icmpmonitor.monitor.packet import ICMP_ECHO_REPLY, parse_reply
from icmpmonitor.monitor.registry import HostRecord, HostRegistry

logger = logging.getLogger(__name__)

# Large enough for any IPv4 datagram
MAX_PACKET = 65536


class ReplyReader:
    """Read and validate replies as host endpoints become readable.

    Every raw ICMP socket sees every ICMP packet arriving at the machine,
    so a reply is only accepted on the endpoint whose host tag it carries.
    """

    def __init__(
        self,
        registry: HostRegistry,
        runner,
        identifier: int,
        verbose: bool = False,
        clock: Callable[[], float] = time.monotonic,
        wallclock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.runner = runner
        self.identifier = identifier
        self._detail_level = logging.INFO if verbose else logging.DEBUG
        self._clock = clock
        self._wallclock = wallclock
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # Descriptors registered with the loop, by host tag
        self._watched: Dict[int, int] = {}

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Watch every host endpoint for readiness on the event loop."""
        self._loop = loop
        for record in self.registry:
            fd = record.endpoint.fileno()
            loop.add_reader(fd, self.on_readable, record)
            self._watched[record.tag] = fd

    def detach(self) -> None:
        if self._loop is None:
            return
        for record in self.registry:
            self._stop_watching(record)
        self._loop = None

    def _stop_watching(self, record: HostRecord) -> None:
        fd = self._watched.pop(record.tag, None)
        if self._loop is None or fd is None:
            return
        self._loop.remove_reader(fd)

    def on_readable(self, record: HostRecord) -> None:
        """Read one datagram from a host endpoint."""
        received_at = self._clock()
        try:
            datagram, _ = record.endpoint.recvfrom(MAX_PACKET)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            if e.errno == errno.EBADF:
                logger.error("Endpoint for %s is no longer usable", record.name)
                self._stop_watching(record)
                self.registry.remove(record)
            else:
                logger.warning("Error reading ICMP data from %s: %s", record.name, e)
            return

        self.handle_datagram(record, datagram, received_at)

    def handle_datagram(
        self,
        record: HostRecord,
        datagram: bytes,
        received_at: Optional[float] = None,
    ) -> bool:
        """Validate a datagram and apply it to its host.

        Returns:
            True if the datagram was a reply to this host's probe.
        """
        if received_at is None:
            received_at = self._clock()

        reply = parse_reply(datagram)
        if reply is None:
            packets_discarded_total.labels(reason="short").inc()
            logger.debug("Received short packet (%d bytes) on %s", len(datagram), record.name)
            return False

        if reply.icmp_type != ICMP_ECHO_REPLY:
            packets_discarded_total.labels(reason="type").inc()
            logger.debug("ICMP packet of type %d on %s ignored", reply.icmp_type, record.name)
            return False
        if reply.identifier != self.identifier:
            packets_discarded_total.labels(reason="identifier").inc()
            logger.debug("Echo reply with identifier %d on %s ignored", reply.identifier, record.name)
            return False
        if reply.sequence != record.tag:
            # Reply to another host's probe, seen on this endpoint as well
            packets_discarded_total.labels(reason="sequence").inc()
            return False

        record.mark_received(received_at)
        replies_received_total.labels(host=record.name).inc()
        host_up_status.labels(host=record.name).set(1)

        if reply.sent_at is not None:
            rtt = max(self._wallclock() - reply.sent_at, 0.0)
            record.last_rtt_ms = round(rtt * 1000, 3)
            reply_rtt_seconds.labels(host=record.name).observe(rtt)
            logger.log(
                self._detail_level,
                "Got ICMP reply from %s in %.1f ms",
                record.name,
                record.last_rtt_ms,
            )
        else:
            logger.log(self._detail_level, "Got ICMP reply from %s", record.name)

        if record.liveness.record_reply():
            logger.info("Host %s is now up. Executing UP command", record.name)
            self.runner.run(record.name, ACTION_UP, record.up_command)

        return True
