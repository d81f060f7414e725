"""Periodic probe pass: send echo requests and detect overdue hosts."""

import logging
import math
import time
from functools import reduce
from typing import Callable, Iterable, Optional

from icmpmonitor.metrics import host_up_status, probe_send_failures_total, probes_sent_total
from icmpmonitor.monitor.actions import ACTION_DOWN
from icmpmonitor.monitor.packet import DEFAULT_DATA_LEN, build_echo_request
from icmpmonitor.monitor.registry import HostRecord, HostRegistry

logger = logging.getLogger(__name__)


def compute_tick(intervals: Iterable[int], override: Optional[int] = None) -> int:
    """Scheduler tick in seconds.

    The tick is the gcd of all ping intervals so that every host can be
    probed on its exact interval. A configured override can only make the
    tick finer: it is rounded down to the largest divisor of the gcd, so
    every interval stays a whole number of ticks.
    """
    intervals = list(intervals)
    if not intervals:
        raise ValueError("no ping intervals")
    tick = reduce(math.gcd, intervals)
    if override is not None and 0 < override < tick:
        tick = max(d for d in range(1, override + 1) if tick % d == 0)
    return tick


class ProbeScheduler:
    """One pass over every host per tick.

    For each host, in registry order:
    1. fire the down transition if its last reply is older than max_delay;
    2. send a new echo request if its ping interval has elapsed.

    run_pass() never yields to the event loop, so reply processing can not
    observe a host halfway through a pass.
    """

    def __init__(
        self,
        registry: HostRegistry,
        runner,
        identifier: int,
        tick_seconds: int = 1,
        repeat_down: bool = False,
        verbose: bool = False,
        clock: Callable[[], float] = time.monotonic,
        wallclock: Callable[[], float] = time.time,
        data_len: int = DEFAULT_DATA_LEN,
    ):
        self.registry = registry
        self.runner = runner
        self.identifier = identifier
        self.tick_seconds = tick_seconds
        self.repeat_down = repeat_down
        self._detail_level = logging.INFO if verbose else logging.DEBUG
        self._clock = clock
        self._wallclock = wallclock
        self._data_len = data_len

    async def tick(self) -> None:
        """Scheduler job entry point."""
        self.run_pass()

    def run_pass(self, now: Optional[float] = None) -> None:
        if now is None:
            now = self._clock()
        for record in self.registry:
            self._check_overdue(record, now)
            if self._probe_due(record, now):
                self._send_probe(record, now)

    def _check_overdue(self, record: HostRecord, now: float) -> None:
        if now - record.last_ping_received <= record.max_delay:
            return

        was_up = record.liveness.is_up
        fire = record.liveness.record_timeout(repeat=self.repeat_down)
        host_up_status.labels(host=record.name).set(0)

        if was_up:
            logger.warning(
                "Host %s is down (no reply for %.0f seconds)",
                record.name,
                now - record.last_ping_received,
            )
        if fire:
            logger.log(self._detail_level, "Executing DOWN command for %s", record.name)
            self.runner.run(record.name, ACTION_DOWN, record.down_command)

    def _probe_due(self, record: HostRecord, now: float) -> bool:
        if record.last_ping_sent is None:
            return True
        # Half a tick of slack absorbs timer jitter around the exact interval
        return now - record.last_ping_sent + self.tick_seconds / 2 >= record.ping_interval

    def _send_probe(self, record: HostRecord, now: float) -> None:
        packet = build_echo_request(
            self.identifier,
            record.tag,
            self._wallclock(),
            self._data_len,
        )

        logger.log(self._detail_level, "Sending ICMP packet to %s", record.name)
        try:
            sent = record.endpoint.sendto(packet, (record.address, 0))
        except OSError as e:
            probe_send_failures_total.labels(host=record.name).inc()
            logger.warning("Sending ICMP packet to %s failed: %s", record.name, e)
            return

        if sent != len(packet):
            probe_send_failures_total.labels(host=record.name).inc()
            logger.warning(
                "Short write to %s: %d of %d bytes",
                record.name,
                sent,
                len(packet),
            )
            return

        record.last_ping_sent = now
        record.sent_packets += 1
        probes_sent_total.labels(host=record.name).inc()
