"""Monitored host records and their raw ICMP endpoints."""

import asyncio
import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

from icmpmonitor.config import HostConfig
from icmpmonitor.metrics import host_up_status, hosts_monitored
from icmpmonitor.monitor.liveness import Liveness, LivenessState

logger = logging.getLogger(__name__)


class MonitorInitError(Exception):
    """ICMP cannot be used by this process."""


class NoHostsError(Exception):
    """No host survived resolution and socket creation."""


@dataclass(eq=False)
class HostRecord:
    """Monitoring state for one host.

    Timestamps are time.monotonic() values. last_ping_sent is written by the
    probe scheduler, last_ping_received by the reply reader.
    """

    name: str
    address: str
    endpoint: socket.socket
    ping_interval: int
    max_delay: int
    up_command: str
    down_command: str
    tag: int
    liveness: Liveness
    last_ping_received: float
    last_ping_sent: Optional[float] = None
    sent_packets: int = 0
    received_packets: int = 0
    last_rtt_ms: Optional[float] = None

    @property
    def state(self) -> LivenessState:
        return self.liveness.state

    def mark_received(self, at: float) -> None:
        """Record a matching reply; the timestamp never moves backwards."""
        if at > self.last_ping_received:
            self.last_ping_received = at
        self.received_packets += 1

    def to_dict(self, now: Optional[float] = None) -> Dict[str, Any]:
        """Status snapshot for the API."""
        if now is None:
            now = time.monotonic()
        return {
            "name": self.name,
            "address": self.address,
            "state": self.state.value,
            "ping_interval": self.ping_interval,
            "max_delay": self.max_delay,
            "tag": self.tag,
            "sent_packets": self.sent_packets,
            "received_packets": self.received_packets,
            "seconds_since_reply": round(now - self.last_ping_received, 3),
            "seconds_since_probe": (
                round(now - self.last_ping_sent, 3) if self.last_ping_sent is not None else None
            ),
            "last_rtt_ms": self.last_rtt_ms,
        }


class HostRegistry:
    """Ordered collection of host records keyed by correlation tag.

    Populated once at startup; afterwards records can only be removed.
    Iteration works on a snapshot so removal during a pass is safe.
    """

    def __init__(self) -> None:
        self._hosts: Dict[int, HostRecord] = {}

    def _add(self, record: HostRecord) -> None:
        if record.tag in self._hosts:
            raise ValueError(f"duplicate correlation tag {record.tag}")
        self._hosts[record.tag] = record

    def get(self, tag: int) -> Optional[HostRecord]:
        return self._hosts.get(tag)

    def find(self, name: str) -> Optional[HostRecord]:
        for record in self._hosts.values():
            if record.name == name:
                return record
        return None

    def remove(self, record: HostRecord) -> None:
        """Drop a host for good and close its endpoint."""
        if self._hosts.pop(record.tag, None) is None:
            return
        hosts_monitored.set(len(self._hosts))
        try:
            host_up_status.remove(record.name)
        except KeyError:
            pass  # never reported
        try:
            record.endpoint.close()
        except OSError as e:
            logger.debug("Closing endpoint for %s failed: %s", record.name, e)
        logger.warning("Host %s removed from monitoring", record.name)

    def close(self) -> None:
        """Close every endpoint; used at process exit."""
        for record in self._hosts.values():
            try:
                record.endpoint.close()
            except OSError as e:
                logger.debug("Closing endpoint for %s failed: %s", record.name, e)
        self._hosts.clear()

    @property
    def intervals(self) -> List[int]:
        return [record.ping_interval for record in self._hosts.values()]

    def __iter__(self) -> Iterator[HostRecord]:
        return iter(list(self._hosts.values()))

    def __len__(self) -> int:
        return len(self._hosts)

    def __bool__(self) -> bool:
        return bool(self._hosts)


def icmp_protocol() -> int:
    """Look up the ICMP protocol number.

    Raises:
        MonitorInitError: If the system does not know the protocol.
    """
    try:
        return socket.getprotobyname("icmp")
    except OSError as e:
        raise MonitorInitError(f"Unknown protocol: icmp ({e})") from e


async def resolve_host(name: str) -> Optional[str]:
    """Resolve a host name to an IPv4 address.

    Returns:
        IP address if resolved, None otherwise.
    """
    try:
        loop = asyncio.get_running_loop()
        result = await loop.getaddrinfo(
            name,
            None,
            family=socket.AF_INET,
            type=socket.SOCK_DGRAM,
        )
        if result:
            ip = result[0][4][0]
            logger.debug("Resolved %s to %s", name, ip)
            return ip
    except socket.gaierror as e:
        logger.warning("DNS resolution failed for %s: %s", name, e)
    return None


def open_endpoint(protocol: int) -> socket.socket:
    """Open a non-blocking raw ICMP socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, protocol)
    sock.setblocking(False)
    return sock


async def build_registry(
    hosts: List[HostConfig],
    resolver: Callable[[str], Awaitable[Optional[str]]] = resolve_host,
    endpoint_factory: Callable[[int], socket.socket] = open_endpoint,
    clock: Callable[[], float] = time.monotonic,
) -> HostRegistry:
    """Resolve hosts and open one endpoint per host.

    Hosts that fail to resolve or whose socket cannot be created are skipped
    with a warning and never retried.

    Args:
        hosts: Host descriptors in configuration order.
        resolver: Coroutine mapping a name to an address (None on failure).
        endpoint_factory: Creates the raw socket for a protocol number.
        clock: Monotonic clock; its value seeds last_ping_received.

    Raises:
        MonitorInitError: If ICMP is unavailable.
        NoHostsError: If no host is left.
    """
    protocol = icmp_protocol()
    registry = HostRegistry()

    for tag, host in enumerate(hosts, start=1):
        logger.debug("Resolving host %s", host.name)
        address = await resolver(host.name)
        if address is None:
            logger.warning("Can't resolve host. Skipping %s", host.name)
            continue

        try:
            endpoint = endpoint_factory(protocol)
        except OSError as e:
            logger.warning("Can't create socket. Skipping %s: %s", host.name, e)
            continue

        registry._add(HostRecord(
            name=host.name,
            address=address,
            endpoint=endpoint,
            ping_interval=host.ping_interval,
            max_delay=host.max_delay,
            up_command=host.up_command,
            down_command=host.down_command,
            tag=tag,
            liveness=Liveness(host.start_condition),
            last_ping_received=clock(),
        ))

    if not registry:
        raise NoHostsError("No hosts left to process")

    logger.info("%d of %d host(s) ready for monitoring", len(registry), len(hosts))
    return registry
