"""Shared pytest fixtures."""

import os
import struct
from typing import List, Tuple

import pytest

# Set test environment before importing app modules
os.environ.setdefault("ICMPMONITOR_CONFIG_FILE", "tests-does-not-exist.cfg")

from icmpmonitor.config import StartCondition  # noqa: E402
from icmpmonitor.monitor.liveness import Liveness  # noqa: E402
from icmpmonitor.monitor.packet import ICMP_ECHO_REPLY  # noqa: E402
from icmpmonitor.monitor.registry import HostRecord  # noqa: E402

IDENT = 0x1234


class FakeEndpoint:
    """Stand-in for a raw ICMP socket."""

    def __init__(self, fd: int = 10, send_error: Exception = None, recv_error: Exception = None):
        self.fd = fd
        self.send_error = send_error
        self.recv_error = recv_error
        self.sent: List[Tuple[bytes, tuple]] = []
        self.incoming: List[bytes] = []
        self.closed = False

    def fileno(self) -> int:
        return -1 if self.closed else self.fd

    def sendto(self, data: bytes, address: tuple) -> int:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((data, address))
        return len(data)

    def recvfrom(self, size: int):
        if self.recv_error is not None:
            raise self.recv_error
        if not self.incoming:
            raise BlockingIOError()
        return self.incoming.pop(0), ("192.0.2.1", 0)

    def close(self) -> None:
        self.closed = True


class RecordingRunner:
    """Action runner that remembers what it was asked to run."""

    def __init__(self):
        self.calls: List[Tuple[str, str, str]] = []

    def run(self, host: str, action: str, command: str) -> None:
        self.calls.append((host, action, command))

    def actions(self, action: str) -> List[Tuple[str, str, str]]:
        return [call for call in self.calls if call[1] == action]


def make_reply(
    identifier: int = IDENT,
    sequence: int = 1,
    icmp_type: int = ICMP_ECHO_REPLY,
    sent_at: float = None,
    ip_header_len: int = 20,
) -> bytes:
    """Raw datagram as read from a raw socket: IPv4 header + ICMP message."""
    ip_header = bytes([0x40 | (ip_header_len // 4)]) + b"\x00" * (ip_header_len - 1)
    icmp = struct.pack("!BBHHH", icmp_type, 0, 0, identifier, sequence)
    if sent_at is not None:
        icmp += struct.pack("!d", sent_at) + b"\x00" * 48
    return ip_header + icmp


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def make_record():
    """Factory for host records with a fake endpoint."""

    def _make(
        name: str = "host.example.com",
        tag: int = 1,
        ping_interval: int = 2,
        max_delay: int = 10,
        start: StartCondition = StartCondition.UP,
        last_ping_received: float = 0.0,
        endpoint: FakeEndpoint = None,
    ) -> HostRecord:
        return HostRecord(
            name=name,
            address=f"192.0.2.{tag}",
            endpoint=endpoint or FakeEndpoint(fd=100 + tag),
            ping_interval=ping_interval,
            max_delay=max_delay,
            up_command=f"echo {name} up",
            down_command=f"echo {name} down",
            tag=tag,
            liveness=Liveness(start),
            last_ping_received=last_ping_received,
        )

    return _make


@pytest.fixture
def make_registry():
    """Build a registry directly from records."""
    from icmpmonitor.monitor.registry import HostRegistry

    def _make(*records: HostRecord) -> HostRegistry:
        registry = HostRegistry()
        for record in records:
            registry._add(record)
        return registry

    return _make
