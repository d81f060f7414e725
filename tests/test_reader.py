"""Tests for reply correlation."""

from __future__ import annotations

import errno
from unittest.mock import MagicMock

from conftest import IDENT, FakeEndpoint, make_reply

from icmpmonitor.config import StartCondition
from icmpmonitor.monitor.actions import ACTION_UP
from icmpmonitor.monitor.liveness import LivenessState
from icmpmonitor.monitor.reader import ReplyReader


def _reader(registry, runner, now: float = 50.0) -> ReplyReader:
    return ReplyReader(registry, runner, IDENT, clock=lambda: now, wallclock=lambda: 1000.25)


def test_reply_brings_down_host_up_once(make_record, make_registry, runner):
    record = make_record(start=StartCondition.DOWN, tag=2)
    reader = _reader(make_registry(record), runner)

    assert reader.handle_datagram(record, make_reply(sequence=2), received_at=50.0) is True

    assert record.state is LivenessState.UP
    assert runner.calls == [("host.example.com", ACTION_UP, "echo host.example.com up")]

    reader.handle_datagram(record, make_reply(sequence=2), received_at=51.0)
    assert len(runner.calls) == 1


def test_reply_updates_timestamps_and_rtt(make_record, make_registry, runner):
    record = make_record(tag=1, last_ping_received=10.0)
    reader = _reader(make_registry(record), runner)

    reader.handle_datagram(record, make_reply(sequence=1, sent_at=1000.0), received_at=20.0)

    assert record.last_ping_received == 20.0
    assert record.received_packets == 1
    assert record.last_rtt_ms == 250.0
    # Host was already up
    assert runner.calls == []


def test_mismatched_replies_change_nothing(make_record, make_registry, runner):
    record = make_record(start=StartCondition.DOWN, tag=1, last_ping_received=10.0)
    reader = _reader(make_registry(record), runner)

    noise = [
        make_reply(identifier=IDENT + 1, sequence=1),
        make_reply(identifier=IDENT, sequence=2),
        make_reply(identifier=IDENT, sequence=1, icmp_type=3),
        make_reply(identifier=IDENT, sequence=1, icmp_type=8),
        make_reply(sequence=1)[:25],
    ]
    for datagram in noise:
        assert reader.handle_datagram(record, datagram, received_at=99.0) is False

    assert record.state is LivenessState.DOWN
    assert record.last_ping_received == 10.0
    assert record.received_packets == 0
    assert runner.calls == []


def test_last_ping_received_is_non_decreasing(make_record, make_registry, runner):
    record = make_record(tag=1, last_ping_received=0.0)
    reader = _reader(make_registry(record), runner)

    seen = []
    for at in (5.0, 9.0, 7.0, 12.0, 11.0):
        reader.handle_datagram(record, make_reply(sequence=1), received_at=at)
        seen.append(record.last_ping_received)

    assert seen == sorted(seen)
    assert seen[-1] == 12.0


def test_auto_host_settles_up_silently(make_record, make_registry, runner):
    record = make_record(start=StartCondition.AUTO, tag=1)
    reader = _reader(make_registry(record), runner)

    reader.handle_datagram(record, make_reply(sequence=1))

    assert record.state is LivenessState.UP
    assert runner.calls == []


def test_on_readable_reads_one_datagram(make_record, make_registry, runner):
    record = make_record(start=StartCondition.DOWN, tag=1)
    record.endpoint.incoming = [make_reply(sequence=1), make_reply(sequence=1)]
    reader = _reader(make_registry(record), runner, now=77.0)

    reader.on_readable(record)

    assert record.last_ping_received == 77.0
    assert len(record.endpoint.incoming) == 1
    assert len(runner.calls) == 1


def test_on_readable_ignores_spurious_wakeup(make_record, make_registry, runner):
    record = make_record(tag=1)
    reader = _reader(make_registry(record), runner)

    reader.on_readable(record)

    assert record.received_packets == 0


def test_receive_error_is_logged_and_host_kept(make_record, make_registry, runner, caplog):
    record = make_record(tag=1, endpoint=FakeEndpoint(recv_error=OSError(errno.EIO, "I/O error")))
    registry = make_registry(record)
    reader = _reader(registry, runner)

    reader.on_readable(record)

    assert registry.get(1) is record
    assert "Error reading ICMP data" in caplog.text


def test_dead_endpoint_drops_host(make_record, make_registry, runner):
    record = make_record(tag=1, endpoint=FakeEndpoint(fd=33, recv_error=OSError(errno.EBADF, "Bad file descriptor")))
    other = make_record(tag=2)
    registry = make_registry(record, other)
    reader = _reader(registry, runner)
    loop = MagicMock()
    reader.attach(loop)

    reader.on_readable(record)

    assert registry.get(1) is None
    assert list(registry) == [other]
    loop.remove_reader.assert_called_once_with(33)


def test_attach_and_detach_register_every_endpoint(make_record, make_registry, runner):
    first = make_record(tag=1, endpoint=FakeEndpoint(fd=11))
    second = make_record(tag=2, endpoint=FakeEndpoint(fd=12))
    reader = _reader(make_registry(first, second), runner)
    loop = MagicMock()

    reader.attach(loop)
    assert [c.args[0] for c in loop.add_reader.call_args_list] == [11, 12]
    assert loop.add_reader.call_args_list[0].args[2] is first

    reader.detach()
    assert sorted(c.args[0] for c in loop.remove_reader.call_args_list) == [11, 12]
