"""Tests for the status API endpoints."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

HOST_INFO = {
    "name": "gateway.example.com",
    "address": "192.0.2.1",
    "state": "up",
    "ping_interval": 10,
    "max_delay": 30,
    "tag": 1,
    "sent_packets": 4,
    "received_packets": 3,
    "seconds_since_reply": 2.5,
    "seconds_since_probe": 1.0,
    "last_rtt_ms": 0.42,
}


def _stub_monitor():
    monitor = MagicMock()
    monitor.start = AsyncMock()
    monitor.stop = AsyncMock()
    monitor.registry = [object()]
    monitor.hosts_info.return_value = [HOST_INFO]
    monitor.host_info.side_effect = lambda name: HOST_INFO if name == HOST_INFO["name"] else None
    return monitor


@pytest.fixture
def monitor():
    return _stub_monitor()


@pytest.fixture
def client(monitor):
    """Create test client with the monitor and scheduler stubbed out."""
    scheduler = SimpleNamespace(running=True)

    with patch("icmpmonitor.web.app.load_hosts", return_value=[]), \
         patch("icmpmonitor.web.app.IcmpMonitor", return_value=monitor), \
         patch("icmpmonitor.web.routes.api.get_monitor", return_value=monitor), \
         patch("icmpmonitor.web.routes.health.get_monitor", return_value=monitor), \
         patch("icmpmonitor.web.routes.health.get_scheduler", return_value=scheduler):

        from icmpmonitor.web.app import app
        with TestClient(app) as test_client:
            yield test_client


class TestHostEndpoints:
    """Tests for host status endpoints."""

    def test_list_hosts(self, client):
        response = client.get("/api/hosts")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["name"] == "gateway.example.com"
        assert data[0]["state"] == "up"

    def test_get_host(self, client):
        response = client.get("/api/hosts/gateway.example.com")

        assert response.status_code == 200
        assert response.json()["received_packets"] == 3

    def test_get_host_not_found(self, client):
        response = client.get("/api/hosts/nope.example.com")

        assert response.status_code == 404
        assert "not found" in response.json()["detail"].lower()

    def test_list_jobs(self, client):
        with patch("icmpmonitor.web.routes.api.get_jobs_info", return_value=[
            {"id": "probe_pass", "name": "ICMP Probe Pass", "next_run": None, "trigger": "interval[0:00:01]"},
        ]):
            response = client.get("/api/jobs")

        assert response.status_code == 200
        assert response.json()[0]["id"] == "probe_pass"


class TestHealthEndpoints:
    """Tests for health and metrics endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["hosts_monitored"] == 1

    def test_health_degraded_without_scheduler(self, client):
        with patch("icmpmonitor.web.routes.health.get_scheduler", return_value=None):
            response = client.get("/health")

        assert response.json()["status"] == "degraded"
        assert response.json()["message"] == "Scheduler not running"

    def test_ready_and_live(self, client):
        assert client.get("/ready").json() == {"ready": True}
        assert client.get("/live").json() == {"alive": True}

    def test_version(self, client):
        response = client.get("/version")

        assert response.status_code == 200
        assert response.json()["version"]

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "icmpmonitor_probes_sent_total" in response.text


def test_lifespan_starts_and_stops_monitor(client, monitor):
    monitor.start.assert_awaited_once()
    monitor.stop.assert_not_awaited()


def test_lifespan_records_startup_failure():
    from icmpmonitor.monitor.registry import NoHostsError

    monitor = _stub_monitor()
    monitor.start.side_effect = NoHostsError("No hosts left to process")

    with patch("icmpmonitor.web.app.load_hosts", return_value=[]), \
         patch("icmpmonitor.web.app.IcmpMonitor", return_value=monitor):
        from icmpmonitor.web.app import app

        with pytest.raises(NoHostsError):
            with TestClient(app):
                pass

    assert isinstance(app.state.startup_error, NoHostsError)
