"""Prometheus metrics for ICMPmonitor."""

from prometheus_client import Counter, Gauge, Histogram, Info

from icmpmonitor.version import __version__

# Application info
app_info = Info("icmpmonitor", "Application information")
app_info.info({
    "version": __version__,
    "service": "icmpmonitor",
})

# Probe metrics
probes_sent_total = Counter(
    "icmpmonitor_probes_sent_total",
    "Total number of ICMP echo requests sent",
    ["host"],
)

probe_send_failures_total = Counter(
    "icmpmonitor_probe_send_failures_total",
    "Total number of ICMP echo requests that could not be sent",
    ["host"],
)

# Reply metrics
replies_received_total = Counter(
    "icmpmonitor_replies_received_total",
    "Total number of matching ICMP echo replies",
    ["host"],
)

packets_discarded_total = Counter(
    "icmpmonitor_packets_discarded_total",
    "Total number of received packets that matched no probe",
    ["reason"],
)

reply_rtt_seconds = Histogram(
    "icmpmonitor_reply_rtt_seconds",
    "Round-trip time of matching echo replies",
    ["host"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5],
)

# Host status
host_up_status = Gauge(
    "icmpmonitor_host_up",
    "Host liveness (1=up, 0=down)",
    ["host"],
)

hosts_monitored = Gauge(
    "icmpmonitor_hosts_monitored",
    "Number of hosts in the registry",
)

# Action metrics
actions_total = Counter(
    "icmpmonitor_actions_total",
    "Total number of up/down commands started",
    ["host", "action"],
)

actions_failed_total = Counter(
    "icmpmonitor_actions_failed_total",
    "Total number of up/down commands that failed",
    ["host", "action"],
)
