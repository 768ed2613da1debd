from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Relay metrics
relay_requests_total = Counter(
    "genie_relay_requests_total",
    "Relay requests forwarded to Databricks Genie",
    ["action", "status"],
)

relay_upstream_duration = Histogram(
    "genie_relay_upstream_duration_seconds",
    "Duration of the forwarded Genie API call",
    ["action"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

# Orchestrator metrics
genie_poll_attempts = Histogram(
    "genie_poll_attempts",
    "Status polls needed before a message reached a terminal state",
    buckets=(1, 2, 3, 4, 6, 8, 12, 16, 20, 25, 30),
)

genie_submission_duration = Histogram(
    "genie_submission_duration_seconds",
    "Wall-clock time from question submission to outcome",
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 60),
)

genie_outcomes_total = Counter(
    "genie_outcomes_total",
    "Submitted questions by outcome status",
    ["status"],
)

genie_errors_total = Counter(
    "genie_errors_total",
    "Failed submissions by error kind",
    ["kind"],
)

# WebSocket metrics
websocket_connections = Gauge(
    "genie_chat_websocket_connections_active",
    "Active chat WebSocket connections",
)
