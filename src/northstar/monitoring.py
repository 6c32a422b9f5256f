"""Monitoring configuration for the tracking core."""
from prometheus_client import Counter, Histogram, start_http_server

# Transport metrics
request_attempts = Counter(
    "northstar_request_attempts_total",
    "Total number of remote request attempts",
    ["endpoint", "method", "outcome"],
)

request_failures = Counter(
    "northstar_request_failures_total",
    "Total number of requests that failed after exhausting retries",
    ["endpoint", "method"],
)

# Session metrics
sessions_started = Counter(
    "northstar_sessions_started_total",
    "Total number of sessions started",
    ["session_type"],
)

sessions_completed = Counter(
    "northstar_sessions_completed_total",
    "Total number of sessions completed",
    ["session_type"],
)

session_duration = Histogram(
    "northstar_session_duration_seconds",
    "Duration of completed sessions in seconds",
    ["session_type"],
    buckets=[60, 300, 600, 1800, 3600],  # 1min, 5min, 10min, 30min, 1hour
)

# Interaction metrics
interactions = Counter(
    "northstar_interactions_total",
    "Total number of interaction events recorded",
    ["action"],
)

# Error metrics
background_failures = Counter(
    "northstar_background_failures_total",
    "Total number of background tasks that failed",
    ["label"],
)

persistence_errors = Counter(
    "northstar_persistence_errors_total",
    "Total number of persistence errors",
    ["operation"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
