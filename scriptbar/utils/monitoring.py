"""Prometheus metrics for plugin invocations."""

from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

# Plugin invocations: total by plugin and outcome
PLUGIN_INVOCATIONS = Counter(
    "scriptbar_plugin_invocations_total",
    "Total plugin invocations",
    ["plugin_id", "status"],
)

# Wall time of one script run in seconds
INVOCATION_LATENCY = Histogram(
    "scriptbar_invocation_duration_seconds",
    "Plugin script run duration in seconds",
    ["plugin_id"],
    buckets=(0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
)

# Refresh requests (manual, scheduled or first launch)
REFRESH_REQUESTS = Counter(
    "scriptbar_refresh_requests_total",
    "Total plugin refresh requests",
    ["plugin_id", "reason"],
)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus HTTP server for scraping. Call from main when enabled."""
    start_http_server(port)


def record_invocation(plugin_id: str, status: str, duration_seconds: float) -> None:
    PLUGIN_INVOCATIONS.labels(plugin_id=plugin_id, status=status).inc()
    INVOCATION_LATENCY.labels(plugin_id=plugin_id).observe(duration_seconds)


def record_refresh(plugin_id: str, reason: str) -> None:
    REFRESH_REQUESTS.labels(plugin_id=plugin_id, reason=reason).inc()
