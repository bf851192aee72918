"""Prometheus metrics for the sandbox API.

Usage::

    from sandbox_api.observability.metrics import LIFECYCLE_JOBS_TOTAL

    LIFECYCLE_JOBS_TOTAL.labels(action="cleanup", status="new").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# Default global registry, so the process/platform collectors are exported
# alongside application metrics.

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Lifecycle job ledger
# ---------------------------------------------------------------------------

LIFECYCLE_JOBS_TOTAL = Counter(
    "sandbox_lifecycle_jobs_total",
    "Lifecycle job writes by action and resulting status.",
    labelnames=["action", "status"],
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Account stores
# ---------------------------------------------------------------------------

ACCOUNT_RECORD_ERRORS_TOTAL = Counter(
    "sandbox_account_record_errors_total",
    "Account records that could not be fully materialized.",
    labelnames=["kind", "reason"],
    registry=REGISTRY,
)

STORE_ERRORS_TOTAL = Counter(
    "sandbox_store_errors_total",
    "Backend faults raised by store adapters.",
    labelnames=["backend", "operation"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
