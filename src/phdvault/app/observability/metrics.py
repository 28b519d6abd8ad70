"""Prometheus metrics for the share service.

Share outcomes are counted here rather than logged as errors: a wrong PIN
or an expired link is an expected event, not an application failure.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

HTTP_REQUESTS_TOTAL = Counter(
    "phdvault_http_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "phdvault_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

SHARES_ISSUED_TOTAL = Counter(
    "phdvault_shares_issued_total",
    "Share grants issued by delivery method.",
    labelnames=["method"],
    registry=REGISTRY,
)

SHARE_ACCESS_TOTAL = Counter(
    "phdvault_share_access_total",
    "Share access attempts by outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

SHARES_REVOKED_TOTAL = Counter(
    "phdvault_shares_revoked_total",
    "Share grants revoked by their owner.",
    registry=REGISTRY,
)

AUDIT_WRITE_FAILURES_TOTAL = Counter(
    "phdvault_audit_write_failures_total",
    "Audit entries that could not be written (swallowed).",
    labelnames=["action"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
