"""
Prometheus metrics for the guest book API.

This module provides:
- HTTP request counter (method, path, status)
- Guest book operation counter (operation, result)
- Listing cache lookup counter (result)
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

import re

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Numeric path segments (entry ids) collapse into one label value
ID_SEGMENT_PATTERN = re.compile(r"/\d+(?=/|$)")


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Guest book operation outcome counter
# operation: list, create, toggle_like, delete
# result: ok, applied, noop, unauthorized, validation_error, error
guest_book_operations_total = Counter(
    "guest_book_operations_total",
    "Total guest book operation outcomes",
    labelnames=["operation", "result"]
)

# Listing cache lookups
# result: hit, miss
guest_book_cache_requests_total = Counter(
    "guest_book_cache_requests_total",
    "Guest book listing cache lookups",
    labelnames=["result"]
)

# Request latency histogram in seconds
# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # /guest-book/42/like -> /guest-book/{id}/like
    normalized_path = ID_SEGMENT_PATTERN.sub("/{id}", path.split("?")[0])

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_guest_book_outcome(operation: str, result: str) -> None:
    """
    Record a guest book operation outcome.

    Args:
        operation: One of "list", "create", "toggle_like", "delete"
        result: Processing result - one of:
            - "ok": Listing served
            - "applied": Mutation changed a row
            - "noop": Mutation accepted but nothing changed
            - "unauthorized": No authenticated caller
            - "validation_error": Content rejected
            - "error": Storage failure
    """
    guest_book_operations_total.labels(operation=operation, result=result).inc()


def record_cache_lookup(result: str) -> None:
    """Record a listing cache lookup ("hit" or "miss")."""
    guest_book_cache_requests_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string for Prometheus exposition format
    """
    return CONTENT_TYPE_LATEST
