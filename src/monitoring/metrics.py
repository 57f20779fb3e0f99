"""
Prometheus metrics for Aba Directory observability.

Provides standardized metrics for request latency, Supabase operations,
storage uploads and reverse geocoding. Every degraded path (stored procedure
fallback, partial dashboard failure, placeholder performance data) is counted
in FALLBACK_TOTAL so that an outage masked by a fallback is still visible.

Usage:
    from src.monitoring.metrics import track_backend_operation

    with track_backend_operation("businesses", "select"):
        result = query.execute()

    # Or manually
    FALLBACK_TOTAL.labels(component="categories", reason="rpc_failed").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# API request metrics
API_REQUEST_DURATION = Histogram(
    "abadirectory_api_request_duration_seconds",
    "Duration of API requests in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

API_REQUEST_TOTAL = Counter(
    "abadirectory_api_request_total",
    "Total number of API requests",
    ["method", "endpoint", "status_code"],
)

# Supabase metrics
BACKEND_OPERATIONS = Counter(
    "abadirectory_backend_operations_total",
    "Total Supabase table and procedure operations",
    ["resource", "operation", "status"],
)

BACKEND_LATENCY = Histogram(
    "abadirectory_backend_latency_seconds",
    "Latency of Supabase operations",
    ["resource", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

FALLBACK_TOTAL = Counter(
    "abadirectory_fallback_total",
    "Responses served through a degraded path",
    ["component", "reason"],
)

# Storage metrics
STORAGE_UPLOADS = Counter(
    "abadirectory_storage_uploads_total",
    "Files uploaded to storage buckets",
    ["bucket", "status"],
)

# Geocoding metrics
GEOCODING_REQUESTS = Counter(
    "abadirectory_geocoding_requests_total",
    "Reverse geocoding requests",
    ["status"],
)

GEOCODING_LATENCY = Histogram(
    "abadirectory_geocoding_latency_seconds",
    "Latency of reverse geocoding requests",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# KYC metrics
KYC_DECISIONS = Counter(
    "abadirectory_kyc_decisions_total",
    "KYC submissions and review decisions",
    ["decision"],
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "abadirectory_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "abadirectory_circuit_breaker_failures_total",
    "Total failures recorded by circuit breakers",
    ["service"],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_api_request(
    method: str,
    endpoint: str,
) -> Generator[dict, None, None]:
    """
    Context manager to track API request duration and status.

    Usage:
        with track_api_request("GET", "/api/v1/markets") as ctx:
            response = await call_next(request)
            ctx["status_code"] = response.status_code

    The endpoint label may be replaced through ctx["endpoint"] once the
    route template is known, keeping label cardinality bounded.
    """
    start_time = time.perf_counter()
    context = {"status_code": "500", "endpoint": endpoint}
    try:
        yield context
    finally:
        duration = time.perf_counter() - start_time
        status_code = str(context.get("status_code", "500"))
        endpoint = context["endpoint"]
        API_REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code,
        ).observe(duration)
        API_REQUEST_TOTAL.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code,
        ).inc()


@contextmanager
def track_backend_operation(
    resource: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track a Supabase table query or procedure call.

    Usage:
        with track_backend_operation("kyc_verifications", "update"):
            builder.execute()
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        BACKEND_OPERATIONS.labels(
            resource=resource,
            operation=operation,
            status=status,
        ).inc()
        BACKEND_LATENCY.labels(
            resource=resource,
            operation=operation,
        ).observe(duration)


@contextmanager
def track_geocoding_request() -> Generator[None, None, None]:
    """Context manager to track one reverse geocoding call."""
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        GEOCODING_LATENCY.observe(time.perf_counter() - start_time)
        GEOCODING_REQUESTS.labels(status=status).inc()


def record_fallback(component: str, reason: str) -> None:
    """Count a response served through a degraded path."""
    FALLBACK_TOTAL.labels(component=component, reason=reason).inc()


def record_storage_upload(bucket: str, status: str) -> None:
    """Count a storage upload attempt."""
    STORAGE_UPLOADS.labels(bucket=bucket, status=status).inc()


def record_kyc_decision(decision: str) -> None:
    """Count a KYC submission, approval or rejection."""
    KYC_DECISIONS.labels(decision=decision).inc()


def update_circuit_breaker_state(service: str, state: str) -> None:
    """
    Update circuit breaker state gauge.

    Args:
        service: Service name
        state: Circuit state ("closed", "half_open", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    CIRCUIT_BREAKER_STATE.labels(service=service).set(state_map.get(state, 0))


def record_circuit_breaker_failure(service: str) -> None:
    """Record a circuit breaker failure."""
    CIRCUIT_BREAKER_FAILURES.labels(service=service).inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_metrics_app() -> Starlette:
    """
    Get a Starlette app for serving metrics.

    Mounted at /metrics by src.api.main.
    """
    return Starlette(
        routes=[
            Route("/", metrics_endpoint),
        ]
    )
