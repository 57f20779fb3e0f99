"""
Monitoring and observability for Aba Directory.

Provides Prometheus metrics for tracking request latency, Supabase
operations, degraded fallbacks and external service health.

Usage:
    from src.monitoring import track_backend_operation, record_fallback

    with track_backend_operation("markets", "select"):
        result = query.execute()

    record_fallback("dashboard", "partial_failure")
"""

from src.monitoring.metrics import (
    API_REQUEST_DURATION,
    BACKEND_OPERATIONS,
    FALLBACK_TOTAL,
    GEOCODING_REQUESTS,
    KYC_DECISIONS,
    CIRCUIT_BREAKER_STATE,
    track_api_request,
    track_backend_operation,
    track_geocoding_request,
    record_fallback,
    record_storage_upload,
    record_kyc_decision,
    update_circuit_breaker_state,
    record_circuit_breaker_failure,
    get_metrics_app,
)

__all__ = [
    # Prometheus metrics
    "API_REQUEST_DURATION",
    "BACKEND_OPERATIONS",
    "FALLBACK_TOTAL",
    "GEOCODING_REQUESTS",
    "KYC_DECISIONS",
    "CIRCUIT_BREAKER_STATE",
    # Context managers
    "track_api_request",
    "track_backend_operation",
    "track_geocoding_request",
    # Helper functions
    "record_fallback",
    "record_storage_upload",
    "record_kyc_decision",
    "update_circuit_breaker_state",
    "record_circuit_breaker_failure",
    "get_metrics_app",
]
