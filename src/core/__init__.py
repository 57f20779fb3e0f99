"""
Core infrastructure modules for Aba Directory.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy with HTTP status mapping
- circuit_breaker: Resilience pattern for external HTTP services
"""

from src.core.exceptions import (
    AbaDirectoryError,
    RetryableError,
    PermanentError,
    NotFoundError,
    ConflictError,
    InvalidTransitionError,
    ValidationFailedError,
    AuthenticationError,
    PermissionDeniedError,
    BackendError,
    BackendUnavailableError,
    StorageError,
    GeocodingError,
    GeocodingRateLimitError,
    GeocodingTimeoutError,
    GeocodingUnavailableError,
    ConfigurationError,
    CircuitBreakerOpenError,
)

from src.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    get_all_circuit_breakers,
    reset_all_circuit_breakers,
)

__all__ = [
    # Exceptions
    "AbaDirectoryError",
    "RetryableError",
    "PermanentError",
    "NotFoundError",
    "ConflictError",
    "InvalidTransitionError",
    "ValidationFailedError",
    "AuthenticationError",
    "PermissionDeniedError",
    "BackendError",
    "BackendUnavailableError",
    "StorageError",
    "GeocodingError",
    "GeocodingRateLimitError",
    "GeocodingTimeoutError",
    "GeocodingUnavailableError",
    "ConfigurationError",
    "CircuitBreakerOpenError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "get_circuit_breaker",
    "get_all_circuit_breakers",
    "reset_all_circuit_breakers",
]
