"""
Core exception hierarchy for Aba Directory.

Provides standardized exception types with categorization for retry logic
and the HTTP status each one maps to at the API boundary.
All components should use these exceptions instead of generic Exception.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class AbaDirectoryError(Exception):
    """Base exception for all Aba Directory errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(AbaDirectoryError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, backend temporarily unavailable.
    """

    pass


class PermanentError(AbaDirectoryError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, missing records, permission failures.
    """

    pass


# =============================================================================
# Request Errors
# =============================================================================


class NotFoundError(PermanentError):
    """Raised when a requested record does not exist."""

    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str, resource_id: Any = None):
        self.resource = resource
        self.resource_id = resource_id
        message = f"{resource} not found"
        details = {"resource": resource}
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
            details["id"] = str(resource_id)
        super().__init__(message, details)


class ConflictError(PermanentError):
    """Raised when a write conflicts with existing data (e.g. duplicate name)."""

    status_code = 409
    error_code = "conflict"


class InvalidTransitionError(ConflictError):
    """Raised when a record is not in a state that allows the requested change."""

    error_code = "invalid_transition"

    def __init__(self, resource: str, current: Optional[str], target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move {resource} from '{current}' to '{target}'",
            {"resource": resource, "current": current, "target": target},
        )


class ValidationFailedError(PermanentError):
    """Raised when input passes schema validation but breaks a business rule."""

    status_code = 422
    error_code = "validation_failed"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class AuthenticationError(PermanentError):
    """Raised when a request carries no valid access token."""

    status_code = 401
    error_code = "unauthorized"


class PermissionDeniedError(PermanentError):
    """Raised when the caller (or the backend role) lacks permission."""

    status_code = 403
    error_code = "forbidden"


# =============================================================================
# Backend Errors
# =============================================================================


class BackendError(AbaDirectoryError):
    """Raised when a Supabase query or procedure fails unexpectedly."""

    status_code = 502
    error_code = "backend_error"


class BackendUnavailableError(BackendError, RetryableError):
    """Raised when the backend cannot serve the request (missing table, outage)."""

    status_code = 503
    error_code = "backend_unavailable"


class StorageError(BackendError):
    """Raised when a storage bucket upload or removal fails."""

    error_code = "storage_error"


# =============================================================================
# Geocoding Errors
# =============================================================================


class GeocodingError(AbaDirectoryError):
    """Base exception for reverse geocoding errors."""

    status_code = 502
    error_code = "geocoding_error"


class GeocodingRateLimitError(GeocodingError, RetryableError):
    """Raised when the geocoding service rate limits us."""

    pass


class GeocodingTimeoutError(GeocodingError, RetryableError):
    """Raised when a geocoding request times out."""

    pass


class GeocodingUnavailableError(GeocodingError, RetryableError):
    """Raised when the geocoding service is temporarily unavailable."""

    status_code = 503


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreakerOpenError(RetryableError):
    """Raised when circuit breaker is open and blocking requests."""

    status_code = 503
    error_code = "service_unavailable"

    def __init__(self, service: str, recovery_time: float):
        self.service = service
        self.recovery_time = recovery_time
        super().__init__(
            f"Circuit breaker open for {service}. Recovery in {recovery_time:.1f}s",
            {"service": service, "recovery_time": recovery_time},
        )
