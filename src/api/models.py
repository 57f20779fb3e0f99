"""Pydantic models for API requests and responses.

Domain entities (Business, Market, ...) live in src.models.schemas and are
returned as-is; this module defines the request bodies and list wrappers
specific to the HTTP surface, plus the shared health and error models.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.models.schemas import (
    Activity,
    Agent,
    Business,
    BusinessStatus,
    KycVerification,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Business Models
# =============================================================================


class BusinessListResponse(BaseModel):
    """Response model for the public business search."""

    businesses: list[Business] = Field(..., description="Page of matching businesses")
    total: int = Field(..., description="Total number of matches")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Page offset")


class BusinessSummary(BaseModel):
    total: int = 0
    active: int = 0
    pending: int = 0
    suspended: int = 0


class AdminBusinessListResponse(BaseModel):
    """Response model for the admin business table."""

    businesses: list[Business]
    total: int
    summary: BusinessSummary


class StatusUpdateRequest(BaseModel):
    """Request model for changing a listing's status."""

    status: BusinessStatus = Field(..., description="New listing status")


class LocationUpdate(BaseModel):
    """Request model for recording a business GPS fix."""

    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")
    accuracy: Optional[float] = Field(None, ge=0.0, description="Accuracy radius in metres")


# =============================================================================
# Category / Upload Models
# =============================================================================


class ViewRecordedResponse(BaseModel):
    category_id: UUID
    recorded: bool = Field(..., description="False when the view could not be stored")


class UploadResponse(BaseModel):
    url: str = Field(..., description="Public URL of the uploaded file")


# =============================================================================
# KYC Models
# =============================================================================


class KycListResponse(BaseModel):
    verifications: list[KycVerification]
    total: int
    limit: int
    offset: int


class RejectRequest(BaseModel):
    """Request model for rejecting a KYC verification."""

    reason: str = Field(..., description="Reason shown to the user")


# =============================================================================
# Agent / Activity Models
# =============================================================================


class AgentRegistrationResponse(BaseModel):
    agent: Agent
    created: bool = Field(..., description="False when the caller was already registered")


class AgentListResponse(BaseModel):
    agents: list[Agent]
    total: int


class ActivityListResponse(BaseModel):
    activities: list[Activity]
    total: int
    limit: int
    offset: int


# =============================================================================
# Profile / Geocoding Models
# =============================================================================


class PasswordChangeRequest(BaseModel):
    new_password: str = Field(..., description="New password, at least 8 characters")
    confirm_password: str = Field(..., description="Must equal new_password")


class ReverseGeocodeResponse(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = Field(None, description="Display name, or null when nothing matched")


# =============================================================================
# Health Check Models
# =============================================================================


class HealthStatus(BaseModel):
    """Individual service health status."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Service status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system status"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Individual service statuses",
    )
    circuit_breakers: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="State of each outbound circuit breaker",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Error timestamp",
    )


class ValidationErrorDetail(BaseModel):
    """Details for validation errors."""

    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    """Response for validation errors."""

    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
