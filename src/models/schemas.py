"""Pydantic models for Aba Directory core entities.

Each model mirrors one Supabase table row. Rows are read with
`Model.from_db_row(row)` and written with `model.to_db_row()`.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Roles stored on the users table."""
    ADMIN = "admin"
    AGENT = "agent"
    USER = "user"


class BusinessStatus(str, Enum):
    """Listing status of a business."""
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


class AgentStatus(str, Enum):
    """Account status of a field agent."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    SUSPENDED = "suspended"


class KycStatus(str, Enum):
    """KYC review states. APPROVED and REJECTED are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentType(str, Enum):
    """Identity documents accepted for KYC."""
    NATIONAL_ID = "national_id"
    DRIVERS_LICENSE = "drivers_license"
    PASSPORT = "passport"
    VOTER_CARD = "voter_card"


class ActivityStatus(str, Enum):
    """Outcome recorded on an activity log entry."""
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


# =============================================================================
# Base Models
# =============================================================================


class BaseEntity(BaseModel):
    """Base model with common fields and conversion methods."""

    class Config:
        from_attributes = True
        populate_by_name = True

    def to_db_row(self, exclude_none: bool = True) -> dict[str, Any]:
        """Convert model to a Supabase row payload.

        UUIDs, datetimes and enums are converted to their JSON forms.
        None values are dropped by default so the database defaults apply.
        """
        data = self.model_dump()
        result = {}
        for key, value in data.items():
            if value is None and exclude_none:
                continue
            if isinstance(value, UUID):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Enum):
                result[key] = value.value
            else:
                result[key] = value
        return result

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "BaseEntity":
        """Create model instance from database row."""
        return cls.model_validate(row)


# =============================================================================
# Core Entity Models
# =============================================================================


class BusinessServices(BaseModel):
    """Semi-structured services list stored as JSON on a business."""

    category: Optional[str] = Field(None, description="Category title the services belong to")
    service_list: list[str] = Field(default_factory=list, description="Offered services")
    last_updated: Optional[datetime] = Field(None, description="When the list last changed")
    count: int = Field(0, ge=0, description="Number of services in service_list")


class Business(BaseEntity):
    """A listed business."""

    id: UUID = Field(..., description="Unique identifier")
    name: str = Field(..., description="Business name")
    description: Optional[str] = Field(None, description="Free-text description")
    market_id: Optional[UUID] = Field(None, description="Market the business trades in")
    category_id: Optional[UUID] = Field(None, description="Business category")
    owner_id: Optional[UUID] = Field(None, description="Owning user")
    created_by: Optional[UUID] = Field(None, description="User (agent or owner) who created the listing")
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(None, ge=-180.0, le=180.0)
    location_accuracy: Optional[float] = Field(None, description="GPS accuracy in metres")
    location_timestamp: Optional[datetime] = None
    detected_address: Optional[str] = Field(None, description="Reverse-geocoded address")
    status: BusinessStatus = Field(BusinessStatus.ACTIVE, description="Listing status")
    services: Optional[BusinessServices] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Market(BaseEntity):
    """A physical market grouping businesses."""

    id: UUID
    name: str
    location: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BusinessCategory(BaseEntity):
    """A business category with its denormalized counters."""

    id: UUID
    title: str
    description: Optional[str] = None
    image_path: Optional[str] = None
    icon_type: Optional[str] = None
    link_path: Optional[str] = None
    count: int = Field(0, description="Number of businesses in the category (recomputed on recount)")
    total_views: int = 0
    total_clicks: int = 0
    created_at: Optional[datetime] = None


class Agent(BaseEntity):
    """A field agent registering businesses on behalf of owners."""

    id: UUID
    user_id: Optional[UUID] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    status: AgentStatus = AgentStatus.ACTIVE
    weekly_target: Optional[int] = None
    current_week_registrations: int = 0
    total_registrations: int = 0
    total_businesses: int = 0
    created_at: Optional[datetime] = None


class UserProfile(BaseEntity):
    """Row from the users table."""

    id: UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.USER
    status: Optional[str] = None
    business_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class KycVerification(BaseEntity):
    """An identity document submitted for review."""

    id: UUID
    user_id: UUID
    document_type: str
    document_number: Optional[str] = None
    document_image_url: Optional[str] = None
    status: KycStatus = KycStatus.PENDING
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    # Joined from users for the admin review list
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class Activity(BaseEntity):
    """Append-only audit log entry."""

    id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    agent_id: Optional[UUID] = None
    activity_type: str
    description: str
    status: ActivityStatus = ActivityStatus.COMPLETED
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    created_at: Optional[datetime] = None


class CurrentUser(BaseModel):
    """The authenticated caller, resolved from a Supabase access token."""

    id: UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT


# =============================================================================
# Create/Update Models
# =============================================================================


class BusinessCreate(BaseModel):
    """Input for creating a business listing."""

    name: str = Field(..., min_length=1, max_length=255, description="Business name")
    business_type: Optional[str] = Field(
        None, max_length=100, description="Category title, resolved case-insensitively"
    )
    category_id: Optional[UUID] = Field(None, description="Category, takes precedence over business_type")
    market_id: Optional[UUID] = Field(None, description="Market the business trades in")
    market_name: Optional[str] = Field(None, max_length=255, description="Market looked up by name")
    description: Optional[str] = Field(None, max_length=2000)
    contact_phone: Optional[str] = Field(None, max_length=30)
    contact_email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    website: Optional[str] = Field(None, max_length=500)
    facebook: Optional[str] = Field(None, max_length=500)
    instagram: Optional[str] = Field(None, max_length=500)
    services: list[str] = Field(default_factory=list, description="Offered services")
    latitude: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(None, ge=-180.0, le=180.0)
    location_accuracy: Optional[float] = Field(None, ge=0.0)


class BusinessUpdate(BaseModel):
    """Partial update of a business listing."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    category_id: Optional[UUID] = None
    market_id: Optional[UUID] = None
    contact_phone: Optional[str] = Field(None, max_length=30)
    contact_email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    website: Optional[str] = Field(None, max_length=500)
    facebook: Optional[str] = Field(None, max_length=500)
    instagram: Optional[str] = Field(None, max_length=500)
    services: Optional[list[str]] = None


class MarketCreate(BaseModel):
    """Input for creating a market."""

    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class MarketUpdate(BaseModel):
    """Partial update of a market."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class CategoryCreate(BaseModel):
    """Input for creating a business category."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    image_path: Optional[str] = Field(None, max_length=1000)
    icon_type: Optional[str] = Field(None, max_length=100)
    link_path: Optional[str] = Field(None, max_length=500)


class CategoryUpdate(BaseModel):
    """Partial update of a business category."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    image_path: Optional[str] = Field(None, max_length=1000)
    icon_type: Optional[str] = Field(None, max_length=100)
    link_path: Optional[str] = Field(None, max_length=500)


class AgentUpdate(BaseModel):
    """Admin changes to an agent."""

    status: Optional[AgentStatus] = None
    weekly_target: Optional[int] = Field(None, ge=1, le=1000)


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    business_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=1000)
