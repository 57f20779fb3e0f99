"""
Data Models and Schemas.

This module defines the domain entities used throughout Aba Directory,
one per Supabase table:

- Business: A listed business with contacts, location and services
- Market: A physical market grouping businesses
- BusinessCategory: Category with denormalized business/view/click counts
- Agent: Field agent registering businesses for owners
- UserProfile: Row of the users table
- KycVerification: Identity document submitted for review
- Activity: Append-only audit log entry

plus the request payloads that create or change them.

Example:
    from src.models import Business

    business = Business.from_db_row(row)
    payload = business.to_db_row()
"""

from src.models.schemas import (
    Activity,
    ActivityStatus,
    Agent,
    AgentStatus,
    AgentUpdate,
    Business,
    BusinessCategory,
    BusinessCreate,
    BusinessServices,
    BusinessStatus,
    BusinessUpdate,
    CategoryCreate,
    CategoryUpdate,
    CurrentUser,
    DocumentType,
    KycStatus,
    KycVerification,
    Market,
    MarketCreate,
    MarketUpdate,
    ProfileUpdate,
    UserProfile,
    UserRole,
)

__all__ = [
    # Enums
    "ActivityStatus",
    "AgentStatus",
    "BusinessStatus",
    "DocumentType",
    "KycStatus",
    "UserRole",
    # Entities
    "Activity",
    "Agent",
    "Business",
    "BusinessCategory",
    "BusinessServices",
    "CurrentUser",
    "KycVerification",
    "Market",
    "UserProfile",
    # Inputs
    "AgentUpdate",
    "BusinessCreate",
    "BusinessUpdate",
    "CategoryCreate",
    "CategoryUpdate",
    "MarketCreate",
    "MarketUpdate",
    "ProfileUpdate",
]
