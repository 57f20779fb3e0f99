"""Admin dashboard statistics."""

from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.models.schemas import Activity
from src.monitoring.metrics import record_fallback
from src.services.backend import run_concurrently

logger = structlog.get_logger(__name__)

RECENT_ACTIVITY_LIMIT = 5


class DashboardStats(BaseModel):
    """Headline counts and the latest activity for the admin dashboard."""
    total_users: int = 0
    total_businesses: int = 0
    total_markets: int = 0
    total_categories: int = 0
    pending_kyc: int = 0
    recent_activities: list[Activity] = Field(default_factory=list)
    has_errors: bool = False
    failed_widgets: list[str] = Field(default_factory=list)


async def dashboard_stats(supabase: Any) -> DashboardStats:
    """
    Load every dashboard widget concurrently.

    A failed query leaves its widget at zero (or empty) and sets has_errors;
    the other widgets are unaffected.
    """
    outcomes = await run_concurrently(
        {
            "total_users": ("users", supabase.table("users").select("id", count="exact")),
            "total_businesses": ("businesses", supabase.table("businesses").select("id", count="exact")),
            "total_markets": ("markets", supabase.table("markets").select("id", count="exact")),
            "total_categories": (
                "business_categories",
                supabase.table("business_categories").select("id", count="exact"),
            ),
            "pending_kyc": (
                "kyc_verifications",
                supabase.table("kyc_verifications").select("id", count="exact").eq("status", "pending"),
            ),
            "recent_activities": (
                "activities",
                supabase.table("activities")
                .select("*")
                .order("created_at", desc=True)
                .limit(RECENT_ACTIVITY_LIMIT),
            ),
        }
    )

    failed = [name for name, outcome in outcomes.items() if not outcome.ok]
    if failed:
        logger.warning("dashboard_stats_degraded", failed_widgets=failed)
        record_fallback("dashboard", "partial_failure")

    return DashboardStats(
        total_users=outcomes["total_users"].total,
        total_businesses=outcomes["total_businesses"].total,
        total_markets=outcomes["total_markets"].total,
        total_categories=outcomes["total_categories"].total,
        pending_kyc=outcomes["pending_kyc"].total,
        recent_activities=[
            Activity.from_db_row(row) for row in outcomes["recent_activities"].data
        ],
        has_errors=bool(failed),
        failed_widgets=failed,
    )
