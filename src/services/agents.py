"""
Field agents: registration, admin management and the agent portal dashboard.
"""

import math
from datetime import datetime, time, timedelta, timezone
from typing import Any, Literal, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from src.config.settings import Settings, get_settings
from src.models.schemas import (
    Agent,
    AgentStatus,
    AgentUpdate,
    Business,
    CurrentUser,
    UserRole,
)
from src.services.activities import record_activity
from src.services.backend import execute, first_or_404, run_concurrently

logger = structlog.get_logger(__name__)

MILESTONE_STEP = 50
RECENT_BUSINESSES_LIMIT = 5


# =============================================================================
# Models
# =============================================================================


class AgentInsights(BaseModel):
    average_weekly_businesses: int
    weekly_growth: int = Field(..., description="Percent above the average week, 0 when not above")
    achievement_level: Literal["Gold", "Silver", "Bronze"]
    next_milestone: int
    remaining_to_milestone: int


class AgentDashboard(BaseModel):
    """Weekly progress shown on the agent portal."""
    agent_id: Optional[UUID] = None
    week_start: datetime
    week_end: datetime
    total_businesses: int = 0
    weekly_businesses: int = 0
    weekly_target: int
    progress_percentage: float = 0.0
    target_met: bool = False
    recent_businesses: list[Business] = Field(default_factory=list)
    insights: AgentInsights
    has_errors: bool = False


# =============================================================================
# Helpers
# =============================================================================


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Monday 00:00 through Sunday 23:59:59.999999 of the week containing ``now``."""
    tz = now.tzinfo or timezone.utc
    monday = now.date() - timedelta(days=now.weekday())
    sunday = monday + timedelta(days=6)
    return (
        datetime.combine(monday, time.min, tzinfo=tz),
        datetime.combine(sunday, time.max, tzinfo=tz),
    )


def achievement_level(total: int) -> Literal["Gold", "Silver", "Bronze"]:
    if total > 100:
        return "Gold"
    if total > 50:
        return "Silver"
    return "Bronze"


def compute_insights(total: int, weekly: int) -> AgentInsights:
    average_weekly = max(1, math.floor(total / 10 + 0.5))
    weekly_growth = 0
    if weekly > average_weekly:
        weekly_growth = math.floor((weekly - average_weekly) / average_weekly * 100 + 0.5)
    next_milestone = math.ceil(total / MILESTONE_STEP) * MILESTONE_STEP
    return AgentInsights(
        average_weekly_businesses=average_weekly,
        weekly_growth=weekly_growth,
        achievement_level=achievement_level(total),
        next_milestone=next_milestone,
        remaining_to_milestone=next_milestone - total,
    )


def _agent_for_user(supabase: Any, user_id: UUID) -> Optional[dict[str, Any]]:
    response = execute(
        supabase.table("agents").select("*").eq("user_id", str(user_id)).limit(1),
        "agents",
    )
    rows = response.data or []
    return rows[0] if rows else None


# =============================================================================
# Agent Operations
# =============================================================================


async def register_agent(supabase: Any, user: CurrentUser) -> tuple[Agent, bool]:
    """
    Create the agent record for the current user.

    Returns:
        (agent, created). Registering twice returns the existing agent.
    """
    existing = _agent_for_user(supabase, user.id)
    if existing is not None:
        return Agent.from_db_row(existing), False

    profile = execute(
        supabase.table("users").select("id, full_name, email, phone").eq("id", str(user.id)).limit(1),
        "users",
    ).data or []
    details = profile[0] if profile else {}

    row = {
        "user_id": str(user.id),
        "full_name": details.get("full_name") or user.full_name,
        "email": details.get("email") or user.email,
        "phone": details.get("phone"),
        "role": UserRole.AGENT.value,
        "status": AgentStatus.ACTIVE.value,
        "current_week_registrations": 0,
        "total_registrations": 0,
        "total_businesses": 0,
    }
    response = execute(supabase.table("agents").insert(row), "agents", "insert")
    agent = Agent.from_db_row(first_or_404(response, "Agent"))

    if not user.is_admin:
        execute(
            supabase.table("users").update({"role": UserRole.AGENT.value}).eq("id", str(user.id)),
            "users",
            "update",
        )

    logger.info("agent_registered", agent_id=str(agent.id), user_id=str(user.id))
    await record_activity(
        supabase,
        activity_type="agent",
        description=f"Registered as agent: {agent.full_name or agent.email}",
        user_id=user.id,
        agent_id=agent.id,
        resource_type="agent",
        resource_id=agent.id,
    )
    return agent, True


def list_agents(supabase: Any, status: Optional[AgentStatus] = None) -> list[Agent]:
    query = supabase.table("agents").select("*")
    if status:
        query = query.eq("status", status.value)
    response = execute(query.order("created_at", desc=True), "agents")
    return [Agent.from_db_row(row) for row in (response.data or [])]


async def update_agent(
    supabase: Any,
    admin: CurrentUser,
    agent_id: UUID,
    changes: AgentUpdate,
) -> Agent:
    data = changes.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    response = execute(
        supabase.table("agents").update(data).eq("id", str(agent_id)),
        "agents",
        "update",
    )
    agent = Agent.from_db_row(first_or_404(response, "Agent", agent_id))
    logger.info("agent_updated", agent_id=str(agent_id), fields=sorted(data))
    await record_activity(
        supabase,
        activity_type="agent",
        description=f"Updated agent {agent.full_name or agent_id}",
        user_id=admin.id,
        resource_type="agent",
        resource_id=agent_id,
    )
    return agent


async def agent_dashboard(
    supabase: Any,
    user: CurrentUser,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> AgentDashboard:
    """
    Weekly progress for the agent portal.

    Counts are issued concurrently; a failed count reads as zero and sets
    has_errors.
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    week_start, week_end = week_bounds(now)

    agent = _agent_for_user(supabase, user.id)
    weekly_target = (agent or {}).get("weekly_target") or settings.agent_dashboard_default_target

    user_id = str(user.id)
    outcomes = await run_concurrently(
        {
            "total": (
                "businesses",
                supabase.table("businesses").select("id", count="exact").eq("created_by", user_id),
            ),
            "weekly": (
                "businesses",
                supabase.table("businesses")
                .select("id", count="exact")
                .eq("created_by", user_id)
                .gte("created_at", week_start.isoformat())
                .lte("created_at", week_end.isoformat()),
            ),
            "recent": (
                "businesses",
                supabase.table("businesses")
                .select("*")
                .eq("created_by", user_id)
                .order("created_at", desc=True)
                .limit(RECENT_BUSINESSES_LIMIT),
            ),
        }
    )

    total = outcomes["total"].total
    weekly = outcomes["weekly"].total
    progress = min(weekly / weekly_target * 100, 100.0) if weekly_target else 0.0

    return AgentDashboard(
        agent_id=agent["id"] if agent else None,
        week_start=week_start,
        week_end=week_end,
        total_businesses=total,
        weekly_businesses=weekly,
        weekly_target=weekly_target,
        progress_percentage=round(progress, 1),
        target_met=weekly >= weekly_target,
        recent_businesses=[Business.from_db_row(row) for row in outcomes["recent"].data],
        insights=compute_insights(total, weekly),
        has_errors=not all(outcome.ok for outcome in outcomes.values()),
    )
