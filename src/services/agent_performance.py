"""
Agent Performance Report.

Aggregates the agents table with the period's activities, businesses and
agent-registered users into per-agent metrics, rankings and dashboard
totals for the admin console.

Standalone usage:
    from src.services.agent_performance import build_performance_report, PerformanceFilters

    report = await build_performance_report(
        supabase,
        timeframe="month",
        filters=PerformanceFilters(sort_by="revenue"),
    )
    for agent in report.agents:
        print(agent.rank, agent.name, agent.completion_rate)

Derived metrics (quality score, response time, satisfaction, revenue) are
estimates computed from registration counts; nothing here is stored.
"""

import random
from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Literal, Optional

import structlog
from pydantic import BaseModel, Field

from src.config.settings import Settings, get_settings
from src.core.exceptions import AbaDirectoryError
from src.monitoring.metrics import record_fallback
from src.services.backend import execute, run_concurrently

logger = structlog.get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

Timeframe = Literal["week", "month", "quarter"]
SortField = Literal["name", "completion_rate", "revenue", "tasks"]

ACTIVE_COMPLETION_THRESHOLD = 60.0
TREND_THRESHOLD = 5.0
DAILY_ACTIVITY_DAYS = 7

DISTRIBUTION_BUCKETS = [
    ("Excellent (90-100%)", 90.0, 100.0),
    ("Good (70-89%)", 70.0, 89.99),
    ("Average (50-69%)", 50.0, 69.99),
    ("Below Average (<50%)", 0.0, 49.99),
]

_PLACEHOLDER_NAMES = [
    "Chinedu Okafor",
    "Ngozi Eze",
    "Emeka Nwosu",
    "Adaeze Obi",
    "Ifeanyi Umeh",
    "Chiamaka Nnaji",
    "Obinna Agu",
    "Uchechi Ibe",
]


# =============================================================================
# Models
# =============================================================================


class DailyActivity(BaseModel):
    """Tasks and attributed revenue for one day."""
    day: date
    tasks: int = 0
    revenue: float = 0.0


class AgentPerformance(BaseModel):
    """Derived performance metrics for one agent over the report period."""
    agent_id: str
    name: str
    email: Optional[str] = None
    department: str = "General"
    status: Literal["active", "inactive"] = "inactive"

    tasks_completed: int = 0
    tasks_pending: int = 0
    tasks_failed: int = 0
    total_tasks: int = 0
    completion_rate: float = 0.0

    user_registrations: int = 0
    business_registrations: int = 0

    quality_score: float = 0.0
    avg_response_time: float = Field(0.0, description="Hours")
    customer_satisfaction: float = 0.0

    revenue: float = 0.0
    commission: float = 0.0

    weekly_target: int = 0
    monthly_target: int = 0
    current_week_registrations: int = 0
    target_achievement: float = 0.0

    weekly_change: float = 0.0
    monthly_change: float = 0.0
    trend: Literal["up", "down", "stable"] = "stable"

    daily_activity: list[DailyActivity] = Field(default_factory=list)
    rank: int = 0
    department_rank: int = 0


class PerformanceSummary(BaseModel):
    """Dashboard totals across all agents."""
    total_agents: int = 0
    active_agents: int = 0
    total_tasks_completed: int = 0
    total_revenue: float = 0.0
    average_completion_rate: float = 0.0
    top_performer: Optional[str] = None
    improvement_rate: float = Field(0.0, description="Share of agents trending up, in percent")


class DistributionBucket(BaseModel):
    label: str
    min_rate: float
    max_rate: float
    count: int = 0


class PerformanceFilters(BaseModel):
    """Search, filter and sort options applied to the agent table."""
    search: Optional[str] = None
    department: Optional[str] = None
    status: Literal["all", "active", "inactive"] = "all"
    sort_by: SortField = "completion_rate"
    sort_order: Literal["asc", "desc"] = "desc"


class PerformanceReport(BaseModel):
    """Full report returned to the admin console."""
    timeframe: Timeframe
    period_start: datetime
    period_end: datetime
    generated_at: datetime
    summary: PerformanceSummary
    agents: list[AgentPerformance]
    distribution: list[DistributionBucket]
    departments: list[str] = Field(default_factory=list)
    is_placeholder: bool = Field(
        False, description="True when the numbers are generated because the agents query failed"
    )
    degraded_sources: list[str] = Field(
        default_factory=list,
        description="Queries that failed and were treated as empty",
    )


# =============================================================================
# Period Helpers
# =============================================================================


def period_bounds(timeframe: Timeframe, now: datetime) -> tuple[datetime, datetime]:
    """
    Start and end of the reporting period containing ``now``.

    week: Sunday 00:00 through Saturday 23:59:59.999999
    month: first through last day of the month
    quarter: first day of the quarter through its last day
    """
    tz = now.tzinfo or timezone.utc
    today = now.date()

    if timeframe == "week":
        start_day = today - timedelta(days=(today.weekday() + 1) % 7)
        end_day = start_day + timedelta(days=6)
    elif timeframe == "month":
        start_day = today.replace(day=1)
        end_day = today.replace(day=monthrange(today.year, today.month)[1])
    elif timeframe == "quarter":
        first_month = ((today.month - 1) // 3) * 3 + 1
        last_month = first_month + 2
        start_day = date(today.year, first_month, 1)
        end_day = date(today.year, last_month, monthrange(today.year, last_month)[1])
    else:
        raise ValueError(f"Unknown timeframe: {timeframe}")

    return (
        datetime.combine(start_day, time.min, tzinfo=tz),
        datetime.combine(end_day, time.max, tzinfo=tz),
    )


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Supabase timestamp (ISO string) into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# =============================================================================
# Per-Agent Metrics
# =============================================================================


def department_for(role: Optional[str]) -> str:
    if role == "agent":
        return "Field Agent"
    return role.replace("_", " ").title() if role else "General"


def percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def trend_for(change: float) -> Literal["up", "down", "stable"]:
    if change > TREND_THRESHOLD:
        return "up"
    if change < -TREND_THRESHOLD:
        return "down"
    return "stable"


def _belongs_to(row: dict[str, Any], keys: tuple[str, ...], ids: set[str]) -> bool:
    return any(str(row.get(key)) in ids for key in keys if row.get(key) is not None)


def _count_on_day(rows: list[dict[str, Any]], day: date) -> int:
    count = 0
    for row in rows:
        created = parse_timestamp(row.get("created_at"))
        if created is not None and created.date() == day:
            count += 1
    return count


def compute_agent_performance(
    agent: dict[str, Any],
    activities: list[dict[str, Any]],
    businesses: list[dict[str, Any]],
    users: list[dict[str, Any]],
    *,
    today: date,
    registration_value: float,
    commission_rate: float,
    default_weekly_target: int,
) -> AgentPerformance:
    """Reduce one agent's rows into AgentPerformance (rank fields left at 0)."""
    ids = {str(agent["id"])}
    if agent.get("user_id"):
        ids.add(str(agent["user_id"]))

    own_activities = [a for a in activities if _belongs_to(a, ("agent_id", "user_id"), ids)]
    own_businesses = [b for b in businesses if _belongs_to(b, ("created_by",), ids)]
    own_users = [u for u in users if _belongs_to(u, ("agent_user_id", "created_by"), ids)]

    completed = sum(1 for a in own_activities if a.get("status") == "completed")
    pending = sum(1 for a in own_activities if a.get("status") == "pending")
    failed = sum(1 for a in own_activities if a.get("status") == "failed")
    total_tasks = len(own_activities)
    completion_rate = round(completed / total_tasks * 100, 1) if total_tasks else 0.0

    user_registrations = agent.get("total_registrations") or len(own_users)
    business_registrations = agent.get("total_businesses") or max(
        len(own_businesses),
        sum(1 for u in own_users if u.get("business_name")),
    )

    quality = round(min(5.0, max(2.0, user_registrations / 10)), 1)
    response_time = round(max(0.5, 3 - user_registrations / 20), 1)
    satisfaction = min(5.0, quality)

    revenue = round(user_registrations * registration_value, 2)
    commission = round(revenue * commission_rate, 2)

    assigned_target = agent.get("weekly_target")
    weekly_target = assigned_target or default_weekly_target
    current_week = agent.get("current_week_registrations") or 0
    # Progress is only tracked against a target the admin actually assigned
    target_achievement = round(current_week / assigned_target * 100, 1) if assigned_target else 0.0

    previous_week = max(0, user_registrations - current_week)
    weekly_change = percent_change(current_week, previous_week)
    monthly_change = round(weekly_change * 4, 1)

    daily = []
    for offset in range(DAILY_ACTIVITY_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        day_tasks = _count_on_day(own_activities, day)
        day_registrations = _count_on_day(own_users, day)
        daily.append(
            DailyActivity(
                day=day,
                tasks=day_tasks + day_registrations,
                revenue=round(day_registrations * registration_value, 2),
            )
        )

    return AgentPerformance(
        agent_id=str(agent["id"]),
        name=agent.get("full_name") or agent.get("email") or "Unknown agent",
        email=agent.get("email"),
        department=department_for(agent.get("role")),
        status="active" if completion_rate > ACTIVE_COMPLETION_THRESHOLD else "inactive",
        tasks_completed=completed,
        tasks_pending=pending,
        tasks_failed=failed,
        total_tasks=total_tasks,
        completion_rate=completion_rate,
        user_registrations=user_registrations,
        business_registrations=business_registrations,
        quality_score=quality,
        avg_response_time=response_time,
        customer_satisfaction=satisfaction,
        revenue=revenue,
        commission=commission,
        weekly_target=weekly_target,
        monthly_target=weekly_target * 4,
        current_week_registrations=current_week,
        target_achievement=target_achievement,
        weekly_change=weekly_change,
        monthly_change=monthly_change,
        trend=trend_for(weekly_change),
        daily_activity=daily,
    )


# =============================================================================
# Report Aggregation
# =============================================================================


def rank_agents(agents: list[AgentPerformance]) -> list[AgentPerformance]:
    """Rank by completion rate (ties keep input order), overall and within department."""
    ranked = sorted(agents, key=lambda a: a.completion_rate, reverse=True)
    department_positions: dict[str, int] = {}
    for position, agent in enumerate(ranked, start=1):
        agent.rank = position
        department_positions[agent.department] = department_positions.get(agent.department, 0) + 1
        agent.department_rank = department_positions[agent.department]
    return ranked


def summarize(agents: list[AgentPerformance]) -> PerformanceSummary:
    if not agents:
        return PerformanceSummary()
    top = min(agents, key=lambda a: a.rank) if any(a.rank for a in agents) else agents[0]
    trending_up = sum(1 for a in agents if a.trend == "up")
    return PerformanceSummary(
        total_agents=len(agents),
        active_agents=sum(1 for a in agents if a.completion_rate > ACTIVE_COMPLETION_THRESHOLD),
        total_tasks_completed=sum(a.tasks_completed for a in agents),
        total_revenue=round(sum(a.revenue for a in agents), 2),
        average_completion_rate=round(sum(a.completion_rate for a in agents) / len(agents), 1),
        top_performer=top.name,
        improvement_rate=round(trending_up / len(agents) * 100, 1),
    )


def completion_distribution(agents: list[AgentPerformance]) -> list[DistributionBucket]:
    buckets = [
        DistributionBucket(label=label, min_rate=low, max_rate=high)
        for label, low, high in DISTRIBUTION_BUCKETS
    ]
    for agent in agents:
        for bucket in buckets:
            if agent.completion_rate >= bucket.min_rate:
                bucket.count += 1
                break
    return buckets


_SORT_KEYS = {
    "name": lambda a: a.name.lower(),
    "completion_rate": lambda a: a.completion_rate,
    "revenue": lambda a: a.revenue,
    "tasks": lambda a: a.total_tasks,
}


def filter_and_sort(
    agents: list[AgentPerformance],
    filters: PerformanceFilters,
) -> list[AgentPerformance]:
    """Apply the agent table's search box, dropdown filters and sort order."""
    result = agents
    if filters.search and filters.search.strip():
        needle = filters.search.strip().lower()
        result = [
            a for a in result
            if needle in a.name.lower() or (a.email and needle in a.email.lower())
        ]
    if filters.department and filters.department != "all":
        result = [a for a in result if a.department == filters.department]
    if filters.status != "all":
        result = [a for a in result if a.status == filters.status]

    return sorted(
        result,
        key=_SORT_KEYS[filters.sort_by],
        reverse=filters.sort_order == "desc",
    )


def assemble_report(
    timeframe: Timeframe,
    bounds: tuple[datetime, datetime],
    performances: list[AgentPerformance],
    filters: PerformanceFilters,
    *,
    now: datetime,
    is_placeholder: bool = False,
    degraded_sources: Optional[list[str]] = None,
) -> PerformanceReport:
    """Rank, summarize and filter computed performances into a report.

    Summary and distribution always cover every agent; the filters only
    narrow the agent table.
    """
    ranked = rank_agents(performances)
    return PerformanceReport(
        timeframe=timeframe,
        period_start=bounds[0],
        period_end=bounds[1],
        generated_at=now,
        summary=summarize(ranked),
        agents=filter_and_sort(ranked, filters),
        distribution=completion_distribution(ranked),
        departments=sorted({a.department for a in ranked}),
        is_placeholder=is_placeholder,
        degraded_sources=degraded_sources or [],
    )


# =============================================================================
# Placeholder Data
# =============================================================================


def placeholder_performances(
    today: date,
    settings: Settings,
    seed: Optional[int] = None,
) -> list[AgentPerformance]:
    """Generate plausible agent rows for when the agents table is unreachable."""
    rng = random.Random(seed)
    performances = []
    for index, name in enumerate(_PLACEHOLDER_NAMES):
        total_tasks = rng.randint(20, 60)
        completed = rng.randint(total_tasks // 2, total_tasks)
        failed = rng.randint(0, total_tasks - completed)
        registrations = rng.randint(5, 80)
        current_week = rng.randint(0, min(registrations, 30))
        agent = {
            "id": f"placeholder-{index + 1}",
            "full_name": name,
            "email": f"{name.split()[0].lower()}@example.com",
            "role": "agent",
            "total_registrations": registrations,
            "current_week_registrations": current_week,
        }
        activities = (
            [{"agent_id": agent["id"], "status": "completed"}] * completed
            + [{"agent_id": agent["id"], "status": "failed"}] * failed
            + [{"agent_id": agent["id"], "status": "pending"}] * (total_tasks - completed - failed)
        )
        performances.append(
            compute_agent_performance(
                agent,
                activities,
                [],
                [],
                today=today,
                registration_value=settings.registration_value,
                commission_rate=settings.commission_rate,
                default_weekly_target=settings.performance_default_target,
            )
        )
    return performances


# =============================================================================
# Report Builder
# =============================================================================


async def build_performance_report(
    supabase: Any,
    timeframe: Timeframe = "week",
    filters: Optional[PerformanceFilters] = None,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> PerformanceReport:
    """
    Build the admin agent performance report.

    Activities, businesses and users for the period are fetched concurrently
    once the agent list is known. A failed secondary query is treated as
    empty and listed in ``degraded_sources``. If the agents query itself
    fails, a placeholder report flagged ``is_placeholder`` is returned when
    the setting allows it; otherwise the error propagates.
    """
    settings = settings or get_settings()
    filters = filters or PerformanceFilters()
    now = now or datetime.now(timezone.utc)
    bounds = period_bounds(timeframe, now)

    try:
        agents = execute(
            supabase.table("agents").select("*").order("created_at", desc=True),
            "agents",
        ).data or []
    except AbaDirectoryError as e:
        if not settings.placeholder_fallback_enabled:
            raise
        logger.warning(
            "agent_performance_placeholder_served",
            timeframe=timeframe,
            error=e.message,
        )
        record_fallback("agent_performance", "placeholder")
        return assemble_report(
            timeframe,
            bounds,
            placeholder_performances(now.date(), settings, seed=now.date().toordinal()),
            filters,
            now=now,
            is_placeholder=True,
            degraded_sources=["agents"],
        )

    agent_ids = [str(a["id"]) for a in agents]
    user_ids = [str(a["user_id"]) for a in agents if a.get("user_id")]
    start, end = (bound.isoformat() for bound in bounds)

    queries = {}
    if agent_ids:
        owner_ids = agent_ids + user_ids
        queries["activities"] = (
            "activities",
            supabase.table("activities")
            .select("id, agent_id, user_id, status, created_at")
            .in_("agent_id", agent_ids)
            .gte("created_at", start)
            .lte("created_at", end),
        )
        queries["businesses"] = (
            "businesses",
            supabase.table("businesses")
            .select("id, created_by, created_at")
            .in_("created_by", owner_ids)
            .gte("created_at", start)
            .lte("created_at", end),
        )
        registered_by = f"created_by.in.({','.join(agent_ids)})"
        if user_ids:
            registered_by = f"agent_user_id.in.({','.join(user_ids)}),{registered_by}"
        queries["users"] = (
            "users",
            supabase.table("users")
            .select("id, created_by, agent_user_id, created_at, business_name")
            .or_(registered_by),
        )

    outcomes = await run_concurrently(queries) if queries else {}
    degraded = [name for name, outcome in outcomes.items() if not outcome.ok]
    for name in degraded:
        record_fallback("agent_performance", f"{name}_unavailable")

    def rows(name: str) -> list[dict[str, Any]]:
        outcome = outcomes.get(name)
        return outcome.data if outcome else []

    performances = [
        compute_agent_performance(
            agent,
            rows("activities"),
            rows("businesses"),
            rows("users"),
            today=now.date(),
            registration_value=settings.registration_value,
            commission_rate=settings.commission_rate,
            default_weekly_target=settings.performance_default_target,
        )
        for agent in agents
    ]

    report = assemble_report(
        timeframe, bounds, performances, filters, now=now, degraded_sources=degraded
    )
    logger.info(
        "agent_performance_report_built",
        timeframe=timeframe,
        agents=report.summary.total_agents,
        degraded_sources=degraded,
    )
    return report
