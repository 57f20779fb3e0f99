"""Unit tests for agent registration, management and the agent dashboard."""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from src.core.exceptions import NotFoundError
from src.models.schemas import AgentStatus, AgentUpdate
from src.services.agents import (
    achievement_level,
    agent_dashboard,
    compute_insights,
    list_agents,
    register_agent,
    update_agent,
    week_bounds,
)

NOW = datetime(2024, 5, 15, 10, 30, tzinfo=timezone.utc)  # a Wednesday


class TestWeekBounds:
    def test_week_runs_monday_to_sunday(self):
        start, end = week_bounds(NOW)

        assert start == datetime(2024, 5, 13, tzinfo=timezone.utc)
        assert end.date() == date(2024, 5, 19)

    def test_monday_is_its_own_week_start(self):
        start, _ = week_bounds(datetime(2024, 5, 13, 0, 5, tzinfo=timezone.utc))

        assert start.date() == date(2024, 5, 13)


class TestInsights:
    """Test dashboard insight formulas."""

    def test_insights(self):
        insights = compute_insights(total=30, weekly=12)

        assert insights.average_weekly_businesses == 3
        assert insights.weekly_growth == 300
        assert insights.achievement_level == "Bronze"
        assert insights.next_milestone == 50
        assert insights.remaining_to_milestone == 20

    def test_growth_is_zero_at_or_below_average(self):
        assert compute_insights(total=100, weekly=2).weekly_growth == 0
        assert compute_insights(total=100, weekly=10).weekly_growth == 0

    def test_growth_rounds_half_up(self):
        # 25 / 10 rounds up to an average of 3
        insights = compute_insights(total=25, weekly=3)

        assert insights.average_weekly_businesses == 3
        assert insights.weekly_growth == 0
        assert compute_insights(total=20, weekly=3).weekly_growth == 50

    def test_milestone_at_exact_multiple(self):
        insights = compute_insights(total=100, weekly=0)

        assert insights.next_milestone == 100
        assert insights.remaining_to_milestone == 0

    def test_milestone_rounds_up(self):
        assert compute_insights(total=101, weekly=0).next_milestone == 150

    def test_level_follows_total_businesses(self):
        assert compute_insights(total=120, weekly=0).achievement_level == "Gold"

    def test_average_is_at_least_one(self):
        assert compute_insights(total=0, weekly=0).average_weekly_businesses == 1

    @pytest.mark.parametrize(
        "total,level",
        [(101, "Gold"), (100, "Silver"), (51, "Silver"), (50, "Bronze"), (0, "Bronze")],
    )
    def test_achievement_levels(self, total, level):
        assert achievement_level(total) == level


class TestRegistration:
    """Test agent self-registration."""

    @pytest.mark.asyncio
    async def test_register_creates_agent_and_promotes_user(self, fake_supabase, regular_user):
        fake_supabase.seed("users", [{
            "id": str(regular_user.id),
            "full_name": "Ngozi Okeke",
            "email": "ngozi@example.com",
            "phone": "+2348012345678",
            "role": "user",
        }])

        agent, created = await register_agent(fake_supabase, regular_user)

        assert created is True
        assert agent.user_id == regular_user.id
        assert agent.full_name == "Ngozi Okeke"
        assert agent.phone == "+2348012345678"
        assert agent.status == AgentStatus.ACTIVE
        assert fake_supabase.rows("users")[0]["role"] == "agent"

    @pytest.mark.asyncio
    async def test_register_twice_returns_existing(self, fake_supabase, regular_user):
        first, _ = await register_agent(fake_supabase, regular_user)

        second, created = await register_agent(fake_supabase, regular_user)

        assert created is False
        assert second.id == first.id
        assert len(fake_supabase.rows("agents")) == 1

    @pytest.mark.asyncio
    async def test_admin_keeps_admin_role(self, fake_supabase, admin_user):
        fake_supabase.seed("users", [{"id": str(admin_user.id), "role": "admin"}])

        await register_agent(fake_supabase, admin_user)

        assert fake_supabase.rows("users")[0]["role"] == "admin"


class TestManagement:
    """Test admin listing and updates."""

    @pytest.fixture
    def agents(self, fake_supabase):
        return fake_supabase.seed("agents", [
            {"full_name": "Chidi", "status": "active", "created_at": "2024-01-01T00:00:00+00:00"},
            {"full_name": "Emeka", "status": "suspended", "created_at": "2024-02-01T00:00:00+00:00"},
        ])

    def test_list_newest_first(self, fake_supabase, agents):
        assert [a.full_name for a in list_agents(fake_supabase)] == ["Emeka", "Chidi"]

    def test_list_by_status(self, fake_supabase, agents):
        result = list_agents(fake_supabase, AgentStatus.SUSPENDED)

        assert [a.full_name for a in result] == ["Emeka"]

    @pytest.mark.asyncio
    async def test_update_target_and_status(self, fake_supabase, admin_user, agents):
        agent = await update_agent(
            fake_supabase,
            admin_user,
            agents[0]["id"],
            AgentUpdate(status=AgentStatus.INACTIVE, weekly_target=30),
        )

        assert agent.status == AgentStatus.INACTIVE
        assert agent.weekly_target == 30

    @pytest.mark.asyncio
    async def test_update_unknown_agent(self, fake_supabase, admin_user):
        with pytest.raises(NotFoundError):
            await update_agent(fake_supabase, admin_user, uuid4(), AgentUpdate(weekly_target=10))


class TestDashboard:
    """Test the agent portal dashboard."""

    @pytest.fixture
    def registered(self, fake_supabase, agent_user):
        creator = str(agent_user.id)
        fake_supabase.seed("agents", [{"user_id": creator, "weekly_target": 4}])
        fake_supabase.seed("businesses", [
            {"name": "This week 1", "created_by": creator, "created_at": "2024-05-13T09:00:00+00:00"},
            {"name": "This week 2", "created_by": creator, "created_at": "2024-05-15T09:00:00+00:00"},
            {"name": "Last week", "created_by": creator, "created_at": "2024-05-10T09:00:00+00:00"},
            {"name": "Someone else", "created_by": str(uuid4()), "created_at": "2024-05-14T09:00:00+00:00"},
        ])
        return fake_supabase

    @pytest.mark.asyncio
    async def test_weekly_progress(self, registered, agent_user, settings):
        dashboard = await agent_dashboard(registered, agent_user, now=NOW, settings=settings)

        assert dashboard.total_businesses == 3
        assert dashboard.weekly_businesses == 2
        assert dashboard.weekly_target == 4
        assert dashboard.progress_percentage == 50.0
        assert dashboard.target_met is False
        assert [b.name for b in dashboard.recent_businesses] == [
            "This week 2",
            "This week 1",
            "Last week",
        ]
        assert dashboard.has_errors is False

    @pytest.mark.asyncio
    async def test_progress_capped_at_hundred(self, registered, agent_user, settings):
        registered.rows("agents")[0]["weekly_target"] = 1

        dashboard = await agent_dashboard(registered, agent_user, now=NOW, settings=settings)

        assert dashboard.progress_percentage == 100.0
        assert dashboard.target_met is True
        assert dashboard.insights.achievement_level == "Bronze"

    @pytest.mark.asyncio
    async def test_default_target_without_agent_row(self, fake_supabase, agent_user, settings):
        dashboard = await agent_dashboard(fake_supabase, agent_user, now=NOW, settings=settings)

        assert dashboard.agent_id is None
        assert dashboard.weekly_target == settings.agent_dashboard_default_target
        assert dashboard.total_businesses == 0
