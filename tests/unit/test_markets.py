"""Unit tests for market management and statistics."""

from uuid import uuid4

import pytest

from src.core.exceptions import ConflictError, NotFoundError, StorageError, ValidationFailedError
from src.models.schemas import MarketCreate, MarketUpdate
from src.services.markets import (
    compute_market_stats,
    create_market,
    delete_market,
    list_markets,
    market_stats,
    update_market,
    upload_market_image,
)
from src.services.storage import StorageService


@pytest.fixture
def markets(fake_supabase):
    return fake_supabase.seed("markets", [
        {"name": "Ariaria International", "location": "Aba North", "is_active": True,
         "created_at": "2024-01-10T00:00:00+00:00"},
        {"name": "Ekeoha Shopping Centre", "location": "Aba South", "is_active": True,
         "created_at": "2024-04-02T00:00:00+00:00"},
        {"name": "Cemetery Market", "location": "Aba South", "is_active": False,
         "created_at": "2024-02-20T00:00:00+00:00"},
    ])


class TestQueries:
    def test_public_list_hides_inactive(self, fake_supabase, markets):
        names = [m.name for m in list_markets(fake_supabase)]

        assert names == ["Ariaria International", "Ekeoha Shopping Centre"]

    def test_admin_list_includes_inactive(self, fake_supabase, markets):
        assert len(list_markets(fake_supabase, active_only=False)) == 3


class TestStats:
    """Test market aggregates."""

    def test_compute_stats(self, markets):
        ariaria, ekeoha, _ = markets

        stats = compute_market_stats(markets, {ariaria["id"]: 2, ekeoha["id"]: 1})

        assert stats.total_markets == 3
        assert stats.active_markets == 2
        assert stats.total_businesses == 3
        assert stats.top_market.name == "Ariaria International"
        assert stats.top_market.business_count == 2
        assert stats.recently_added.name == "Ekeoha Shopping Centre"
        assert stats.markets_by_location == {"Aba North": 1, "Aba South": 2}

    def test_no_businesses_means_no_top_market(self, markets):
        stats = compute_market_stats(markets, {})

        assert stats.top_market is None
        assert [m.business_count for m in stats.top_markets] == [0, 0, 0]

    def test_blank_location_grouped_as_unknown(self):
        stats = compute_market_stats([{"id": str(uuid4()), "name": "Pop-up", "location": " "}], {})

        assert stats.markets_by_location == {"Unknown": 1}

    @pytest.mark.asyncio
    async def test_stats_from_backend(self, fake_supabase, markets):
        fake_supabase.seed("businesses", [
            {"name": "A", "market_id": markets[1]["id"]},
            {"name": "B", "market_id": None},
        ])

        stats = await market_stats(fake_supabase)

        assert stats.total_businesses == 1
        assert stats.top_market.name == "Ekeoha Shopping Centre"
        assert stats.has_errors is False

    @pytest.mark.asyncio
    async def test_counts_beyond_row_limit(self, fake_supabase, markets):
        fake_supabase.max_rows = 1000
        fake_supabase.seed(
            "businesses", [{"name": f"Shop {i}", "market_id": markets[0]["id"]} for i in range(1500)]
        )

        stats = await market_stats(fake_supabase)

        assert stats.total_businesses == 1500
        assert stats.top_market.business_count == 1500

    @pytest.mark.asyncio
    async def test_failed_business_query_flags_errors(self, fake_supabase, markets):
        fake_supabase.fail_table("businesses")

        stats = await market_stats(fake_supabase)

        assert stats.total_markets == 3
        assert stats.total_businesses == 0
        assert stats.has_errors is True


class TestCommands:
    """Test market create, update, delete and image upload."""

    @pytest.mark.asyncio
    async def test_create(self, fake_supabase, admin_user):
        market = await create_market(
            fake_supabase, admin_user, MarketCreate(name=" Shopping Centre ", location="Aba")
        )

        assert market.name == "Shopping Centre"
        assert market.is_active is True
        assert fake_supabase.rows("activities")[0]["description"] == "Created market Shopping Centre"

    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts(self, fake_supabase, admin_user, markets):
        with pytest.raises(ConflictError) as exc_info:
            await create_market(fake_supabase, admin_user, MarketCreate(name="Ariaria International"))

        assert exc_info.value.message == "A market with this name already exists."

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, fake_supabase, admin_user):
        with pytest.raises(ValidationFailedError):
            await create_market(fake_supabase, admin_user, MarketCreate(name="  "))

    @pytest.mark.asyncio
    async def test_update_deactivates(self, fake_supabase, admin_user, markets):
        market = await update_market(
            fake_supabase, admin_user, markets[0]["id"], MarketUpdate(is_active=False)
        )

        assert market.is_active is False
        assert market.name == "Ariaria International"
        assert market.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_unknown_market(self, fake_supabase, admin_user):
        with pytest.raises(NotFoundError):
            await update_market(fake_supabase, admin_user, uuid4(), MarketUpdate(location="Umuahia"))

    @pytest.mark.asyncio
    async def test_delete(self, fake_supabase, admin_user, markets):
        await delete_market(fake_supabase, admin_user, markets[2]["id"])

        assert len(fake_supabase.rows("markets")) == 2

    @pytest.mark.asyncio
    async def test_image_upload(self, fake_supabase, markets):
        market = await upload_market_image(
            fake_supabase, StorageService(fake_supabase), markets[0]["id"], b"\xff\xd8jpeg", "image/jpeg"
        )

        assert market.image_url.startswith(
            "https://fake.supabase.co/storage/v1/object/public/uploads/market_"
        )
        assert market.image_url.endswith(".jpg")

    @pytest.mark.asyncio
    async def test_image_upload_failure(self, fake_supabase, markets):
        fake_supabase.storage.fail_uploads = True

        with pytest.raises(StorageError):
            await upload_market_image(
                fake_supabase, StorageService(fake_supabase), markets[0]["id"], b"\xff\xd8", "image/jpeg"
            )

        assert fake_supabase.rows("markets")[0].get("image_url") is None
