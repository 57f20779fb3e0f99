"""
Markets: admin CRUD, the public market list and market statistics.

Duplicate names and permission failures come back from PostgREST as
23505 / 42501 / PGRST301 and are translated by backend.execute into
ConflictError and PermissionDeniedError.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from src.config.settings import get_settings
from src.core.exceptions import ValidationFailedError
from src.models.schemas import CurrentUser, Market, MarketCreate, MarketUpdate
from src.services.activities import record_activity
from src.services.backend import execute, first_or_404, run_concurrently, utc_now_iso
from src.services.storage import StorageService

logger = structlog.get_logger(__name__)

TOP_MARKETS_LIMIT = 5


# =============================================================================
# Models
# =============================================================================


class MarketBusinessCount(BaseModel):
    """A market with the number of businesses listed in it."""
    id: UUID
    name: str
    location: Optional[str] = None
    business_count: int = 0


class MarketStats(BaseModel):
    """Aggregates shown on the admin markets page."""
    total_markets: int = 0
    active_markets: int = 0
    total_businesses: int = Field(0, description="Businesses attached to any market")
    top_market: Optional[MarketBusinessCount] = None
    recently_added: Optional[Market] = None
    markets_by_location: dict[str, int] = Field(default_factory=dict)
    top_markets: list[MarketBusinessCount] = Field(default_factory=list)
    has_errors: bool = False


# =============================================================================
# Queries
# =============================================================================


def list_markets(supabase: Any, active_only: bool = True) -> list[Market]:
    """Markets ordered by name; inactive ones only when active_only is False."""
    query = supabase.table("markets").select("*")
    if active_only:
        query = query.eq("is_active", True)
    response = execute(query.order("name"), "markets")
    return [Market.from_db_row(row) for row in (response.data or [])]


def get_market(supabase: Any, market_id: UUID) -> Market:
    response = execute(
        supabase.table("markets").select("*").eq("id", str(market_id)).limit(1),
        "markets",
    )
    return Market.from_db_row(first_or_404(response, "Market", market_id))


def compute_market_stats(
    markets: list[dict[str, Any]],
    business_counts: dict[str, int],
) -> MarketStats:
    """Aggregate market rows and per-market business counts into MarketStats."""
    counted = [
        MarketBusinessCount(
            id=row["id"],
            name=row["name"],
            location=row.get("location"),
            business_count=business_counts.get(str(row["id"]), 0),
        )
        for row in markets
    ]
    ranked = sorted(counted, key=lambda m: m.business_count, reverse=True)

    by_location: dict[str, int] = {}
    for row in markets:
        location = (row.get("location") or "").strip() or "Unknown"
        by_location[location] = by_location.get(location, 0) + 1

    recent = max(
        (row for row in markets if row.get("created_at")),
        key=lambda row: datetime.fromisoformat(str(row["created_at"]).replace("Z", "+00:00")),
        default=None,
    )

    return MarketStats(
        total_markets=len(markets),
        active_markets=sum(1 for row in markets if row.get("is_active", True)),
        total_businesses=sum(m.business_count for m in counted),
        top_market=ranked[0] if ranked and ranked[0].business_count > 0 else None,
        recently_added=Market.from_db_row(recent) if recent else None,
        markets_by_location=by_location,
        top_markets=ranked[:TOP_MARKETS_LIMIT],
    )


async def market_stats(supabase: Any) -> MarketStats:
    """Load markets, then count each market's businesses concurrently."""
    markets = (
        await run_concurrently({"markets": ("markets", supabase.table("markets").select("*"))})
    )["markets"]
    counts = await run_concurrently(
        {
            str(row["id"]): (
                "businesses",
                supabase.table("businesses")
                .select("id", count="exact")
                .eq("market_id", str(row["id"]))
                .limit(1),
            )
            for row in markets.data
        }
    )
    stats = compute_market_stats(
        markets.data, {market_id: outcome.total for market_id, outcome in counts.items()}
    )
    failed = [name for name, outcome in {"markets": markets, **counts}.items() if not outcome.ok]
    stats.has_errors = bool(failed)
    if stats.has_errors:
        logger.warning("market_stats_degraded", failed=failed)
    return stats


# =============================================================================
# Commands
# =============================================================================


async def create_market(supabase: Any, actor: CurrentUser, payload: MarketCreate) -> Market:
    name = payload.name.strip()
    if not name:
        raise ValidationFailedError("Market name is required", field="name")

    row = payload.model_dump(mode="json")
    row["name"] = name
    response = execute(supabase.table("markets").insert(row), "markets", "insert")
    market = Market.from_db_row(first_or_404(response, "Market"))

    logger.info("market_created", market_id=str(market.id), name=name)
    await record_activity(
        supabase,
        activity_type="create",
        description=f"Created market {name}",
        user_id=actor.id,
        resource_type="market",
        resource_id=market.id,
    )
    return market


async def update_market(
    supabase: Any,
    actor: CurrentUser,
    market_id: UUID,
    changes: MarketUpdate,
) -> Market:
    data = changes.model_dump(exclude_unset=True, mode="json")
    if "name" in data:
        data["name"] = (data["name"] or "").strip()
        if not data["name"]:
            raise ValidationFailedError("Market name is required", field="name")
    data["updated_at"] = utc_now_iso()

    response = execute(
        supabase.table("markets").update(data).eq("id", str(market_id)),
        "markets",
        "update",
    )
    market = Market.from_db_row(first_or_404(response, "Market", market_id))

    logger.info("market_updated", market_id=str(market_id), fields=sorted(data))
    await record_activity(
        supabase,
        activity_type="update",
        description=f"Updated market {market.name}",
        user_id=actor.id,
        resource_type="market",
        resource_id=market_id,
    )
    return market


async def delete_market(supabase: Any, actor: CurrentUser, market_id: UUID) -> None:
    market = get_market(supabase, market_id)
    execute(supabase.table("markets").delete().eq("id", str(market_id)), "markets", "delete")
    logger.info("market_deleted", market_id=str(market_id))
    await record_activity(
        supabase,
        activity_type="delete",
        description=f"Deleted market {market.name}",
        user_id=actor.id,
        resource_type="market",
        resource_id=market_id,
    )


async def upload_market_image(
    supabase: Any,
    storage: StorageService,
    market_id: UUID,
    content: bytes,
    content_type: Optional[str],
) -> Market:
    """Store a market image in the uploads bucket and set image_url."""
    market = get_market(supabase, market_id)
    bucket = get_settings().storage_uploads_bucket
    image_url = await storage.upload_image(bucket, "market", content, content_type)

    response = execute(
        supabase.table("markets")
        .update({"image_url": image_url, "updated_at": utc_now_iso()})
        .eq("id", str(market_id)),
        "markets",
        "update",
    )
    if market.image_url:
        await storage.remove(bucket, market.image_url)
    return Market.from_db_row(first_or_404(response, "Market", market_id))
