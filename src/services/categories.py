"""
Business categories.

Admin CRUD goes through the admin_* stored procedures with a direct table
fallback, the denormalized business counts are rebuilt on demand by the
recount, and public views are tracked best effort.
"""

import asyncio
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from src.config.settings import get_settings
from src.core.exceptions import AbaDirectoryError, NotFoundError, ValidationFailedError
from src.models.schemas import (
    BusinessCategory,
    CategoryCreate,
    CategoryUpdate,
    CurrentUser,
)
from src.services.activities import record_activity
from src.services.backend import (
    call_with_fallback,
    execute,
    first_or_404,
    procedure_row,
    utc_now_iso,
)
from src.services.storage import StorageService

logger = structlog.get_logger(__name__)


# =============================================================================
# Models
# =============================================================================


class CategoryStats(BaseModel):
    """Aggregates shown above the admin category table."""
    total_categories: int = 0
    active_categories: int = 0
    most_popular_category: Optional[str] = None
    most_popular_count: int = 0
    newest_category: Optional[str] = None
    newest_category_date: Optional[datetime] = None
    source: str = "rpc"


class RecountResult(BaseModel):
    """Outcome of a category count refresh."""
    categories_updated: int
    total_businesses: int
    source: str


# =============================================================================
# Helpers
# =============================================================================


def _procedure_params(payload: dict[str, Any]) -> dict[str, Any]:
    return {f"p_{key}": value for key, value in payload.items()}


def _fetch_row(supabase: Any, category_id: UUID) -> dict[str, Any]:
    response = execute(
        supabase.table("business_categories").select("*").eq("id", str(category_id)).limit(1),
        "business_categories",
    )
    return first_or_404(response, "Category", category_id)


def join_category_stats(
    categories: list[dict[str, Any]],
    stats: list[dict[str, Any]],
) -> list[BusinessCategory]:
    """Attach view and click totals from business_categories_stats to category rows."""
    by_category = {str(row["category_id"]): row for row in stats if row.get("category_id")}
    joined = []
    for row in categories:
        extra = by_category.get(str(row["id"]), {})
        joined.append(
            BusinessCategory.from_db_row(
                {
                    **row,
                    "total_views": extra.get("total_views") or 0,
                    "total_clicks": extra.get("total_clicks") or 0,
                }
            )
        )
    return joined


def compute_category_stats(categories: list[dict[str, Any]]) -> CategoryStats:
    """Fallback for get_business_categories_stats."""
    if not categories:
        return CategoryStats(source="fallback")

    popular = max(categories, key=lambda row: row.get("count") or 0)
    dated = [row for row in categories if row.get("created_at")]
    newest = max(dated, key=lambda row: str(row["created_at"]), default=None)

    return CategoryStats(
        total_categories=len(categories),
        active_categories=sum(1 for row in categories if (row.get("count") or 0) > 0),
        most_popular_category=popular.get("title"),
        most_popular_count=popular.get("count") or 0,
        newest_category=newest.get("title") if newest else None,
        newest_category_date=newest.get("created_at") if newest else None,
        source="fallback",
    )


# =============================================================================
# Queries
# =============================================================================


def list_categories(supabase: Any) -> list[BusinessCategory]:
    """Public category list ordered by title."""
    response = execute(
        supabase.table("business_categories").select("*").order("title"),
        "business_categories",
    )
    return [BusinessCategory.from_db_row(row) for row in (response.data or [])]


async def admin_list_categories(supabase: Any) -> list[BusinessCategory]:
    """Categories with view and click totals for the admin console."""

    async def manual_join() -> list[BusinessCategory]:
        categories = execute(
            supabase.table("business_categories").select("*").order("title"),
            "business_categories",
        )
        stats = execute(
            supabase.table("business_categories_stats").select("*"),
            "business_categories_stats",
        )
        return join_category_stats(categories.data or [], stats.data or [])

    data, source = await call_with_fallback(
        supabase,
        "admin_get_business_categories_with_stats",
        {},
        manual_join,
        component="categories",
    )
    if source == "fallback":
        return data
    return [BusinessCategory.from_db_row(row) for row in (data or [])]


async def category_stats(supabase: Any) -> CategoryStats:
    async def compute() -> CategoryStats:
        response = execute(
            supabase.table("business_categories").select("id, title, count, created_at"),
            "business_categories",
        )
        return compute_category_stats(response.data or [])

    data, source = await call_with_fallback(
        supabase, "get_business_categories_stats", {}, compute, component="categories"
    )
    if source == "fallback":
        return data
    row = procedure_row(data) or {}
    return CategoryStats(**{**row, "source": "rpc"})


# =============================================================================
# Commands
# =============================================================================


async def create_category(
    supabase: Any,
    actor: CurrentUser,
    payload: CategoryCreate,
) -> BusinessCategory:
    title = payload.title.strip()
    if not title:
        raise ValidationFailedError("Category title is required", field="title")
    fields = {**payload.model_dump(mode="json"), "title": title}

    async def direct_insert() -> dict[str, Any]:
        response = execute(
            supabase.table("business_categories").insert(fields),
            "business_categories",
            "insert",
        )
        return first_or_404(response, "Category")

    data, source = await call_with_fallback(
        supabase,
        "admin_create_business_category",
        _procedure_params(fields),
        direct_insert,
        component="categories",
    )
    row = data if source == "fallback" else procedure_row(data)
    if row is None:
        if not data:
            raise NotFoundError("Category")
        # Procedure returned only the new id
        row = _fetch_row(supabase, data)
    category = BusinessCategory.from_db_row(row)

    logger.info("category_created", category_id=str(category.id), title=title, source=source)
    await record_activity(
        supabase,
        activity_type="create",
        description=f"Created category {title}",
        user_id=actor.id,
        resource_type="category",
        resource_id=category.id,
    )
    return category


async def update_category(
    supabase: Any,
    actor: CurrentUser,
    category_id: UUID,
    changes: CategoryUpdate,
) -> BusinessCategory:
    data = changes.model_dump(exclude_unset=True, mode="json")
    if "title" in data:
        data["title"] = (data["title"] or "").strip()
        if not data["title"]:
            raise ValidationFailedError("Category title is required", field="title")

    current = _fetch_row(supabase, category_id)
    merged = {
        key: data.get(key, current.get(key))
        for key in ("title", "description", "image_path", "icon_type", "link_path")
    }

    async def direct_update() -> dict[str, Any]:
        response = execute(
            supabase.table("business_categories").update(data).eq("id", str(category_id)),
            "business_categories",
            "update",
        )
        return first_or_404(response, "Category", category_id)

    result, source = await call_with_fallback(
        supabase,
        "admin_update_business_category",
        {"p_category_id": str(category_id), **_procedure_params(merged)},
        direct_update,
        component="categories",
    )
    row = result if source == "fallback" else procedure_row(result)
    category = BusinessCategory.from_db_row(row or _fetch_row(supabase, category_id))

    logger.info("category_updated", category_id=str(category_id), fields=sorted(data), source=source)
    await record_activity(
        supabase,
        activity_type="update",
        description=f"Updated category {category.title}",
        user_id=actor.id,
        resource_type="category",
        resource_id=category_id,
    )
    return category


async def delete_category(supabase: Any, actor: CurrentUser, category_id: UUID) -> None:
    current = _fetch_row(supabase, category_id)

    async def direct_delete() -> None:
        execute(
            supabase.table("business_categories").delete().eq("id", str(category_id)),
            "business_categories",
            "delete",
        )

    _, source = await call_with_fallback(
        supabase,
        "admin_delete_business_category",
        {"p_category_id": str(category_id)},
        direct_delete,
        component="categories",
    )
    logger.info("category_deleted", category_id=str(category_id), source=source)
    await record_activity(
        supabase,
        activity_type="delete",
        description=f"Deleted category {current.get('title')}",
        user_id=actor.id,
        resource_type="category",
        resource_id=category_id,
    )


def manual_recount(supabase: Any) -> RecountResult:
    """
    Recompute per-category business counts in one pass.

    Takes an exact count of businesses per category, writes ``count`` on each
    category and inserts or updates its business_categories_stats row. Rows
    are written one at a time without locking; a concurrent listing change
    between the count and the write is picked up by the next recount.
    """
    categories = execute(
        supabase.table("business_categories").select("id, title"),
        "business_categories",
    ).data or []
    existing_stats = execute(
        supabase.table("business_categories_stats").select("category_id"),
        "business_categories_stats",
    ).data or []

    has_stats = {str(row["category_id"]) for row in existing_stats}
    now = utc_now_iso()
    grand_total = 0

    for category in categories:
        category_id = str(category["id"])
        # count is exact even though the response carries at most one row
        total = execute(
            supabase.table("businesses")
            .select("id", count="exact")
            .eq("category_id", category_id)
            .limit(1),
            "businesses",
        ).count or 0
        grand_total += total

        execute(
            supabase.table("business_categories").update({"count": total}).eq("id", category_id),
            "business_categories",
            "update",
        )
        if category_id in has_stats:
            execute(
                supabase.table("business_categories_stats")
                .update({"total_businesses": total, "last_updated": now})
                .eq("category_id", category_id),
                "business_categories_stats",
                "update",
            )
        else:
            execute(
                supabase.table("business_categories_stats").insert(
                    {
                        "category_id": category_id,
                        "total_businesses": total,
                        "total_views": 0,
                        "total_clicks": 0,
                        "last_updated": now,
                    }
                ),
                "business_categories_stats",
                "insert",
            )

    return RecountResult(
        categories_updated=len(categories),
        total_businesses=grand_total,
        source="fallback",
    )


async def refresh_category_counts(supabase: Any, actor: Optional[CurrentUser] = None) -> RecountResult:
    """Run the recount procedure, or the manual recount when it fails."""

    async def fallback() -> RecountResult:
        return await asyncio.to_thread(manual_recount, supabase)

    data, source = await call_with_fallback(
        supabase,
        "update_business_category_counts",
        {},
        fallback,
        component="category_recount",
    )
    if source == "fallback":
        result = data
    else:
        row = procedure_row(data) or {}
        result = RecountResult(
            categories_updated=row.get("categories_updated", 0),
            total_businesses=row.get("total_businesses", 0),
            source="rpc",
        )

    logger.info(
        "category_recount_completed",
        categories_updated=result.categories_updated,
        source=result.source,
    )
    if actor is not None:
        await record_activity(
            supabase,
            activity_type="update",
            description=f"Refreshed counts for {result.categories_updated} categories",
            user_id=actor.id,
            resource_type="category",
        )
    return result


async def record_category_view(supabase: Any, category_id: UUID) -> bool:
    """Increment a category's view counter. Returns False if tracking failed."""
    try:
        await asyncio.to_thread(
            execute,
            supabase.rpc("increment_category_view", {"p_category_id": str(category_id)}),
            "increment_category_view",
            "rpc",
        )
    except AbaDirectoryError as e:
        logger.warning("category_view_not_recorded", category_id=str(category_id), error=e.message)
        return False
    return True


async def upload_category_image(
    storage: StorageService,
    content: bytes,
    content_type: Optional[str],
) -> str:
    """Upload a category image and return its public URL for image_path."""
    bucket = get_settings().storage_uploads_bucket
    return await storage.upload_image(bucket, "category", content, content_type)
