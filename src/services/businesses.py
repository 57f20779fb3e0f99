"""
Business listings.

Public search, creation by agents and self-service users, owner/admin
updates, status moderation, logo upload and GPS location capture with
reverse geocoding.
"""

import asyncio
from typing import Any, Optional
from uuid import UUID

import structlog

from src.config.settings import get_settings
from src.core.exceptions import (
    AbaDirectoryError,
    CircuitBreakerOpenError,
    GeocodingError,
    PermissionDeniedError,
    ValidationFailedError,
)
from src.models.schemas import (
    Business,
    BusinessCreate,
    BusinessServices,
    BusinessStatus,
    BusinessUpdate,
    CurrentUser,
)
from src.services.activities import record_activity
from src.services.backend import execute, first_or_404, run_concurrently, utc_now_iso
from src.services.geocoding import ReverseGeocoder, validate_coordinates
from src.services.storage import StorageService

logger = structlog.get_logger(__name__)

SORT_OPTIONS = ("name", "newest")


# =============================================================================
# Helpers
# =============================================================================


def sanitize_search(term: Optional[str]) -> Optional[str]:
    """Strip characters that would break a PostgREST or-filter expression."""
    if term is None:
        return None
    cleaned = "".join(ch for ch in term if ch not in ",()").strip()
    return cleaned or None


def normalize_services(services: list[str]) -> list[str]:
    """Drop blank and duplicate (case-insensitive) service names, keeping order."""
    seen: set[str] = set()
    result = []
    for service in services:
        name = service.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        result.append(name)
    return result


def build_services(services: list[str], category: Optional[str]) -> dict[str, Any]:
    """Build the services JSON stored on a business row."""
    service_list = normalize_services(services)
    return BusinessServices(
        category=category,
        service_list=service_list,
        last_updated=utc_now_iso(),
        count=len(service_list),
    ).model_dump(mode="json")


def can_manage(actor: CurrentUser, row: dict[str, Any]) -> bool:
    """Admins manage every listing; others only listings they own or created."""
    if actor.is_admin:
        return True
    actor_id = str(actor.id)
    return actor_id in (str(row.get("owner_id")), str(row.get("created_by")))


def resolve_category_id(
    supabase: Any,
    category_id: Optional[UUID],
    business_type: Optional[str],
) -> Optional[str]:
    """Resolve a category from its id or a case-insensitive title match."""
    if category_id:
        return str(category_id)
    if not business_type or not business_type.strip():
        return None
    response = execute(
        supabase.table("business_categories")
        .select("id, title")
        .ilike("title", business_type.strip())
        .limit(1),
        "business_categories",
    )
    rows = response.data or []
    if not rows:
        logger.info("business_category_unresolved", business_type=business_type)
        return None
    return rows[0]["id"]


def resolve_market_id(
    supabase: Any,
    market_id: Optional[UUID],
    market_name: Optional[str],
) -> Optional[str]:
    """Resolve a market from its id or a case-insensitive name match."""
    if market_id:
        return str(market_id)
    if not market_name or not market_name.strip():
        return None
    response = execute(
        supabase.table("markets").select("id, name").ilike("name", market_name.strip()).limit(1),
        "markets",
    )
    rows = response.data or []
    return rows[0]["id"] if rows else None


def _fetch_row(supabase: Any, business_id: UUID) -> dict[str, Any]:
    response = execute(
        supabase.table("businesses").select("*").eq("id", str(business_id)).limit(1),
        "businesses",
    )
    return first_or_404(response, "Business", business_id)


def _update_row(supabase: Any, business_id: UUID, changes: dict[str, Any]) -> Business:
    changes["updated_at"] = utc_now_iso()
    response = execute(
        supabase.table("businesses").update(changes).eq("id", str(business_id)),
        "businesses",
        "update",
    )
    return Business.from_db_row(first_or_404(response, "Business", business_id))


# =============================================================================
# Queries
# =============================================================================


def search_businesses(
    supabase: Any,
    q: Optional[str] = None,
    category_id: Optional[UUID] = None,
    market_id: Optional[UUID] = None,
    location: Optional[str] = None,
    sort_by: str = "name",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Business], int]:
    """
    Search active listings.

    ``q`` matches name or description, ``location`` matches the address,
    both case-insensitively. Results are sorted by name or newest first.
    """
    query = (
        supabase.table("businesses")
        .select("*", count="exact")
        .eq("status", BusinessStatus.ACTIVE.value)
    )

    term = sanitize_search(q)
    if term:
        query = query.or_(f"name.ilike.%{term}%,description.ilike.%{term}%")
    if category_id:
        query = query.eq("category_id", str(category_id))
    if market_id:
        query = query.eq("market_id", str(market_id))
    place = sanitize_search(location)
    if place:
        query = query.ilike("address", f"%{place}%")

    if sort_by == "newest":
        query = query.order("created_at", desc=True)
    else:
        query = query.order("name")

    response = execute(query.range(offset, offset + limit - 1), "businesses")
    businesses = [Business.from_db_row(row) for row in (response.data or [])]
    total = response.count if response.count is not None else len(businesses)
    return businesses, total


def get_business(supabase: Any, business_id: UUID) -> Business:
    return Business.from_db_row(_fetch_row(supabase, business_id))


def list_my_businesses(supabase: Any, actor: CurrentUser) -> list[Business]:
    """Listings the user owns or created, newest first."""
    actor_id = str(actor.id)
    response = execute(
        supabase.table("businesses")
        .select("*")
        .or_(f"owner_id.eq.{actor_id},created_by.eq.{actor_id}")
        .order("created_at", desc=True),
        "businesses",
    )
    return [Business.from_db_row(row) for row in (response.data or [])]


async def admin_list_businesses(
    supabase: Any,
    status: Optional[BusinessStatus] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Business], int, dict[str, int]]:
    """List listings of every status plus a per-status summary."""
    query = supabase.table("businesses").select("*", count="exact")
    if status:
        query = query.eq("status", status.value)
    term = sanitize_search(q)
    if term:
        query = query.or_(f"name.ilike.%{term}%,description.ilike.%{term}%")
    query = query.order("created_at", desc=True).range(offset, offset + limit - 1)

    counts = {"total": ("businesses", supabase.table("businesses").select("id", count="exact"))}
    for value in BusinessStatus:
        counts[value.value] = (
            "businesses",
            supabase.table("businesses").select("id", count="exact").eq("status", value.value),
        )

    response, outcomes = await asyncio.gather(
        asyncio.to_thread(execute, query, "businesses"),
        run_concurrently(counts),
    )
    businesses = [Business.from_db_row(row) for row in (response.data or [])]
    total = response.count if response.count is not None else len(businesses)
    summary = {name: outcome.total for name, outcome in outcomes.items()}
    return businesses, total, summary


# =============================================================================
# Commands
# =============================================================================


async def create_business(
    supabase: Any,
    actor: CurrentUser,
    payload: BusinessCreate,
) -> Business:
    """
    Create a listing owned by the actor.

    When the actor is an agent, the agent's registration counters are
    incremented after the listing is saved.
    """
    name = payload.name.strip()
    if not name:
        raise ValidationFailedError("Business name is required", field="name")

    category_id = resolve_category_id(supabase, payload.category_id, payload.business_type)
    market_id = resolve_market_id(supabase, payload.market_id, payload.market_name)

    row: dict[str, Any] = {
        "name": name,
        "description": payload.description,
        "category_id": category_id,
        "market_id": market_id,
        "owner_id": str(actor.id),
        "created_by": str(actor.id),
        "contact_phone": payload.contact_phone,
        "contact_email": payload.contact_email,
        "address": payload.address,
        "website": payload.website,
        "facebook": payload.facebook,
        "instagram": payload.instagram,
        "status": BusinessStatus.ACTIVE.value,
        "services": build_services(payload.services, payload.business_type),
    }
    if payload.latitude is not None and payload.longitude is not None:
        row.update(
            latitude=payload.latitude,
            longitude=payload.longitude,
            location_accuracy=payload.location_accuracy,
            location_timestamp=utc_now_iso(),
        )

    response = execute(supabase.table("businesses").insert(row), "businesses", "insert")
    business = Business.from_db_row(first_or_404(response, "Business"))

    logger.info(
        "business_created",
        business_id=str(business.id),
        created_by=str(actor.id),
        category_resolved=category_id is not None,
    )

    if actor.is_agent:
        increment_agent_registrations(supabase, actor.id)

    await record_activity(
        supabase,
        activity_type="create",
        description=f"Created business {name}",
        user_id=actor.id,
        resource_type="business",
        resource_id=business.id,
    )
    return business


def increment_agent_registrations(supabase: Any, user_id: UUID) -> None:
    """Bump the agent's total and current-week registration counters.

    Counter updates are best effort: the listing is already saved.
    """
    try:
        response = execute(
            supabase.table("agents")
            .select("id, total_registrations, current_week_registrations")
            .eq("user_id", str(user_id))
            .limit(1),
            "agents",
        )
        rows = response.data or []
        if not rows:
            logger.warning("agent_counter_missing_agent", user_id=str(user_id))
            return
        agent = rows[0]
        execute(
            supabase.table("agents")
            .update(
                {
                    "total_registrations": (agent.get("total_registrations") or 0) + 1,
                    "current_week_registrations": (agent.get("current_week_registrations") or 0) + 1,
                }
            )
            .eq("id", agent["id"]),
            "agents",
            "update",
        )
    except AbaDirectoryError as e:
        logger.warning("agent_counter_update_failed", user_id=str(user_id), error=e.message)


async def update_business(
    supabase: Any,
    actor: CurrentUser,
    business_id: UUID,
    changes: BusinessUpdate,
) -> Business:
    row = _fetch_row(supabase, business_id)
    if not can_manage(actor, row):
        raise PermissionDeniedError("You can only edit your own listings")

    data = changes.model_dump(exclude_unset=True, mode="json")
    if "name" in data:
        data["name"] = (data["name"] or "").strip()
        if not data["name"]:
            raise ValidationFailedError("Business name is required", field="name")
    if "services" in data:
        existing = (row.get("services") or {}).get("category")
        data["services"] = build_services(data["services"] or [], existing)

    business = _update_row(supabase, business_id, data)
    logger.info("business_updated", business_id=str(business_id), fields=sorted(data))
    await record_activity(
        supabase,
        activity_type="update",
        description=f"Updated business {business.name}",
        user_id=actor.id,
        resource_type="business",
        resource_id=business_id,
    )
    return business


async def set_business_status(
    supabase: Any,
    actor: CurrentUser,
    business_id: UUID,
    status: BusinessStatus,
) -> Business:
    """Moderate a listing (admin)."""
    _fetch_row(supabase, business_id)
    business = _update_row(supabase, business_id, {"status": status.value})
    logger.info("business_status_changed", business_id=str(business_id), status=status.value)
    await record_activity(
        supabase,
        activity_type="update",
        description=f"Set business {business.name} to {status.value}",
        user_id=actor.id,
        resource_type="business",
        resource_id=business_id,
    )
    return business


async def delete_business(supabase: Any, actor: CurrentUser, business_id: UUID) -> None:
    row = _fetch_row(supabase, business_id)
    execute(
        supabase.table("businesses").delete().eq("id", str(business_id)),
        "businesses",
        "delete",
    )
    logger.info("business_deleted", business_id=str(business_id))
    await record_activity(
        supabase,
        activity_type="delete",
        description=f"Deleted business {row.get('name')}",
        user_id=actor.id,
        resource_type="business",
        resource_id=business_id,
    )


async def upload_business_logo(
    supabase: Any,
    storage: StorageService,
    actor: CurrentUser,
    business_id: UUID,
    content: bytes,
    content_type: Optional[str],
) -> Business:
    """Store a logo in the uploads bucket and point the listing at it."""
    row = _fetch_row(supabase, business_id)
    if not can_manage(actor, row):
        raise PermissionDeniedError("You can only edit your own listings")

    bucket = get_settings().storage_uploads_bucket
    logo_url = await storage.upload_image(bucket, "logo", content, content_type)
    business = _update_row(supabase, business_id, {"logo_url": logo_url})

    if row.get("logo_url"):
        await storage.remove(bucket, row["logo_url"])
    return business


async def set_business_location(
    supabase: Any,
    geocoder: ReverseGeocoder,
    actor: CurrentUser,
    business_id: UUID,
    latitude: float,
    longitude: float,
    accuracy: Optional[float] = None,
) -> Business:
    """
    Store a GPS fix on a listing and fill ``detected_address``.

    A geocoding failure still saves the coordinates; the address stays empty.
    """
    validate_coordinates(latitude, longitude)
    row = _fetch_row(supabase, business_id)
    if not can_manage(actor, row):
        raise PermissionDeniedError("You can only edit your own listings")

    detected_address = None
    try:
        detected_address = await geocoder.reverse(latitude, longitude)
    except (GeocodingError, CircuitBreakerOpenError) as e:
        logger.warning("business_geocode_failed", business_id=str(business_id), error=e.message)

    return _update_row(
        supabase,
        business_id,
        {
            "latitude": latitude,
            "longitude": longitude,
            "location_accuracy": accuracy,
            "location_timestamp": utc_now_iso(),
            "detected_address": detected_address,
        },
    )
