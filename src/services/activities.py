"""Activity audit log: append entries and list them for the admin console."""

import asyncio
from typing import Any, Optional
from uuid import UUID

import structlog

from src.core.exceptions import AbaDirectoryError, ValidationFailedError
from src.models.schemas import Activity, ActivityStatus
from src.services.backend import execute

logger = structlog.get_logger(__name__)

ACTION_TYPES = [
    "login",
    "logout",
    "create",
    "update",
    "delete",
    "settings",
    "kyc",
    "user",
    "agent",
    "product",
]


async def record_activity(
    supabase: Any,
    *,
    activity_type: str,
    description: str,
    user_id: Optional[UUID] = None,
    agent_id: Optional[UUID] = None,
    status: ActivityStatus = ActivityStatus.COMPLETED,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
) -> Optional[Activity]:
    """
    Append an entry to the activity log.

    Logging an activity never fails the action it describes: backend errors
    are logged and None is returned.
    """
    entry = Activity(
        user_id=user_id,
        agent_id=agent_id,
        activity_type=activity_type,
        description=description,
        status=status,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
    )
    try:
        response = await asyncio.to_thread(
            execute,
            supabase.table("activities").insert(entry.to_db_row()),
            "activities",
            "insert",
        )
    except AbaDirectoryError as e:
        logger.warning(
            "activity_log_failed",
            activity_type=activity_type,
            error=e.message,
        )
        return None

    rows = response.data or []
    return Activity.from_db_row(rows[0]) if rows else entry


def list_activities(
    supabase: Any,
    activity_type: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Activity], int]:
    """List activities newest first, optionally filtered by type and description text."""
    query = supabase.table("activities").select("*", count="exact")
    if activity_type:
        if activity_type not in ACTION_TYPES:
            raise ValidationFailedError(
                f"Unknown activity type '{activity_type}'", field="activity_type"
            )
        query = query.eq("activity_type", activity_type)
    if search:
        query = query.ilike("description", f"%{search}%")
    query = query.order("created_at", desc=True).range(offset, offset + limit - 1)

    response = execute(query, "activities")
    activities = [Activity.from_db_row(row) for row in (response.data or [])]
    total = response.count if response.count is not None else len(activities)
    return activities, total
