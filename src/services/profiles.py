"""User profile and password management for the end-user dashboard."""

import asyncio
from typing import Any

import structlog

from src.core.exceptions import BackendError, ValidationFailedError
from src.models.schemas import CurrentUser, ProfileUpdate, UserProfile
from src.services.activities import record_activity
from src.services.backend import execute, first_or_404, utc_now_iso

logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


def get_profile(supabase: Any, user: CurrentUser) -> UserProfile:
    response = execute(
        supabase.table("users").select("*").eq("id", str(user.id)).limit(1),
        "users",
    )
    return UserProfile.from_db_row(first_or_404(response, "User", user.id))


async def update_profile(supabase: Any, user: CurrentUser, changes: ProfileUpdate) -> UserProfile:
    data = changes.model_dump(exclude_unset=True, mode="json")
    if "full_name" in data:
        data["full_name"] = (data["full_name"] or "").strip()
        if not data["full_name"]:
            raise ValidationFailedError("Full name cannot be blank", field="full_name")
    data["updated_at"] = utc_now_iso()

    response = execute(
        supabase.table("users").update(data).eq("id", str(user.id)),
        "users",
        "update",
    )
    profile = UserProfile.from_db_row(first_or_404(response, "User", user.id))
    logger.info("profile_updated", user_id=str(user.id), fields=sorted(data))
    await record_activity(
        supabase,
        activity_type="settings",
        description="Updated profile",
        user_id=user.id,
        resource_type="user",
        resource_id=user.id,
    )
    return profile


def validate_new_password(new_password: str, confirm_password: str) -> None:
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            field="new_password",
        )
    if new_password != confirm_password:
        raise ValidationFailedError("Passwords do not match", field="confirm_password")


async def change_password(
    supabase: Any,
    user: CurrentUser,
    new_password: str,
    confirm_password: str,
) -> None:
    """Validate and set a new password through the Supabase admin auth API."""
    validate_new_password(new_password, confirm_password)
    try:
        await asyncio.to_thread(
            supabase.auth.admin.update_user_by_id,
            str(user.id),
            {"password": new_password},
        )
    except Exception as e:
        logger.error("password_change_failed", user_id=str(user.id), error=str(e))
        raise BackendError("Failed to update password") from e

    logger.info("password_changed", user_id=str(user.id))
    await record_activity(
        supabase,
        activity_type="settings",
        description="Changed password",
        user_id=user.id,
        resource_type="user",
        resource_id=user.id,
    )
