"""FastAPI dependency injection providers.

This module provides dependency functions for injecting the Supabase client,
storage and geocoding services, and the authenticated user into route handlers.
"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog
from fastapi import Depends, Header
from supabase import create_client, Client

from src.config.settings import get_settings
from src.core.exceptions import AuthenticationError, PermissionDeniedError
from src.models.schemas import CurrentUser, UserRole
from src.services.backend import execute
from src.services.geocoding import ReverseGeocoder, get_reverse_geocoder
from src.services.storage import StorageService

logger = structlog.get_logger(__name__)

# Global instances for singleton pattern
_supabase_client: Optional[Client] = None


def get_supabase() -> Client:
    """
    Get Supabase client instance.

    Uses a singleton pattern to reuse the same client across requests.

    Returns:
        Supabase client authenticated with the service role key.
    """
    global _supabase_client

    if _supabase_client is None:
        settings = get_settings()
        _supabase_client = create_client(
            settings.supabase_url,
            settings.supabase_key.get_secret_value(),
        )

    return _supabase_client


def get_storage(supabase: Client = Depends(get_supabase)) -> StorageService:
    return StorageService(supabase)


def get_geocoder() -> ReverseGeocoder:
    return get_reverse_geocoder()


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")
    return token.strip()


def _resolve_user(supabase: Client, token: str) -> CurrentUser:
    try:
        response = supabase.auth.get_user(token)
    except Exception as e:
        logger.warning("auth_token_rejected", error=str(e))
        raise AuthenticationError("Invalid or expired access token") from e

    auth_user = getattr(response, "user", None)
    if auth_user is None:
        raise AuthenticationError("Invalid or expired access token")

    rows = execute(
        supabase.table("users")
        .select("id, email, full_name, role")
        .eq("id", str(auth_user.id))
        .limit(1),
        "users",
    ).data or []
    profile = rows[0] if rows else {}

    try:
        role = UserRole(profile.get("role") or UserRole.USER.value)
    except ValueError:
        role = UserRole.USER

    metadata = getattr(auth_user, "user_metadata", None) or {}
    return CurrentUser(
        id=UUID(str(auth_user.id)),
        email=profile.get("email") or getattr(auth_user, "email", None),
        full_name=profile.get("full_name") or metadata.get("full_name"),
        role=role,
    )


async def get_current_user(
    authorization: Optional[str] = Header(None),
    supabase: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Resolve the bearer access token to the calling user.

    The role is read from the users table, not from token claims.

    Raises:
        AuthenticationError: Missing, malformed or rejected token.
    """
    token = _bearer_token(authorization)
    return await asyncio.to_thread(_resolve_user, supabase, token)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user


async def require_agent(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Agents and admins may use the agent portal."""
    if not (user.is_agent or user.is_admin):
        raise PermissionDeniedError("Agent access required")
    return user


def reset_dependencies() -> None:
    """
    Reset all global dependency instances.

    Useful for testing or application shutdown.
    """
    global _supabase_client
    _supabase_client = None
