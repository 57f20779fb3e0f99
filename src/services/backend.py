"""
Supabase access helpers shared by every service.

- execute(): run a query builder, record metrics, translate PostgREST errors
- call_with_fallback(): run a stored procedure, falling back to an equivalent
  multi-query implementation when the procedure fails
- run_concurrently(): issue independent queries in parallel and keep the
  results of the ones that succeed

The Supabase client is synchronous, so concurrent work is pushed onto worker
threads with asyncio.to_thread.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
from postgrest.exceptions import APIError

from src.core.exceptions import (
    AbaDirectoryError,
    BackendError,
    BackendUnavailableError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from src.monitoring.metrics import record_fallback, track_backend_operation

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Error Translation
# =============================================================================

# PostgREST / Postgres error codes we map to domain errors
UNIQUE_VIOLATION = "23505"
INSUFFICIENT_PRIVILEGE = "42501"
UNDEFINED_TABLE = "42P01"
JWT_PERMISSION = "PGRST301"
NO_ROWS = "PGRST116"

CONFLICT_MESSAGES = {
    "markets": "A market with this name already exists.",
    "business_categories": "A category with this title already exists.",
}


def translate_api_error(error: APIError, resource: str) -> AbaDirectoryError:
    """Map a PostgREST APIError to the matching project exception."""
    code = getattr(error, "code", None)
    message = getattr(error, "message", None) or str(error)
    details = {"resource": resource, "code": code}

    if code == UNIQUE_VIOLATION:
        return ConflictError(
            CONFLICT_MESSAGES.get(resource, f"Duplicate {resource} record"),
            details,
        )
    if code == INSUFFICIENT_PRIVILEGE:
        return PermissionDeniedError(
            "Insufficient permissions. Please check your admin privileges.",
            details,
        )
    if code == JWT_PERMISSION:
        return PermissionDeniedError(
            "Permission denied. Please check your authentication.",
            details,
        )
    if code == UNDEFINED_TABLE:
        return BackendUnavailableError(
            f"Table for {resource} not found. Please check the database setup.",
            details,
        )
    if code == NO_ROWS:
        return NotFoundError(resource)
    return BackendError(f"{resource} request failed: {message}", details)


def execute(builder: Any, resource: str, operation: str = "select") -> Any:
    """
    Execute a Supabase query builder.

    Args:
        builder: Table query or rpc builder (anything with .execute()).
        resource: Table or procedure name, used for metrics and messages.
        operation: Operation label for metrics (select, insert, update, rpc...).

    Returns:
        The APIResponse (``.data`` and ``.count``).

    Raises:
        AbaDirectoryError: Translated PostgREST error.
        BackendUnavailableError: Network failure talking to Supabase.
    """
    with track_backend_operation(resource, operation):
        try:
            return builder.execute()
        except APIError as e:
            translated = translate_api_error(e, resource)
            logger.error(
                "backend_query_failed",
                resource=resource,
                operation=operation,
                code=getattr(e, "code", None),
                error=getattr(e, "message", None) or str(e),
            )
            raise translated from e
        except httpx.HTTPError as e:
            logger.error(
                "backend_unreachable",
                resource=resource,
                operation=operation,
                error=str(e),
            )
            raise BackendUnavailableError(
                f"Could not reach the database for {resource}",
                {"resource": resource},
            ) from e


def first_or_404(response: Any, resource: str, resource_id: Any = None) -> dict[str, Any]:
    """Return the first row of a response or raise NotFoundError."""
    rows = response.data or []
    if not rows:
        raise NotFoundError(resource, resource_id)
    return rows[0]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Stored Procedures
# =============================================================================


async def call_with_fallback(
    supabase: Any,
    procedure: str,
    params: dict[str, Any],
    fallback: Callable[[], Awaitable[T]],
    *,
    component: str,
) -> tuple[Any, str]:
    """
    Call a stored procedure, running ``fallback`` if it fails.

    Conflicts and validation errors raised by the procedure are business
    outcomes and propagate unchanged; backend, permission and missing-row
    failures trigger the fallback.

    Returns:
        (data, source) where source is "rpc" or "fallback".
    """
    try:
        response = await asyncio.to_thread(
            execute, supabase.rpc(procedure, params), procedure, "rpc"
        )
        return response.data, "rpc"
    except (BackendError, PermissionDeniedError, NotFoundError) as e:
        logger.warning(
            "procedure_fallback",
            procedure=procedure,
            component=component,
            error=e.message,
        )
        record_fallback(component, "rpc_failed")
        return await fallback(), "fallback"


# =============================================================================
# Concurrent Queries
# =============================================================================


@dataclass
class QueryOutcome:
    """Result of one query issued by run_concurrently."""

    name: str
    data: list[dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None
    error: Optional[AbaDirectoryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total(self) -> int:
        """Exact count when requested, else the number of rows; zero on failure."""
        if self.error is not None:
            return 0
        return self.count if self.count is not None else len(self.data)


async def run_concurrently(
    queries: dict[str, tuple[str, Any]],
) -> dict[str, QueryOutcome]:
    """
    Execute independent queries in parallel.

    Args:
        queries: Mapping of name -> (resource, builder).

    Returns:
        Mapping of name -> QueryOutcome. A failed query yields an outcome with
        empty data and its error set; the others are unaffected.
    """
    names = list(queries)
    results = await asyncio.gather(
        *(
            asyncio.to_thread(execute, builder, resource, "select")
            for resource, builder in queries.values()
        ),
        return_exceptions=True,
    )

    outcomes: dict[str, QueryOutcome] = {}
    for name, result in zip(names, results):
        if isinstance(result, AbaDirectoryError):
            logger.warning("concurrent_query_failed", query=name, error=result.message)
            outcomes[name] = QueryOutcome(name=name, error=result)
        elif isinstance(result, BaseException):
            raise result
        else:
            outcomes[name] = QueryOutcome(
                name=name,
                data=result.data or [],
                count=getattr(result, "count", None),
            )
    return outcomes


def procedure_row(data: Any) -> Optional[dict[str, Any]]:
    """Procedures return a row, a list of rows or a bare id depending on their SQL."""
    if isinstance(data, list):
        return data[0] if data and isinstance(data[0], dict) else None
    if isinstance(data, dict):
        return data
    return None
