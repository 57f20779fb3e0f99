"""Health check endpoints for the Aba Directory API.

Provides system health status including database connectivity and the state
of outbound circuit breakers.
"""

import asyncio
from datetime import datetime, timezone
import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from src.api.dependencies import get_supabase
from src.api.models import HealthCheckResponse, HealthStatus
from src.core.circuit_breaker import CircuitState, get_all_circuit_breakers

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

API_VERSION = "1.0.0"

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


async def check_supabase_health(supabase: Client) -> HealthStatus:
    """Check Supabase database connectivity."""
    start_time = time.time()
    try:
        # Simple query to check connectivity
        await asyncio.to_thread(
            lambda: supabase.table("businesses").select("id").limit(1).execute()
        )
        latency = (time.time() - start_time) * 1000

        return HealthStatus(
            status="healthy",
            latency_ms=round(latency, 2),
            message="Connected to Supabase",
        )
    except Exception as e:
        latency = (time.time() - start_time) * 1000
        logger.error("supabase_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Supabase connection failed: {str(e)[:100]}",
        )


def check_geocoder_health() -> HealthStatus:
    """Report the geocoder as degraded while its circuit breaker is open."""
    breaker = get_all_circuit_breakers().get("nominatim")
    if breaker is None or breaker.state == CircuitState.CLOSED:
        return HealthStatus(status="healthy", message="Geocoder available")
    return HealthStatus(
        status="degraded",
        message=f"Geocoder circuit {breaker.state.value}",
    )


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    supabase: Client = Depends(get_supabase),
) -> HealthCheckResponse:
    """
    Perform a health check of all system components.

    Returns the status of:
    - Supabase (database, auth and storage)
    - Nominatim reverse geocoder (from its circuit breaker)
    """
    services = {
        "supabase": await check_supabase_health(supabase),
        "geocoder": check_geocoder_health(),
    }

    # Determine overall status
    statuses = [s.status for s in services.values()]
    if all(s == "healthy" for s in statuses):
        overall_status = "healthy"
    elif any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=API_VERSION,
        timestamp=datetime.now(timezone.utc),
        services=services,
        circuit_breakers={
            name: breaker.snapshot()
            for name, breaker in get_all_circuit_breakers().items()
        },
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    """Returns 200 if the service is alive."""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Check if the service is ready to accept traffic.",
)
async def readiness(
    supabase: Client = Depends(get_supabase),
) -> dict:
    """
    Readiness probe.

    Returns 200 only if the database is reachable.
    """
    supabase_status = await check_supabase_health(supabase)

    if supabase_status.status == "unhealthy":
        raise HTTPException(
            status_code=503,
            detail="Service not ready: database unavailable",
        )

    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
