"""Aba Directory API - Main FastAPI Application.

This module provides the main FastAPI application for the Aba Directory
platform. It includes:
- CORS middleware configuration
- Request metrics middleware and the /metrics endpoint
- API versioning (/api/v1)
- Health check endpoints
- Public directory, account, agent portal and admin console endpoints
- Mapping of domain exceptions to the standard error response

Usage:
    # Run with uvicorn
    uvicorn src.api.main:app --reload

    # Or run directly
    python -m src.api.main
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.dependencies import reset_dependencies
from src.api.models import ErrorResponse, ValidationErrorResponse, ValidationErrorDetail
from src.api.routes import (
    admin_router,
    agents_router,
    businesses_router,
    categories_router,
    geocode_router,
    health_router,
    markets_router,
    me_router,
)
from src.api.routes.health import API_VERSION, set_server_start_time
from src.config.settings import get_settings
from src.core.exceptions import AbaDirectoryError
from src.monitoring.metrics import get_metrics_app, track_api_request
from src.services.geocoding import reset_reverse_geocoder

logger = structlog.get_logger(__name__)

# API metadata for OpenAPI documentation
API_TITLE = "Aba Directory API"
API_DESCRIPTION = """
## Business Directory for Aba Markets

Aba Directory lists businesses trading in the markets of Aba, their
categories and locations, and the field agents who register them.

### Audiences

- **Public**: search businesses, browse markets and categories
- **Users**: manage their listings, profile and KYC verification
- **Agents**: register businesses for owners and track weekly targets
- **Admins**: moderate listings, manage markets and categories, review KYC,
  manage agents and view performance reports

### Authentication

Send a Supabase access token as `Authorization: Bearer <token>`. Roles are
read from the `users` table.
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Record start time for uptime reporting
    - Shutdown: Close the geocoder HTTP client, drop cached clients
    """
    logger.info("application_starting")
    set_server_start_time()
    logger.info("application_started")

    yield

    logger.info("application_stopping")
    try:
        await reset_reverse_geocoder()
    except Exception as e:
        logger.error("geocoder_shutdown_error", error=str(e))

    reset_dependencies()
    logger.info("application_stopped")


# =============================================================================
# Request Metrics Middleware
# =============================================================================


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Record duration and status of every request, labelled by route template."""

    async def dispatch(self, request: Request, call_next):
        with track_api_request(request.method, "unmatched") as ctx:
            response = await call_next(request)
            route = request.scope.get("route")
            if route is not None:
                ctx["endpoint"] = getattr(route, "path", "unmatched")
            ctx["status_code"] = response.status_code
        return response


# Create FastAPI application
app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=[
        {"name": "Health", "description": "System health and status endpoints"},
        {"name": "Businesses", "description": "Public search and listing management"},
        {"name": "Markets", "description": "Markets businesses trade in"},
        {"name": "Categories", "description": "Business categories"},
        {"name": "Geocoding", "description": "Reverse geocoding of GPS fixes"},
        {"name": "Account", "description": "The caller's profile, password, listings and KYC"},
        {"name": "Agents", "description": "Agent registration and portal dashboard"},
        {"name": "Admin", "description": "Admin console"},
    ],
)

# Configure CORS middleware (from settings)
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allowed_origins,
    allow_credentials=_settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)

app.add_middleware(RequestMetricsMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(AbaDirectoryError)
async def domain_exception_handler(
    request: Request, exc: AbaDirectoryError
) -> JSONResponse:
    """Map domain errors to the standard error response with their status code."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code,
        status_code=exc.status_code,
        error=exc.message,
    )

    response = ErrorResponse(
        error=exc.error_code,
        message=exc.message,
        detail=exc.details or None,
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with detailed response."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        value = error.get("input")
        if isinstance(value, (bytes, bytearray)):
            value = None
        errors.append(ValidationErrorDetail(
            field=field,
            message=error["msg"],
            value=value,
        ))

    response = ValidationErrorResponse(
        errors=errors,
        timestamp=datetime.now(timezone.utc),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    response = ErrorResponse(
        error="internal_server_error",
        message="An unexpected error occurred",
        detail=str(exc) if get_settings().debug else None,
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# =============================================================================
# Root Endpoints
# =============================================================================


@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint - points at documentation and health."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
        "api": "/api/v1",
    }


# =============================================================================
# Include Routers
# =============================================================================

# Health endpoints at root level
app.include_router(health_router)

# Prometheus scrape endpoint
app.mount("/metrics", get_metrics_app())

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(businesses_router)
api_v1_router.include_router(markets_router)
api_v1_router.include_router(categories_router)
api_v1_router.include_router(geocode_router)
api_v1_router.include_router(me_router)
api_v1_router.include_router(agents_router)
api_v1_router.include_router(admin_router)

app.include_router(api_v1_router)


@app.get("/api/v1", include_in_schema=False)
async def api_v1_root() -> dict:
    """API v1 root - shows available endpoints."""
    return {
        "version": "v1",
        "endpoints": {
            "businesses": "/api/v1/businesses",
            "markets": "/api/v1/markets",
            "categories": "/api/v1/categories",
            "geocode": "/api/v1/geocode/reverse",
            "me": "/api/v1/me",
            "agents": "/api/v1/agents",
            "admin": "/api/v1/admin",
        },
        "documentation": "/docs",
    }


# =============================================================================
# Development Server
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
