"""API route modules."""

from src.api.routes.health import router as health_router
from src.api.routes.businesses import router as businesses_router
from src.api.routes.markets import router as markets_router
from src.api.routes.categories import router as categories_router
from src.api.routes.geocode import router as geocode_router
from src.api.routes.me import router as me_router
from src.api.routes.agents import router as agents_router
from src.api.routes.admin import router as admin_router

__all__ = [
    "health_router",
    "businesses_router",
    "markets_router",
    "categories_router",
    "geocode_router",
    "me_router",
    "agents_router",
    "admin_router",
]
