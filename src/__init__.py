"""
Aba Directory - business directory backend for the markets of Aba.

This package contains the core modules for the Aba Directory system:
- api: FastAPI application and endpoints
- services: Domain operations over Supabase (businesses, markets,
  categories, KYC, agents, activity log, dashboards, storage, geocoding)
- config: Pydantic settings and configuration
- core: Exception hierarchy and circuit breakers
- models: Data models and request schemas
- monitoring: Prometheus metrics
"""

__version__ = "0.1.0"
