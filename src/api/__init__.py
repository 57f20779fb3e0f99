"""
Aba Directory FastAPI Application.

This module contains the REST API for Aba Directory:

- main: FastAPI application entry point and configuration
- routes/: API endpoint definitions organized by audience
- models: Pydantic request/response models
- dependencies: FastAPI dependency injection providers

API Structure:
- /health - Health check and readiness probes
- /metrics - Prometheus metrics
- /api/v1/businesses, /markets, /categories - Public directory
- /api/v1/geocode - Reverse geocoding
- /api/v1/me - The caller's profile, listings and KYC
- /api/v1/agents - Agent registration and dashboard
- /api/v1/admin - Admin console

Example:
    from src.api.main import app

    # Run with: uvicorn src.api.main:app --reload
"""

from src.api.main import app

__all__ = ["app"]
