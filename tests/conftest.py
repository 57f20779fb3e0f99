"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- fake_supabase: In-memory Supabase client (tests/fakes.py)
- admin_user / agent_user / regular_user: Authenticated callers
- settings: Settings built from test values
- client: FastAPI TestClient wired to fake_supabase
- auth_headers: Bearer headers for a user, registered with the fake auth
"""

import os

# Required settings must exist before any src module reads them
os.environ.setdefault("SUPABASE_URL", "https://fake.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-service-role-key")

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.config.settings import Settings, get_settings
from src.core.circuit_breaker import reset_all_circuit_breakers
from src.models.schemas import CurrentUser, UserRole
from tests.fakes import FakeSupabase


@pytest.fixture(autouse=True)
def reset_global_state():
    """Fresh settings cache and closed circuit breakers for every test."""
    get_settings.cache_clear()
    reset_all_circuit_breakers()
    yield
    reset_all_circuit_breakers()
    get_settings.cache_clear()


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, independent of any local .env file."""
    return Settings(
        _env_file=None,
        supabase_url="https://fake.supabase.co",
        supabase_key="test-service-role-key",
    )


def _user(role: UserRole, name: str) -> CurrentUser:
    return CurrentUser(
        id=uuid4(),
        email=f"{name.lower().replace(' ', '.')}@example.com",
        full_name=name,
        role=role,
    )


@pytest.fixture
def admin_user() -> CurrentUser:
    return _user(UserRole.ADMIN, "Ada Admin")


@pytest.fixture
def agent_user() -> CurrentUser:
    return _user(UserRole.AGENT, "Chidi Agent")


@pytest.fixture
def regular_user() -> CurrentUser:
    return _user(UserRole.USER, "Ngozi Owner")


@pytest.fixture
def client(fake_supabase):
    """TestClient whose Supabase dependency is the in-memory fake."""
    from src.api.dependencies import get_supabase
    from src.api.main import app

    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(fake_supabase):
    """Build Authorization headers for a user and store their users row."""

    def _headers(user: CurrentUser) -> dict[str, str]:
        token = f"token-{user.id}"
        fake_supabase.auth.add_token(token, str(user.id), user.email)
        if not any(row["id"] == str(user.id) for row in fake_supabase.rows("users")):
            fake_supabase.seed(
                "users",
                [
                    {
                        "id": str(user.id),
                        "email": user.email,
                        "full_name": user.full_name,
                        "role": user.role.value,
                    }
                ],
            )
        return {"Authorization": f"Bearer {token}"}

    return _headers
