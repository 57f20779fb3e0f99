"""Unit tests for Supabase access helpers."""

from unittest.mock import MagicMock

import httpx
import pytest

from src.core.exceptions import (
    BackendError,
    BackendUnavailableError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from src.services.backend import (
    call_with_fallback,
    execute,
    first_or_404,
    procedure_row,
    run_concurrently,
    translate_api_error,
)
from tests.fakes import FakeResponse, api_error


class TestTranslateApiError:
    """Test PostgREST error mapping."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("23505", ConflictError),
            ("42501", PermissionDeniedError),
            ("PGRST301", PermissionDeniedError),
            ("42P01", BackendUnavailableError),
            ("PGRST116", NotFoundError),
            ("XX000", BackendError),
        ],
    )
    def test_codes(self, code, expected):
        assert isinstance(translate_api_error(api_error(code), "markets"), expected)

    def test_unique_violation_message_per_resource(self):
        error = translate_api_error(api_error("23505"), "business_categories")

        assert error.message == "A category with this title already exists."
        assert error.details["code"] == "23505"


class TestExecute:
    def test_returns_response(self):
        builder = MagicMock()
        builder.execute.return_value = FakeResponse([{"id": 1}], 1)

        assert execute(builder, "markets").data == [{"id": 1}]

    def test_api_error_translated(self):
        builder = MagicMock()
        builder.execute.side_effect = api_error("23505")

        with pytest.raises(ConflictError) as exc_info:
            execute(builder, "markets", "insert")

        assert exc_info.value.__cause__ is not None

    def test_network_error_is_unavailable(self):
        builder = MagicMock()
        builder.execute.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(BackendUnavailableError):
            execute(builder, "markets")

    def test_first_or_404(self):
        assert first_or_404(FakeResponse([{"id": "a"}]), "Market") == {"id": "a"}
        with pytest.raises(NotFoundError):
            first_or_404(FakeResponse([]), "Market", "a")

    def test_procedure_row_shapes(self):
        assert procedure_row([{"id": 1}]) == {"id": 1}
        assert procedure_row({"id": 1}) == {"id": 1}
        assert procedure_row([]) is None
        assert procedure_row("3f1c") is None


class TestCallWithFallback:
    """Test stored procedure fallback."""

    @pytest.mark.asyncio
    async def test_procedure_result_used(self, fake_supabase):
        fake_supabase.rpc_handlers["count_things"] = lambda params: [{"n": params["p_x"]}]

        async def fallback():
            raise AssertionError("fallback should not run")

        data, source = await call_with_fallback(
            fake_supabase, "count_things", {"p_x": 3}, fallback, component="test"
        )

        assert (data, source) == ([{"n": 3}], "rpc")

    @pytest.mark.asyncio
    async def test_missing_procedure_runs_fallback(self, fake_supabase):
        async def fallback():
            return "manual"

        data, source = await call_with_fallback(
            fake_supabase, "count_things", {}, fallback, component="test"
        )

        assert (data, source) == ("manual", "fallback")

    @pytest.mark.asyncio
    async def test_conflict_from_procedure_propagates(self, fake_supabase):
        def handler(params):
            raise api_error("23505")

        fake_supabase.rpc_handlers["admin_create_business_category"] = handler

        async def fallback():
            raise AssertionError("fallback should not run")

        with pytest.raises(ConflictError):
            await call_with_fallback(
                fake_supabase,
                "admin_create_business_category",
                {},
                fallback,
                component="categories",
            )


class TestRunConcurrently:
    @pytest.mark.asyncio
    async def test_failed_query_does_not_affect_others(self, fake_supabase):
        fake_supabase.seed("markets", [{"name": "Ariaria"}, {"name": "Ekeoha"}])
        fake_supabase.fail_table("users")

        outcomes = await run_concurrently({
            "markets": ("markets", fake_supabase.table("markets").select("id", count="exact")),
            "users": ("users", fake_supabase.table("users").select("id", count="exact")),
        })

        assert outcomes["markets"].ok
        assert outcomes["markets"].total == 2
        assert not outcomes["users"].ok
        assert outcomes["users"].total == 0
        assert outcomes["users"].data == []
        assert isinstance(outcomes["users"].error, BackendError)

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self):
        builder = MagicMock()
        builder.execute.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await run_concurrently({"broken": ("markets", builder)})
