"""Unit tests for the operational scripts."""

from unittest.mock import AsyncMock

import pytest

from scripts.populate_detected_addresses import (
    find_businesses_without_address,
    populate_detected_addresses,
)
from scripts.setup_supabase import REQUIRED_TABLES, check_tables, get_sql
from src.core.exceptions import CircuitBreakerOpenError, GeocodingTimeoutError


@pytest.fixture
def located(fake_supabase):
    return fake_supabase.seed("businesses", [
        {"name": "Bola Fabrics", "latitude": 5.10, "longitude": 7.36, "detected_address": None},
        {"name": "Ada Phones", "latitude": 5.11, "longitude": 7.37, "detected_address": None},
        {"name": "Known", "latitude": 5.12, "longitude": 7.38, "detected_address": "Aba"},
        {"name": "No GPS", "latitude": None, "longitude": None, "detected_address": None},
    ])


class TestPopulateDetectedAddresses:
    def test_candidates(self, fake_supabase, located):
        names = [b["name"] for b in find_businesses_without_address(fake_supabase)]

        assert names == ["Bola Fabrics", "Ada Phones"]

    @pytest.mark.asyncio
    async def test_writes_addresses(self, fake_supabase, located):
        geocoder = AsyncMock()
        geocoder.reverse.side_effect = ["Ariaria Market, Aba", None]

        summary = await populate_detected_addresses(fake_supabase, geocoder, delay=0)

        assert summary.total == 2
        assert summary.updated == 1
        assert summary.not_found == 1
        assert fake_supabase.rows("businesses")[0]["detected_address"] == "Ariaria Market, Aba"

    @pytest.mark.asyncio
    async def test_dry_run_does_not_write(self, fake_supabase, located):
        geocoder = AsyncMock()
        geocoder.reverse.return_value = "Ariaria Market, Aba"

        summary = await populate_detected_addresses(fake_supabase, geocoder, delay=0, dry_run=True)

        assert summary.updated == 2
        assert fake_supabase.rows("businesses")[0]["detected_address"] is None

    @pytest.mark.asyncio
    async def test_error_recorded_and_run_continues(self, fake_supabase, located):
        geocoder = AsyncMock()
        geocoder.reverse.side_effect = [GeocodingTimeoutError("Nominatim timed out"), "Aba"]

        summary = await populate_detected_addresses(fake_supabase, geocoder, delay=0)

        assert summary.updated == 1
        assert summary.errors == ["Bola Fabrics: Nominatim timed out"]

    @pytest.mark.asyncio
    async def test_open_circuit_stops_run(self, fake_supabase, located):
        geocoder = AsyncMock()
        geocoder.reverse.side_effect = CircuitBreakerOpenError("nominatim", 60.0)

        summary = await populate_detected_addresses(fake_supabase, geocoder, delay=0)

        assert geocoder.reverse.await_count == 1
        assert len(summary.errors) == 1


class TestSetupSupabase:
    def test_all_tables_present(self, fake_supabase):
        results = check_tables(fake_supabase)

        assert results["success"] is True
        assert set(results["tables"]) == set(REQUIRED_TABLES)

    def test_missing_table_reported(self, fake_supabase):
        fake_supabase.fail_table("kyc_verifications", code="42P01")

        results = check_tables(fake_supabase)

        assert results["success"] is False
        assert results["missing"] == ["kyc_verifications"]

    def test_sql_variants(self):
        assert "CREATE TABLE IF NOT EXISTS businesses" in get_sql()
        assert "DROP TABLE IF EXISTS markets" in get_sql("drop")
