"""Unit tests for the Nominatim reverse geocoder."""

import httpx
import pytest
from tenacity import wait_none

from src.core.circuit_breaker import CircuitState, get_circuit_breaker
from src.core.exceptions import (
    CircuitBreakerOpenError,
    GeocodingError,
    GeocodingRateLimitError,
    GeocodingUnavailableError,
    ValidationFailedError,
)
from src.services.geocoding import ReverseGeocoder, validate_coordinates

NOMINATIM_URL = "https://nominatim.test/reverse"


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    """Retry immediately instead of backing off."""
    monkeypatch.setattr(ReverseGeocoder._request.retry, "wait", wait_none())


def _geocoder(handler) -> ReverseGeocoder:
    return ReverseGeocoder(
        base_url=NOMINATIM_URL,
        user_agent="aba-directory-tests",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


class TestValidateCoordinates:
    @pytest.mark.parametrize("lat,lon", [(91, 0), (-90.5, 0), (0, 181), (0, -180.1)])
    def test_out_of_range(self, lat, lon):
        with pytest.raises(ValidationFailedError):
            validate_coordinates(lat, lon)

    def test_bounds_are_inclusive(self):
        validate_coordinates(90, -180)


class TestReverse:
    """Test address lookup."""

    @pytest.mark.asyncio
    async def test_returns_display_name(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"display_name": "Ariaria International Market, Aba, Abia State, Nigeria"}
            )

        async with _geocoder(handler) as geocoder:
            address = await geocoder.reverse(5.1066, 7.3667)

        assert address == "Ariaria International Market, Aba, Abia State, Nigeria"
        assert seen[0].url.params["lat"] == "5.1066"
        assert seen[0].url.params["format"] == "json"
        assert seen[0].headers["User-Agent"] == "aba-directory-tests"

    @pytest.mark.asyncio
    async def test_no_address_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": "Unable to geocode"})

        async with _geocoder(handler) as geocoder:
            assert await geocoder.reverse(0.0, 0.0) is None

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_succeeds(self):
        responses = iter([
            httpx.Response(429),
            httpx.Response(200, json={"display_name": "Ngwa Road, Aba"}),
        ])

        async with _geocoder(lambda request: next(responses)) as geocoder:
            assert await geocoder.reverse(5.11, 7.37) == "Ngwa Road, Aba"

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_three_attempts(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429)

        async with _geocoder(handler) as geocoder:
            with pytest.raises(GeocodingRateLimitError):
                await geocoder.reverse(5.11, 7.37)

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400)

        async with _geocoder(handler) as geocoder:
            with pytest.raises(GeocodingError):
                await geocoder.reverse(5.11, 7.37)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_network_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _geocoder(handler) as geocoder:
            with pytest.raises(GeocodingUnavailableError):
                await geocoder.reverse(5.11, 7.37)

    @pytest.mark.asyncio
    async def test_invalid_coordinates_skip_request(self):
        calls = []

        async with _geocoder(lambda request: calls.append(request)) as geocoder:
            with pytest.raises(ValidationFailedError):
                await geocoder.reverse(120.0, 7.0)

        assert calls == []


class TestCircuitBreaker:
    """Test that repeated outages open the nominatim breaker."""

    @pytest.mark.asyncio
    async def test_outage_opens_breaker_and_blocks_requests(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        async with _geocoder(handler) as geocoder:
            with pytest.raises(GeocodingUnavailableError):
                await geocoder.reverse(5.11, 7.37)
            with pytest.raises(CircuitBreakerOpenError):
                await geocoder.reverse(5.11, 7.37)

            assert get_circuit_breaker("nominatim").state == CircuitState.OPEN
            requests_before = len(calls)

            with pytest.raises(CircuitBreakerOpenError):
                await geocoder.reverse(5.11, 7.37)

        assert requests_before == 5
        assert len(calls) == requests_before
