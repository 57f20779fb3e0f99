"""Reverse geocoding via the Nominatim (OpenStreetMap) API.

Turns a latitude/longitude fix captured by the agent app into a readable
address stored on the business as ``detected_address``.

API Reference: https://nominatim.org/release-docs/develop/api/Reverse/
"""

from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config.settings import get_settings
from src.core.circuit_breaker import get_circuit_breaker
from src.core.exceptions import (
    GeocodingError,
    GeocodingRateLimitError,
    GeocodingTimeoutError,
    GeocodingUnavailableError,
    ValidationFailedError,
)
from src.monitoring.metrics import track_geocoding_request

logger = structlog.get_logger(__name__)

_nominatim_breaker = get_circuit_breaker("nominatim", failure_threshold=5, recovery_timeout=60)


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise ValidationFailedError for coordinates outside the valid ranges."""
    if not -90.0 <= latitude <= 90.0:
        raise ValidationFailedError("Latitude must be between -90 and 90", field="latitude")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationFailedError("Longitude must be between -180 and 180", field="longitude")


class ReverseGeocoder:
    """Async Nominatim client.

    Example:
        async with ReverseGeocoder() as geocoder:
            address = await geocoder.reverse(5.1066, 7.3667)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the geocoder.

        Args:
            base_url: Reverse endpoint URL. Defaults to settings.nominatim_url.
            user_agent: Identifying User-Agent, required by Nominatim's usage policy.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        settings = get_settings()
        self._base_url = base_url or settings.nominatim_url
        self._user_agent = user_agent or settings.geocoder_user_agent
        self._timeout = timeout or settings.geocoder_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ReverseGeocoder":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={"User-Agent": self._user_agent, "Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(
            (GeocodingRateLimitError, GeocodingTimeoutError, GeocodingUnavailableError)
        ),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        """Call the reverse endpoint with circuit breaker protection and retries.

        Raises:
            CircuitBreakerOpenError: When the breaker is open.
            GeocodingRateLimitError: On HTTP 429.
            GeocodingTimeoutError: On request timeout.
            GeocodingUnavailableError: On 5xx or network failure.
            GeocodingError: On other API errors.
        """
        _nominatim_breaker.check()
        client = await self._ensure_client()

        try:
            with track_geocoding_request():
                response = await client.get(self._base_url, params=params)

                if response.status_code == 429:
                    await _nominatim_breaker.record_failure()
                    logger.warning("nominatim_rate_limited")
                    raise GeocodingRateLimitError("Rate limited by Nominatim")
                elif response.status_code >= 500:
                    await _nominatim_breaker.record_failure()
                    raise GeocodingUnavailableError(
                        f"Nominatim unavailable ({response.status_code})",
                        {"status_code": response.status_code},
                    )
                elif response.status_code >= 400:
                    logger.error("nominatim_api_error", status_code=response.status_code)
                    raise GeocodingError(
                        f"Nominatim error {response.status_code}",
                        {"status_code": response.status_code},
                    )

                await _nominatim_breaker.record_success()
                return response.json() if response.content else {}

        except httpx.TimeoutException as e:
            await _nominatim_breaker.record_failure()
            logger.error("nominatim_timeout", error=str(e))
            raise GeocodingTimeoutError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            await _nominatim_breaker.record_failure()
            logger.error("nominatim_request_error", error=str(e))
            raise GeocodingUnavailableError(f"Request failed: {e}")

    async def reverse(self, latitude: float, longitude: float) -> Optional[str]:
        """
        Resolve coordinates to a display address.

        Returns:
            Nominatim's ``display_name``, or None when the point has no address.
        """
        validate_coordinates(latitude, longitude)
        data = await self._request(
            {
                "format": "json",
                "lat": latitude,
                "lon": longitude,
                "zoom": 18,
                "addressdetails": 1,
            }
        )
        address = data.get("display_name") if isinstance(data, dict) else None
        logger.info(
            "reverse_geocode_completed",
            latitude=latitude,
            longitude=longitude,
            found=address is not None,
        )
        return address


# =============================================================================
# Singleton
# =============================================================================

_geocoder_instance: Optional[ReverseGeocoder] = None


def get_reverse_geocoder() -> ReverseGeocoder:
    """Get or create the shared ReverseGeocoder."""
    global _geocoder_instance
    if _geocoder_instance is None:
        _geocoder_instance = ReverseGeocoder()
    return _geocoder_instance


async def reset_reverse_geocoder() -> None:
    """Close and drop the shared geocoder (shutdown and tests)."""
    global _geocoder_instance
    if _geocoder_instance is not None:
        await _geocoder_instance.close()
    _geocoder_instance = None
