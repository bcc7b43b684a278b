"""Geocoding via the Google Geocoding API."""
import httpx
import logging
import time
from typing import Any, Dict, Optional

from monitoring import geocoding_duration_histogram

logger = logging.getLogger(__name__)

# Development coordinates are scattered around New York
MOCK_BASE_LAT = 40.7128
MOCK_BASE_LNG = -74.0060


def mock_coordinates(address: str) -> Dict[str, Any]:
    """Deterministic coordinates for an address, for running without an API key."""
    h = 0
    for char in address:
        h = (((h << 5) - h) + ord(char)) & 0xFFFFFFFF
    offset = (h % 100) / 1000
    return {
        "lat": MOCK_BASE_LAT + offset,
        "lng": MOCK_BASE_LNG + offset,
        "formatted_address": address
    }


class GeocodingClient:
    """Client for the external geocoding provider."""

    def __init__(self, http_client: httpx.AsyncClient, api_key: Optional[str], url: str):
        """
        Initialize geocoding client.

        Args:
            http_client: Async HTTP client
            api_key: Google Maps API key, None to use development coordinates
            url: Geocoding endpoint
        """
        self.http_client = http_client
        self.api_key = api_key
        self.url = url

    async def geocode(self, address: str) -> Optional[Dict[str, Any]]:
        """
        Resolve an address to coordinates.

        Args:
            address: Free-form postal address

        Returns:
            Dict with lat, lng and formatted_address, or None if the provider
            failed or found nothing
        """
        if not self.api_key:
            return mock_coordinates(address)

        # HTTPXClientInstrumentor already creates spans for HTTP calls
        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.get(
                self.url,
                params={"address": address, "key": self.api_key}
            )
            status_code = response.status_code
            if response.status_code != 200:
                status = "error"
                logger.warning("Geocoding service returned non-200 status", extra={
                    "status_code": response.status_code
                })
                return None

            results = response.json().get("results", [])
            if not results:
                status = "not_found"
                logger.info("Geocoding found no match for address")
                return None

            location = results[0]["geometry"]["location"]
            return {
                "lat": location["lat"],
                "lng": location["lng"],
                "formatted_address": results[0].get("formatted_address", address)
            }
        except (httpx.HTTPError, ValueError, KeyError) as e:
            status = "error"
            status_code = 0  # Connection failure or malformed payload
            logger.error("Failed to geocode address", extra={
                "error": str(e)
            })
            return None
        finally:
            duration = time.time() - start_time
            geocoding_duration_histogram.record(
                duration,
                {
                    "status": status,
                    "status_code": str(status_code) if status_code else "0"
                }
            )
