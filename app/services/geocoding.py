"""
Reverse geocoding.

Callers only ever see an address string: the HTTP-backed geocoder swallows
every failure and answers with the raw coordinate pair instead.
"""
import asyncio
import logging
from typing import Optional, Protocol

import httpx

from app.core.config import (
    GEOCODER_ENABLED,
    GEOCODER_TIMEOUT,
    GEOCODER_URL,
    GEOCODER_USER_AGENT,
)
from app.utils.location import format_coordinates

logger = logging.getLogger(__name__)

# Nominatim address parts, in display order
ADDRESS_PARTS = ("road", "suburb", "city", "state", "country")


class Geocoder(Protocol):
    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        ...


class CoordinateEchoGeocoder:
    """Geocoder stub: the address is the coordinate pair itself"""

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        return format_coordinates(latitude, longitude)


def format_address(payload: dict) -> Optional[str]:
    address = payload.get("address") if isinstance(payload, dict) else None
    if not isinstance(address, dict):
        return None
    parts = [str(address[key]) for key in ADDRESS_PARTS if address.get(key)]
    return ", ".join(parts) or None


class NominatimGeocoder:
    """OpenStreetMap Nominatim reverse lookup, single attempt, bounded by a timeout"""

    def __init__(
        self,
        url: str = GEOCODER_URL,
        timeout: float = GEOCODER_TIMEOUT,
        user_agent: str = GEOCODER_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

    async def _lookup(self, latitude: float, longitude: float) -> Optional[str]:
        params = {
            "lat": latitude,
            "lon": longitude,
            "format": "json",
            "accept-language": "en",
        }
        headers = {"User-Agent": self.user_agent}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.url, params=params, headers=headers)
            response.raise_for_status()
            return format_address(response.json())

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        fallback = format_coordinates(latitude, longitude)
        try:
            address = await asyncio.wait_for(self._lookup(latitude, longitude), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Geocoding timed out after {self.timeout}s for ({fallback})")
            return fallback
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Geocoding failed for ({fallback}): {e}")
            return fallback
        except Exception:
            logger.exception(f"Unexpected geocoding error for ({fallback})")
            return fallback

        if not address:
            logger.warning(f"Geocoder returned no address for ({fallback})")
            return fallback
        return address


def get_geocoder() -> Geocoder:
    """FastAPI dependency"""
    if GEOCODER_ENABLED:
        return NominatimGeocoder()
    return CoordinateEchoGeocoder()
