"""
geocoding.py — Reverse geocoding with an ordered provider chain.

Providers:
  - GoogleGeocodingProvider   → Google Geocoding API (needs GOOGLE_MAPS_API_KEY)
  - NominatimGeocodingProvider → OpenStreetMap Nominatim (no key, needs User-Agent)

ReverseGeocoder tries each enabled provider in order and returns the first
result. Providers never raise: HTTP errors, non-OK statuses and malformed
JSON are logged and reported as None, which the caller treats as
"unresolved". A None from the resolver is normal (rate limits, ocean,
wilderness), not an error.

Nominatim asks for at most one request per second, so successful lookups
are memoised in a TTL cache keyed by the rounded coordinate.

Adding a provider: subclass GeocodingProvider, implement reverse(), and
append it in build_reverse_geocoder().
"""

import logging
import re
from typing import Any, Optional

import httpx
from cachetools import TTLCache

from campus_pulse.core.config import settings
from campus_pulse.models.geocode import GeocodeResult

logger = logging.getLogger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

# Result types tried in order when Google returns several candidates.
GOOGLE_PREFERRED_TYPES = [
    "street_address", "premise", "subpremise", "route",
    "establishment", "point_of_interest", "neighborhood",
    "locality", "postal_town", "sublocality",
]

# Address fields tried in order when a displayName / road says "Unnamed".
_FALLBACK_LOCALITY_FIELDS = ("village", "town", "hamlet", "suburb", "neighbourhood", "county")

_UNNAMED = re.compile(r"unnamed", re.IGNORECASE)
_UNNAMED_ROAD = re.compile(r"unnamed road", re.IGNORECASE)


def first_of(mapping: dict[str, Any], *keys: str) -> Optional[str]:
    """First non-empty string value among keys."""
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def fallback_locality(address: dict[str, Any], default: Optional[str] = None) -> str:
    return first_of(address, *_FALLBACK_LOCALITY_FIELDS) or default or settings.geocode_fallback_locality


def sanitize_unnamed(
    display_name: Optional[str],
    road: Optional[str],
    address: Optional[dict[str, Any]] = None,
    default: Optional[str] = None,
) -> tuple[Optional[str], Optional[str]]:
    """
    Replace "Unnamed Road" placeholders with a real nearby place name.

    Returns the (display_name, road) pair with placeholders substituted by the
    first of village/town/hamlet/suburb/neighbourhood/county in the address,
    else the configured fallback locality.
    """
    address = address or {}
    if isinstance(display_name, str) and _UNNAMED.search(display_name):
        replacement = fallback_locality(address, default)
        display_name = _UNNAMED_ROAD.sub(replacement, display_name)
        display_name = _UNNAMED.sub(replacement, display_name)
    if isinstance(road, str) and _UNNAMED.search(road):
        road = fallback_locality(address, default)
    return display_name, road


def parse_google_components(components: list[dict[str, Any]]) -> dict[str, str]:
    """Flatten Google address_components into {type: long_name}; first wins."""
    flat: dict[str, str] = {}
    for comp in components or []:
        for t in comp.get("types") or []:
            if t not in flat and comp.get("long_name"):
                flat[t] = comp["long_name"]
    return flat


def choose_google_result(results: list[dict[str, Any]]) -> dict[str, Any]:
    for t in GOOGLE_PREFERRED_TYPES:
        for r in results:
            if t in (r.get("types") or []):
                return r
    return results[0]


class GeocodingProvider:
    """A single reverse-geocoding backend. reverse() returns a result or None."""

    name = "base"

    @property
    def enabled(self) -> bool:
        return True

    async def reverse(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        raise NotImplementedError


class GoogleGeocodingProvider(GeocodingProvider):
    name = "google"

    def __init__(
        self,
        api_key: str,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def reverse(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        if not self.enabled:
            return None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(
                    GOOGLE_GEOCODE_URL,
                    params={"latlng": f"{lat},{lng}", "key": self.api_key},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                logger.warning(
                    "Google geocode error: %s — %s",
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                return None
            except Exception as exc:
                logger.warning("Google geocode request failed: %s", exc)
                return None

        return self.parse(data)

    def parse(self, data: Any) -> Optional[GeocodeResult]:
        if not isinstance(data, dict):
            return None
        results = data.get("results")
        if data.get("status") != "OK" or not isinstance(results, list) or not results:
            logger.debug("Google geocode returned no usable result (status=%s)", data.get("status"))
            return None

        chosen = choose_google_result(results)
        comps = parse_google_components(chosen.get("address_components") or [])
        road = first_of(comps, "route", "street_address", "street")
        neighbourhood = first_of(comps, "neighborhood", "sublocality", "locality", "postal_town")
        locality = first_of(comps, "locality", "administrative_area_level_2", "administrative_area_level_1")
        display_name, road = sanitize_unnamed(chosen.get("formatted_address"), road, comps)

        return GeocodeResult(
            provider=self.name,
            display_name=display_name,
            road=road,
            neighbourhood=neighbourhood,
            locality=locality,
            raw=chosen,
        )


class NominatimGeocodingProvider(GeocodingProvider):
    name = "nominatim"

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: str = "CampusPulse/1.0",
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport

    async def reverse(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}/reverse",
                    params={"format": "jsonv2", "lat": lat, "lon": lng, "addressdetails": 1},
                    headers={"User-Agent": self.user_agent},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                logger.warning(
                    "Nominatim error: %s — %s",
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                return None
            except Exception as exc:
                logger.warning("Nominatim request failed: %s", exc)
                return None

        return self.parse(data)

    def parse(self, data: Any) -> Optional[GeocodeResult]:
        if not isinstance(data, dict):
            return None
        address = data.get("address")
        if not isinstance(address, dict):
            address = {}
        if not address and not data.get("display_name"):
            # e.g. {"error": "Unable to geocode"} over open water
            return None

        road = first_of(address, "road", "residential", "cycleway", "pedestrian")
        neighbourhood = first_of(address, "neighbourhood", "suburb", "village", "hamlet", "town", "city")
        locality = first_of(address, "city", "county", "state")
        display_name = data.get("display_name")
        if not display_name and neighbourhood:
            display_name = f"{neighbourhood}, {locality or ''}".strip().rstrip(",")
        display_name, road = sanitize_unnamed(display_name, road, address)

        return GeocodeResult(
            provider=self.name,
            display_name=display_name,
            road=road,
            neighbourhood=neighbourhood,
            locality=locality,
            raw=data,
        )


class ReverseGeocoder:
    """
    Ordered provider chain with a small result cache.

    resolve() never raises; it returns None when every provider fails.
    """

    def __init__(
        self,
        providers: list[GeocodingProvider],
        cache_ttl: int = 3600,
        cache_size: int = 2048,
    ) -> None:
        self.providers = providers
        self._cache: TTLCache | None = (
            TTLCache(maxsize=cache_size, ttl=cache_ttl) if cache_ttl > 0 else None
        )

    async def resolve(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        cache_key = f"{lat:.6f},{lng:.6f}"
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        for provider in self.providers:
            if not provider.enabled:
                continue
            try:
                result = await provider.reverse(lat, lng)
            except Exception as exc:
                logger.warning("Geocoding provider %s raised: %s", provider.name, exc)
                continue
            if result is not None:
                if self._cache is not None:
                    self._cache[cache_key] = result
                return result

        logger.info("Reverse geocode unresolved for %.5f,%.5f", lat, lng)
        return None


def build_reverse_geocoder() -> ReverseGeocoder:
    """Google first (when a key is configured), Nominatim as fallback."""
    timeout = settings.geocode_timeout_seconds
    providers: list[GeocodingProvider] = [
        GoogleGeocodingProvider(settings.google_maps_api_key, timeout=timeout),
        NominatimGeocodingProvider(
            base_url=settings.nominatim_base_url,
            user_agent=settings.nominatim_user_agent,
            timeout=timeout,
        ),
    ]
    if not settings.google_maps_api_key:
        logger.warning(
            "GOOGLE_MAPS_API_KEY not set — reverse geocoding will use Nominatim only."
        )
    return ReverseGeocoder(providers, cache_ttl=settings.geocode_cache_ttl_seconds)


# Module-level singleton
reverse_geocoder = build_reverse_geocoder()


def get_resolver() -> ReverseGeocoder:
    """FastAPI dependency — tests override this with a fake provider chain."""
    return reverse_geocoder
