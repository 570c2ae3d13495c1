"""
road_prober.py — Discover alternate road names around a hotspot centroid.

A handful of reverse geocodes at small offsets (~60–120 m depending on
latitude) around the centroid. Whatever road, street-like name or
neighbourhood comes back and differs from the primary road is a candidate
alternative for the "avoid X; take Y" recommendation.

Probes run one after another so the Nominatim fallback is not hammered,
and stop once enough distinct names are collected.
"""

import logging
import re
from typing import Optional, Protocol

from campus_pulse.models.geocode import GeocodeResult

logger = logging.getLogger(__name__)

# (dLat, dLng) in degrees.
PROBE_OFFSETS: list[tuple[float, float]] = [
    (0.0006, 0.0),
    (-0.0006, 0.0),
    (0.0, 0.0006),
    (0.0, -0.0006),
    (0.0006, 0.0003),
    (-0.0006, -0.0003),
]

MAX_VARIANTS = 3

_NUMBERED_STREET = re.compile(r"^\s*\d+\s+([^,]+)")
_STREET_SUFFIX = re.compile(
    r"([A-Za-z0-9\s]+(?:Drive|Dr|Road|Rd|Street|St|Avenue|Ave|Lane|Ln|Alley|Ally"
    r"|Court|Ct|Close|Boulevard|Blvd)\b)",
    re.IGNORECASE,
)


class Resolver(Protocol):
    async def resolve(self, lat: float, lng: float) -> Optional[GeocodeResult]: ...


def extract_street_from_display_name(display_name: Optional[str]) -> Optional[str]:
    """
    Pull a street name out of a free-form address.

    "12 Ring Road, Mona, Kingston"         → "Ring Road"
    "Gate House, Hope Boulevard, Kingston" → "Hope Boulevard"
    """
    if not display_name or not isinstance(display_name, str):
        return None
    numbered = _NUMBERED_STREET.match(display_name)
    if numbered and numbered.group(1).strip():
        return numbered.group(1).strip()
    suffixed = _STREET_SUFFIX.search(display_name)
    if suffixed:
        return suffixed.group(1).strip()
    return None


def candidate_name(result: GeocodeResult) -> Optional[str]:
    return (
        result.road
        or extract_street_from_display_name(result.display_name)
        or result.neighbourhood
        or None
    )


async def find_nearby_road_variants(
    resolver: Resolver,
    lat: float,
    lng: float,
    primary_road: Optional[str] = None,
    max_variants: int = MAX_VARIANTS,
) -> list[str]:
    """
    Return up to max_variants distinct names found near (lat, lng).

    Names equal to primary_road (case-insensitive) are skipped. A failing
    probe is ignored; partial results are normal.
    """
    primary = (primary_road or "").strip().lower()
    found: list[str] = []
    seen: set[str] = set()

    for d_lat, d_lng in PROBE_OFFSETS:
        try:
            result = await resolver.resolve(lat + d_lat, lng + d_lng)
        except Exception as exc:
            logger.debug("Road probe at offset (%s, %s) failed: %s", d_lat, d_lng, exc)
            continue
        if result is None:
            continue

        candidate = candidate_name(result)
        if not candidate or not candidate.strip():
            continue
        key = candidate.strip().lower()
        if key == primary or key in seen:
            continue

        seen.add(key)
        found.append(candidate.strip())
        if len(found) >= max_variants:
            break

    return found
