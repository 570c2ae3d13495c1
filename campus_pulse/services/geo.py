"""
geo.py — Great-circle distance helpers.
"""

from __future__ import annotations

import math
from typing import Any

# Mean Earth radius in metres.
EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres between two lat/lng pairs (degrees)."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coords(p: Any) -> tuple[float, float]:
    if isinstance(p, dict):
        return p["lat"], p["lng"]
    return p.lat, p.lng


def distance_between(p1: Any, p2: Any) -> float:
    """Distance in metres between two points (objects or dicts with lat/lng)."""
    lat1, lng1 = _coords(p1)
    lat2, lng2 = _coords(p2)
    return haversine_m(lat1, lng1, lat2, lng2)
