"""
recommendations.py — Heuristic "avoid X; take Y" guidance for a hotspot.

Deterministic and fast (pure computation, no I/O), so every hotspot carries
a recommendation in the synchronous response. Hotspots where no alternate
road was found are flagged needs_ai=True; the background enrichment step
(services/enrichment.py) asks a text model for a concrete alternative.

USAGE
─────
    rec = heuristic_recommendation(
        primary_road="Ring Road", area_name="Ring Road, Mona",
        variants=["Hope Road"], centroid=LatLng(lat=18.0, lng=-76.7),
    )
    rec.recommendation    → "Avoid Ring Road; take Hope Road instead."
    rec.alternative_route → "Hope Road"
    rec.needs_ai          → False
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from campus_pulse.models.hotspot import LatLng

# Area names longer than this are replaced with something shorter in messages.
_MAX_AREA_LEN = 60


@dataclass(frozen=True)
class Recommendation:
    recommendation: str
    alternative_route: Optional[str]
    needs_ai: bool


def format_coords(centroid: LatLng) -> str:
    return f"{centroid.lat:.4f},{centroid.lng:.4f}"


def pick_alternate(variants: list[str], primary_road: Optional[str]) -> Optional[str]:
    """First variant that is not the primary road (case-insensitive)."""
    primary = (primary_road or "").strip().lower()
    for v in variants:
        if v and v.strip() and v.strip().lower() != primary:
            return v.strip()
    return None


def short_area_name(
    area_name: Optional[str],
    centroid: LatLng,
    neighbourhood: Optional[str] = None,
    sample_location_name: Optional[str] = None,
) -> str:
    if area_name and len(area_name) <= _MAX_AREA_LEN:
        return area_name
    return neighbourhood or sample_location_name or f"coords {format_coords(centroid)}"


def heuristic_recommendation(
    primary_road: Optional[str],
    area_name: Optional[str],
    variants: list[str],
    centroid: LatLng,
    neighbourhood: Optional[str] = None,
    sample_location_name: Optional[str] = None,
) -> Recommendation:
    alternate = pick_alternate(variants, primary_road)

    if alternate:
        if primary_road:
            target = primary_road
        elif area_name:
            target = short_area_name(area_name, centroid, neighbourhood, sample_location_name)
        else:
            target = "this area"
        return Recommendation(
            recommendation=f"Avoid {target}; take {alternate} instead.",
            alternative_route=alternate,
            needs_ai=False,
        )

    target = short_area_name(area_name, centroid, neighbourhood, sample_location_name)
    return Recommendation(
        recommendation=f"Avoid {target}; choose a nearby main road.",
        alternative_route=None,
        needs_ai=True,
    )


def summary_label(area_name: Optional[str], centroid: LatLng, count: int) -> str:
    place = area_name or f"{centroid.lat:.4f}, {centroid.lng:.4f}"
    return f"{place} reported {count} recent incident(s)"
