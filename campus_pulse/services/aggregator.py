"""
aggregator.py — Turn DBSCAN clusters into Hotspot records.

Per cluster:
  1. Pure statistics — centroid, counts, dominant type, trend, severity,
     first/last seen.
  2. One reverse geocode on the centroid → areaName / primaryRoad.
  3. Road-variant probing around the centroid → nearbyRoadVariants.
  4. Heuristic recommendation + summary label.

Steps 2–4 run strictly in sequence for one cluster; different clusters are
processed concurrently with asyncio.gather.

Trend score
───────────
    trend_score = (count_now - count_prev) / count_prev     if count_prev > 0
                = 1.0 if count_now > 0 else 0.0             if count_prev == 0

This is a growth ratio relative to the previous window, not a symmetric
percentage: halving gives -0.5, doubling gives +1.0, and growth is unbounded
above. No clamping is applied.

Severity
────────
Two modes (settings.severity_mode / HotspotParams.severity_mode); both
produce the same label set {low, moderate, severe}:
  bucket — label from member count (>=15 severe, >=8 moderate);
           severity_score = mean reported severity.
  score  — severity_score = mean severity × count × (1 + max(trend, 0));
           label from the score (>=30 severe, >=12 moderate).
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Sequence

from campus_pulse.models.alert import AlertPoint
from campus_pulse.models.geocode import GeocodeResult
from campus_pulse.models.hotspot import Hotspot, HotspotParams, LatLng, SeverityLabel
from campus_pulse.services.recommendations import heuristic_recommendation, summary_label
from campus_pulse.services.road_prober import (
    Resolver,
    extract_street_from_display_name,
    find_nearby_road_variants,
)

logger = logging.getLogger(__name__)

_HOUR_MS = 3_600_000

# (minimum, label), checked top-down
_COUNT_BUCKETS: list[tuple[float, SeverityLabel]] = [(15, "severe"), (8, "moderate"), (0, "low")]
_SCORE_BUCKETS: list[tuple[float, SeverityLabel]] = [(30.0, "severe"), (12.0, "moderate"), (0.0, "low")]


# ── Pure statistics ───────────────────────────────────────────────────────────

def centroid_of(points: Sequence[AlertPoint]) -> LatLng:
    n = len(points)
    return LatLng(
        lat=sum(p.lat for p in points) / n,
        lng=sum(p.lng for p in points) / n,
    )


def dominant_type(points: Sequence[AlertPoint]) -> str:
    """Most frequent alert type; ties go to the type seen first."""
    counts = Counter(p.type for p in points)
    if not counts:
        return "unknown"
    # Counter preserves insertion order and max() keeps the first maximum.
    return max(counts, key=lambda t: counts[t])


def trend_score(count_now: int, count_prev: int) -> float:
    if count_prev == 0:
        return 1.0 if count_now > 0 else 0.0
    return (count_now - count_prev) / count_prev


def window_counts(points: Sequence[AlertPoint], now_ms: int, window_hours: int) -> tuple[int, int]:
    """(members in [now-w, now], members in [now-2w, now-w))."""
    window_ms = window_hours * _HOUR_MS
    current_start = now_ms - window_ms
    prev_start = now_ms - 2 * window_ms
    count_now = sum(1 for p in points if p.created_at_ms >= current_start)
    count_prev = sum(1 for p in points if prev_start <= p.created_at_ms < current_start)
    return count_now, count_prev


def _label(value: float, buckets: list[tuple[float, SeverityLabel]]) -> SeverityLabel:
    for minimum, label in buckets:
        if value >= minimum:
            return label
    return "low"


def compute_severity(
    points: Sequence[AlertPoint],
    trend: float,
    mode: str = "bucket",
) -> tuple[SeverityLabel, float]:
    count = len(points)
    mean_severity = sum(p.severity for p in points) / count if count else 0.0

    if mode == "score":
        score = round(mean_severity * count * (1 + max(trend, 0.0)), 2)
        return _label(score, _SCORE_BUCKETS), score

    return _label(count, _COUNT_BUCKETS), round(mean_severity, 1)


def iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


# ── Per-cluster build ─────────────────────────────────────────────────────────

async def _safe_resolve(resolver: Resolver, centroid: LatLng) -> Optional[GeocodeResult]:
    try:
        return await resolver.resolve(centroid.lat, centroid.lng)
    except Exception as exc:
        logger.warning("Centroid geocode failed (%s): %s", centroid, exc)
        return None


async def build_hotspot(
    index: int,
    cluster: Sequence[AlertPoint],
    resolver: Resolver,
    params: HotspotParams,
    now_ms: int,
) -> Hotspot:
    count = len(cluster)
    centroid = centroid_of(cluster)
    count_now, count_prev = window_counts(cluster, now_ms, params.trend_window_hours)
    trend = trend_score(count_now, count_prev)
    severity, severity_score = compute_severity(cluster, trend, params.severity_mode)
    sample_location_name = next((p.location_name for p in cluster if p.location_name), None)
    timestamps = [p.created_at_ms for p in cluster]

    resolved = await _safe_resolve(resolver, centroid)
    area_name = (resolved.display_name if resolved else None) or sample_location_name
    primary_road = (resolved.road if resolved else None) or extract_street_from_display_name(area_name)
    neighbourhood = resolved.neighbourhood if resolved else None

    try:
        variants = await find_nearby_road_variants(resolver, centroid.lat, centroid.lng, primary_road)
    except Exception as exc:
        logger.warning("Road-variant probing failed for cluster %d: %s", index, exc)
        variants = []

    rec = heuristic_recommendation(
        primary_road=primary_road,
        area_name=area_name,
        variants=variants,
        centroid=centroid,
        neighbourhood=neighbourhood,
        sample_location_name=sample_location_name,
    )

    return Hotspot(
        id=f"hotspot-{index}",
        centroid=centroid,
        count=count,
        count_now=count_now,
        count_prev=count_prev,
        trend_score=trend,
        severity=severity,
        severity_score=severity_score,
        sample_type=dominant_type(cluster),
        sample_location_name=sample_location_name,
        member_ids=[p.id for p in cluster],
        area_name=area_name,
        primary_road=primary_road,
        nearby_road_variants=variants,
        recommendation=rec.recommendation,
        alternative_route=rec.alternative_route,
        needs_ai=rec.needs_ai,
        summary=summary_label(area_name, centroid, count),
        summary_visible=True,
        first_seen=iso_from_ms(min(timestamps)),
        last_seen=iso_from_ms(max(timestamps)),
    )


async def aggregate_clusters(
    clusters: Sequence[Sequence[AlertPoint]],
    resolver: Resolver,
    params: HotspotParams,
    now_ms: int,
) -> list[Hotspot]:
    """Build every hotspot concurrently; output order follows cluster order."""
    return list(await asyncio.gather(*(
        build_hotspot(i, cluster, resolver, params, now_ms)
        for i, cluster in enumerate(clusters)
        if cluster
    )))
