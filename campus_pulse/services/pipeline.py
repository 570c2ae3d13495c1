"""
pipeline.py — One hotspot detection run, end to end.

    alerts (Mongo) → dbscan → aggregate_clusters (geocode + probe + heuristic)
                   → snapshot + latest writes → HotspotResponse

The synchronous part stops here. AI enrichment is handed back to the caller
as `build_enricher(...)` so the route can schedule it after the response has
been sent; client latency is bounded by clustering + geocoding only.

USAGE
─────
    pipeline = HotspotPipeline(db, resolver=reverse_geocoder)
    result = await pipeline.run(HotspotParams(eps_meters=50, min_points=3))
    result.response.hotspots
    result.snapshot_id
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

from campus_pulse.ai.text_generation import TextGenerationChain, build_text_generation_chain
from campus_pulse.core.config import settings
from campus_pulse.models.hotspot import Hotspot, HotspotParams, HotspotResponse, RunMeta
from campus_pulse.services.aggregator import aggregate_clusters
from campus_pulse.services.alert_store import fetch_recent_alerts
from campus_pulse.services.clustering import dbscan
from campus_pulse.services.enrichment import HotspotEnricher
from campus_pulse.services.road_prober import Resolver
from campus_pulse.services.snapshot_store import Clock, EnrichmentRateGuard, HotspotStore, utc_now

logger = logging.getLogger(__name__)


class PipelineConfigError(RuntimeError):
    """A required collaborator (the Alert Store) is missing; the run cannot start."""


@dataclass
class PipelineResult:
    response: HotspotResponse
    hotspots: list[Hotspot] = field(default_factory=list)
    snapshot_id: Optional[str] = None


def default_params(**overrides: Any) -> HotspotParams:
    """HotspotParams from settings, with explicit (non-None) overrides applied."""
    base = {
        "time_window_hours": settings.hotspot_time_window_hours,
        "eps_meters": settings.hotspot_eps_meters,
        "min_points": settings.hotspot_min_points,
        "chunk_size": settings.hotspot_chunk_size,
        "trend_window_hours": settings.hotspot_trend_window_hours,
        "severity_mode": settings.severity_mode,
    }
    base.update({k: v for k, v in overrides.items() if v is not None})
    return HotspotParams(**base)


class HotspotPipeline:
    def __init__(self, db: Any, resolver: Resolver, clock: Clock = utc_now) -> None:
        if db is None:
            raise PipelineConfigError("Alert store unavailable")
        self.db = db
        self.resolver = resolver
        self.clock = clock
        self.store = HotspotStore(db)

    async def run(self, params: HotspotParams) -> PipelineResult:
        now = self.clock()
        now_ms = int(now.timestamp() * 1000)
        window_start = now - timedelta(hours=params.time_window_hours)
        logger.info(
            "[hotspots] params: timeWindowHours=%s, epsMeters=%s, minPoints=%s",
            params.time_window_hours, params.eps_meters, params.min_points,
        )

        total_alerts, points = await fetch_recent_alerts(self.db, window_start, now)
        meta = RunMeta(params=params, total_alerts=total_alerts, generated_at=now.isoformat())
        if not points:
            return PipelineResult(response=HotspotResponse(hotspots=[], meta=meta))

        clustering = dbscan(points, params.eps_meters, params.min_points)
        logger.info(
            "[hotspots] %d points → %d clusters, %d noise",
            len(points), len(clustering.clusters), len(clustering.noise),
        )

        hotspots = await aggregate_clusters(clustering.clusters, self.resolver, params, now_ms)

        snapshot_id = None
        if hotspots:
            snapshot_id = await self.store.write_snapshot(hotspots, params, now)
        # Latest is overwritten even with zero hotspots so stale ones disappear.
        await self.store.write_latest(hotspots, params, snapshot_id, now)

        meta = meta.model_copy(update={
            "snapshot_id": snapshot_id,
            "total_hotspots": len(hotspots),
            "noise_points": len(clustering.noise),
        })
        return PipelineResult(
            response=HotspotResponse(hotspots=hotspots, meta=meta),
            hotspots=hotspots,
            snapshot_id=snapshot_id,
        )

    def build_enricher(
        self,
        chunk_size: int,
        text_chain: Optional[TextGenerationChain] = None,
    ) -> HotspotEnricher:
        guard = EnrichmentRateGuard(
            self.store,
            interval=timedelta(minutes=settings.enrichment_min_interval_minutes),
            clock=self.clock,
        )
        return HotspotEnricher(
            store=self.store,
            text_chain=text_chain or build_text_generation_chain(),
            guard=guard,
            route_types=settings.ai_route_types,
            chunk_size=chunk_size,
        )
