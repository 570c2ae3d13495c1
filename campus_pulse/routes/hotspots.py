"""
hotspots.py — Hotspot detection routes.

Routes:
  GET /hotspots         — run the pipeline over recent alerts, return the
                          heuristic result, schedule AI enrichment
  GET /hotspots/latest  — the stored "latest" view (what polling clients read)

HOW THE DATA FLOWS
──────────────────
1. GET /hotspots reads alerts from the last timeWindowHours, clusters them
   (DBSCAN, epsMeters / minPoints), reverse-geocodes each centroid and probes
   nearby roads, and builds a heuristic "avoid X; take Y" recommendation.
2. The result is written to hotspot_snapshots/<id> and hotspots/latest and
   returned immediately.
3. After the response is sent, BackgroundTasks runs HotspotEnricher: hotspots
   without an alternative route are sent in chunks to the text model and the
   answers are merged back into hotspots/latest. At most one enrichment run
   per ENRICHMENT_MIN_INTERVAL_MINUTES.

TESTING
────────
  pytest tests/test_hotspot_routes.py -v

  curl "http://localhost:8000/hotspots?timeWindowHours=72&epsMeters=200&minPoints=4"
  curl http://localhost:8000/hotspots/latest
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from campus_pulse.ai.text_generation import TextGenerationChain, get_text_chain
from campus_pulse.core.database import get_db
from campus_pulse.core.rate_limit import HOTSPOTS_LIMIT, limiter
from campus_pulse.models.hotspot import HotspotResponse, LatestHotspots
from campus_pulse.services.geocoding import ReverseGeocoder, get_resolver
from campus_pulse.services.pipeline import HotspotPipeline, PipelineConfigError, default_params
from campus_pulse.services.snapshot_store import HotspotStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hotspots", tags=["hotspots"])


@router.get("", response_model=HotspotResponse)
@limiter.limit(HOTSPOTS_LIMIT)
async def get_hotspots(
    request: Request,
    background_tasks: BackgroundTasks,
    time_window_hours: Optional[int] = Query(default=None, alias="timeWindowHours", ge=1, le=720),
    eps_meters: Optional[float] = Query(default=None, alias="epsMeters", ge=1, le=5000),
    min_points: Optional[int] = Query(default=None, alias="minPoints", ge=1, le=50),
    chunk_size: Optional[int] = Query(default=None, alias="chunkSize", ge=1, le=50),
    trend_window_hours: Optional[int] = Query(default=None, alias="trendWindowHours", ge=1, le=360),
    severity_mode: Optional[Literal["bucket", "score"]] = Query(default=None, alias="severityMode"),
    db=Depends(get_db),
    resolver: ReverseGeocoder = Depends(get_resolver),
    text_chain: TextGenerationChain = Depends(get_text_chain),
):
    """
    Detect hotspots among recent alerts.

    Omitted query parameters fall back to the HOTSPOT_* settings. Returns
    422 when timeWindowHours is shorter than two trend windows and 503 when
    the database is unavailable (no alert store to read from).
    """
    try:
        params = default_params(
            time_window_hours=time_window_hours,
            eps_meters=eps_meters,
            min_points=min_points,
            chunk_size=chunk_size,
            trend_window_hours=trend_window_hours,
            severity_mode=severity_mode,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail="; ".join(e["msg"] for e in exc.errors())) from exc

    try:
        pipeline = HotspotPipeline(db, resolver=resolver)
    except PipelineConfigError as exc:
        logger.error("[hotspots] cannot run: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc

    result = await pipeline.run(params)
    response = result.response

    enricher = pipeline.build_enricher(params.chunk_size, text_chain=text_chain)
    if enricher.candidates(result.hotspots):
        background_tasks.add_task(enricher.run, result.hotspots, result.snapshot_id)
        if response.meta is not None:
            response.meta.enrichment_scheduled = True

    return response


@router.get("/latest", response_model=LatestHotspots)
async def get_latest_hotspots(db=Depends(get_db)):
    """Return hotspots/latest, including any AI enrichment merged so far."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    latest = await HotspotStore(db).read_latest()
    if latest is None:
        raise HTTPException(status_code=404, detail="No hotspots computed yet")
    return latest
