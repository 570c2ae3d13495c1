"""
alerts.py — Incident submission.

Route:
  POST /alerts — store a (optionally geotagged) alert with a resolved place name

The place name is resolved once here and stored as locationName, so the
hotspot pipeline can fall back to it when a centroid does not geocode.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from campus_pulse.core.config import settings
from campus_pulse.core.database import get_db
from campus_pulse.core.rate_limit import ALERTS_LIMIT, limiter
from campus_pulse.models.alert import CreateAlertRequest, CreateAlertResponse
from campus_pulse.services.alert_store import insert_alert
from campus_pulse.services.geocoding import ReverseGeocoder, get_resolver
from campus_pulse.services.snapshot_store import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])

UNKNOWN_LOCATION = "Unknown Location"


@router.post("", response_model=CreateAlertResponse, status_code=201)
@limiter.limit(ALERTS_LIMIT)
async def create_alert(
    request: Request,
    payload: CreateAlertRequest,
    db=Depends(get_db),
    resolver: ReverseGeocoder = Depends(get_resolver),
):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    location_name = None
    if payload.lat is not None and payload.lng is not None:
        resolved = await resolver.resolve(payload.lat, payload.lng)
        if resolved is not None:
            location_name = resolved.display_name
    location_name = location_name or UNKNOWN_LOCATION

    try:
        alert_id = await insert_alert(db, payload, location_name, utc_now(), settings.alert_ttl_days)
    except Exception as exc:
        logger.error("Alert insert failed: %s", exc)
        raise HTTPException(status_code=500, detail="Could not store alert") from exc

    logger.info("Stored alert %s (%s) at %s", alert_id, payload.type, location_name)
    return CreateAlertResponse(ok=True, id=alert_id, location_name=location_name)
