"""
geocode.py — Reverse geocoding endpoint for the reporting UI.

Route:
  GET /api/reverse-geocode?lat=..&lng=..  — Google first, Nominatim fallback

Used by the incident form to show a place name before the alert is sent.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from campus_pulse.core.rate_limit import GEOCODE_LIMIT, limiter
from campus_pulse.models.geocode import GeocodeResult
from campus_pulse.services.geocoding import ReverseGeocoder, get_resolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["geocode"])


@router.get("/reverse-geocode", response_model=GeocodeResult)
@limiter.limit(GEOCODE_LIMIT)
async def reverse_geocode(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    resolver: ReverseGeocoder = Depends(get_resolver),
):
    result = await resolver.resolve(lat, lng)
    if result is None:
        raise HTTPException(status_code=502, detail="Reverse geocode failed")
    return result
