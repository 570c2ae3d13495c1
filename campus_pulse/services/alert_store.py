"""
alert_store.py — Read and write incident alerts in the `alerts` collection.

Stored alert document:

  {
    "type": "threat",
    "location": { "lat": 18.0051, "lng": -76.7468 } | null,
    "locationName": "Ring Road, Kingston",
    "severity": 1,
    "createdAt": ISODate,
    "expiresAt": ISODate,        ← createdAt + ALERT_TTL_DAYS
    "status": "active",
    "reportedBy": "uid-123" | null
  }

Older documents may carry the timestamp as `timestamp` or `time`, as epoch
milliseconds or an ISO string. fetch_recent_alerts() queries every one of
those shapes and to_alert_point() reads them back in the same precedence
(createdAt, then timestamp, then time).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from campus_pulse.core.database import ALERTS_COLLECTION
from campus_pulse.models.alert import AlertPoint, CreateAlertRequest

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("createdAt", "timestamp", "time")


def _to_ms(value: Any, default_ms: int) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return int(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default_ms
        return _to_ms(parsed, default_ms)
    return default_ms


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def created_at_ms(doc: dict[str, Any], now_ms: int) -> int:
    ts = doc.get("createdAt") or doc.get("timestamp") or doc.get("time")
    return _to_ms(ts, now_ms)


def window_query(window_start: datetime) -> dict[str, Any]:
    """Match any timestamp field, stored as a date, epoch ms or ISO string."""
    start = window_start if window_start.tzinfo else window_start.replace(tzinfo=timezone.utc)
    start_ms = int(start.timestamp() * 1000)
    # second-precision prefix sorts before every ISO string at or after start
    start_iso = start.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    return {
        "$or": [
            {field: {"$gte": bound}}
            for field in TIMESTAMP_FIELDS
            for bound in (start, start_ms, start_iso)
        ]
    }


def to_alert_point(doc: dict[str, Any], now_ms: int) -> Optional[AlertPoint]:
    """Project a stored alert onto an AlertPoint; None if it has no usable location."""
    location = doc.get("location")
    if not isinstance(location, dict):
        return None
    lat = _finite(location.get("lat"))
    lng = _finite(location.get("lng"))
    if lat is None or lng is None:
        return None

    severity = _finite(doc.get("severity"))

    return AlertPoint(
        id=str(doc.get("_id", doc.get("id", ""))),
        lat=lat,
        lng=lng,
        type=doc.get("type") or "unknown",
        severity=severity if severity else 1.0,
        created_at_ms=created_at_ms(doc, now_ms),
        location_name=doc.get("locationName") or None,
    )


async def fetch_recent_alerts(db: Any, window_start: datetime, now: datetime) -> tuple[int, list[AlertPoint]]:
    """
    Alerts created at or after window_start.

    The query over-matches (a legacy document can hit on a field that
    created_at_ms() does not read first), so documents are filtered again
    on the timestamp that clustering will actually use.

    Returns (total documents in the window, geolocated points). Points keep
    the collection's natural order, which fixes the clustering visit order.
    """
    cursor = db[ALERTS_COLLECTION].find(window_query(window_start))
    now_ms = int(now.timestamp() * 1000)
    start_ms = int(window_start.timestamp() * 1000)
    docs = [d for d in await cursor.to_list(length=None) if created_at_ms(d, now_ms) >= start_ms]
    points = [p for p in (to_alert_point(d, now_ms) for d in docs) if p is not None]
    logger.debug("Read %d alerts (%d geolocated) since %s", len(docs), len(points), window_start.isoformat())
    return len(docs), points


async def insert_alert(
    db: Any,
    payload: CreateAlertRequest,
    location_name: str,
    now: datetime,
    ttl_days: int,
) -> str:
    has_coords = payload.lat is not None and payload.lng is not None
    doc = {
        "type": payload.type,
        "location": {"lat": payload.lat, "lng": payload.lng} if has_coords else None,
        "locationName": location_name,
        "severity": payload.severity,
        "createdAt": now,
        "expiresAt": now + timedelta(days=ttl_days),
        "status": "active",
        "reportedBy": payload.reported_by,
    }
    result = await db[ALERTS_COLLECTION].insert_one(doc)
    return str(result.inserted_id)
