"""
alert.py — Pydantic schemas for incident alerts.

AlertPoint          — read-only projection used by the hotspot pipeline
CreateAlertRequest  — what the reporting client sends
CreateAlertResponse — immediate response after the alert is stored
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AlertPoint(BaseModel):
    """A geolocated alert as seen by the clustering engine. Never mutated."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    lat: float
    lng: float
    type: str = "unknown"
    severity: float = 1.0
    created_at_ms: int               # epoch milliseconds
    location_name: Optional[str] = None


class CreateAlertRequest(BaseModel):
    """Payload for POST /alerts."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str = Field(default="threat", min_length=1, max_length=50)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    severity: float = Field(default=1.0, ge=0, le=10)
    reported_by: Optional[str] = Field(default=None, max_length=200)


class CreateAlertResponse(BaseModel):
    """Response body for POST /alerts."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool
    id: str
    location_name: str
