"""
hotspot.py — Pydantic models for the hotspot pipeline.

A Hotspot is rebuilt from scratch on every pipeline run; it has no identity
across runs beyond its cluster index. The only change it sees after creation
is the background AI enrichment, which is expressed as a HotspotPatch merged
into a *new* Hotspot (merge_hotspot) rather than mutating the original.

Field names serialise as camelCase (areaName, alternativeRoute, ...) because
that is what the polling map clients read from the "latest" document.

MongoDB documents
─────────────────
  hotspots/latest
    { "_id": "latest", "createdAt": ISODate, "snapshotId": "snapshot-<ms>",
      "params": {...}, "hotspots": [Hotspot, ...] }

  hotspots/meta
    { "_id": "meta", "lastSummariesAt": ISODate }

  hotspot_snapshots/snapshot-<ms>
    { "_id": "snapshot-<ms>", "createdAt": ISODate, "params": {...},
      "hotspots": [Hotspot, ...],          ← never rewritten
      "enrichments": [HotspotPatch + ts] } ← append-only
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

SeverityLabel = Literal["low", "moderate", "severe"]
SeverityMode = Literal["bucket", "score"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LatLng(_CamelModel):
    lat: float
    lng: float


class HotspotParams(_CamelModel):
    """Clustering / enrichment parameters for one pipeline run."""

    time_window_hours: int = Field(default=72, ge=1, le=720)
    eps_meters: float = Field(default=200.0, gt=0, le=5000)
    min_points: int = Field(default=3, ge=1, le=50)
    chunk_size: int = Field(default=10, ge=1, le=50)
    trend_window_hours: int = Field(default=24, ge=1, le=360)
    severity_mode: SeverityMode = "bucket"

    @model_validator(mode="after")
    def check_trend_window_coverage(self) -> "HotspotParams":
        # countPrev looks back two trend windows; anything older was never fetched
        if self.time_window_hours < 2 * self.trend_window_hours:
            raise ValueError("timeWindowHours must be at least twice trendWindowHours")
        return self


class Hotspot(_CamelModel):
    """A density cluster of recent alerts plus everything derived from it."""

    id: str                                  # "hotspot-<clusterIndex>"
    centroid: LatLng
    count: int
    count_now: int = 0                       # members inside the current trend window
    count_prev: int = 0                      # members inside the preceding window
    trend_score: float = 0.0
    severity: SeverityLabel = "low"
    severity_score: float = 0.0
    sample_type: str = "unknown"             # dominant alert type
    sample_location_name: Optional[str] = None
    member_ids: list[str] = Field(default_factory=list)

    # ── Geocoding ─────────────────────────────────────────────────────────────
    area_name: Optional[str] = None
    primary_road: Optional[str] = None
    nearby_road_variants: list[str] = Field(default_factory=list)

    # ── Guidance ──────────────────────────────────────────────────────────────
    recommendation: Optional[str] = None
    alternative_route: Optional[str] = None
    needs_ai: bool = False

    summary: Optional[str] = None
    summary_heading: str = "Hotspot summary"
    summary_visible: bool = False

    first_seen: Optional[str] = None         # ISO-8601
    last_seen: Optional[str] = None          # ISO-8601


class HotspotPatch(_CamelModel):
    """One entry of the AI enrichment response."""

    id: str
    summary: Optional[str] = None
    recommendation: Optional[str] = None
    alternative_route: Optional[str] = None

    def updates(self) -> dict[str, str]:
        """Non-empty fields only — blanks never overwrite heuristic values."""
        fields = {
            "summary": self.summary,
            "recommendation": self.recommendation,
            "alternative_route": self.alternative_route,
        }
        return {k: v.strip() for k, v in fields.items() if isinstance(v, str) and v.strip()}


class RunMeta(_CamelModel):
    snapshot_id: Optional[str] = None
    params: HotspotParams
    total_alerts: int = 0
    total_hotspots: int = 0
    noise_points: int = 0
    generated_at: str
    enrichment_scheduled: bool = False


class HotspotResponse(_CamelModel):
    """Response shape for GET /hotspots."""

    hotspots: list[Hotspot]
    meta: Optional[RunMeta] = None


class LatestHotspots(_CamelModel):
    """The mutable "current" view read back from hotspots/latest."""

    created_at: Optional[datetime] = None
    snapshot_id: Optional[str] = None
    hotspots: list[Hotspot] = Field(default_factory=list)


def merge_hotspot(base: Hotspot, patch: HotspotPatch) -> Hotspot:
    """
    Return a new Hotspot with the patch's non-empty fields applied.

    A patch for a different hotspot id is ignored. Once an alternative route
    is known the hotspot no longer needs AI follow-up.
    """
    if patch.id != base.id:
        return base
    updates: dict = patch.updates()
    if not updates:
        return base
    if "alternative_route" in updates:
        updates["needs_ai"] = False
    if "summary" in updates:
        updates["summary_visible"] = True
    return base.model_copy(update=updates)
