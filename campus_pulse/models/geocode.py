"""
geocode.py — Reverse geocoding result shared by every provider.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GeocodeResult(BaseModel):
    """Human-readable place information for one coordinate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: str                          # "google" | "nominatim"
    display_name: Optional[str] = None
    road: Optional[str] = None
    neighbourhood: Optional[str] = None
    locality: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)
