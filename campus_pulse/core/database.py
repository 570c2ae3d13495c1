"""
Where campus alerts and computed hotspots live.

The hotspot pipeline reads recent reports from `alerts` and writes its
output to two collections:

  alerts              incident reports, read-only from this service's view
  hotspots            the "latest" map view and the "meta" enrichment clock
  hotspot_snapshots   one document per pipeline run, enrichments appended

A single Motor client is opened at startup. If Mongo cannot be reached the
service keeps serving with db=None, and every storage-backed route reports
503 rather than failing at import or startup.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from campus_pulse.core.config import settings

logger = logging.getLogger(__name__)

ALERTS_COLLECTION = "alerts"
HOTSPOTS_COLLECTION = "hotspots"
SNAPSHOTS_COLLECTION = "hotspot_snapshots"


class DatabaseClient:
    """Motor client plus the selected database; both None while degraded."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Open the alert/hotspot database and ping it once.

    A failed ping leaves the service in degraded mode (db_client.db is None)
    instead of aborting startup; /hotspots then answers 503 until restart.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "Hotspot detection disabled until the database is reachable.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """Dependency: the hotspot database, or None in degraded mode."""
    return db_client.db


def _redact_uri(uri: str) -> str:
    # user:password@ → <redacted>@
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
