"""
snapshot_store.py — Persist hotspot results to MongoDB.

Three documents per deployment, plus one per pipeline run:

  hotspots/latest              current view polled by the map clients
  hotspots/meta                lastSummariesAt (AI enrichment rate limit)
  hotspot_snapshots/<id>       immutable per-run record + append-only enrichments

Both latest and snapshots are best-effort caches of a recomputable result:
every method logs and swallows database errors (returning a falsy value)
instead of failing the pipeline. Nothing is retried in place; the next run
writes again. The meta claim is the exception in spirit: it is a single
conditional upsert and a database error counts as "not acquired", so a
broken store never lets enrichment run unthrottled.

Enrichment updates touch one hotspot at a time through the positional
operator ("hotspots.$.summary"), so concurrent runs never clobber hotspots
they did not patch. Overlapping writers are last-write-wins per field.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pymongo.errors import DuplicateKeyError

from campus_pulse.core.database import HOTSPOTS_COLLECTION, SNAPSHOTS_COLLECTION
from campus_pulse.models.hotspot import Hotspot, HotspotParams, HotspotPatch, LatestHotspots, merge_hotspot

logger = logging.getLogger(__name__)

LATEST_DOC_ID = "latest"
META_DOC_ID = "meta"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _dump(hotspots: list[Hotspot]) -> list[dict[str, Any]]:
    return [h.model_dump(by_alias=True) for h in hotspots]


class HotspotStore:
    """Motor-backed writer for latest / snapshot / meta documents."""

    def __init__(self, db: Any) -> None:
        self.db = db

    @property
    def hotspots(self):
        return self.db[HOTSPOTS_COLLECTION]

    @property
    def snapshots(self):
        return self.db[SNAPSHOTS_COLLECTION]

    # ── Per-run writes ────────────────────────────────────────────────────────

    async def write_snapshot(
        self,
        hotspots: list[Hotspot],
        params: HotspotParams,
        created_at: datetime,
    ) -> Optional[str]:
        """Insert the immutable snapshot for this run. Returns its id or None."""
        snapshot_id = f"snapshot-{int(created_at.timestamp() * 1000)}"
        try:
            await self.snapshots.insert_one({
                "_id": snapshot_id,
                "createdAt": created_at,
                "params": params.model_dump(by_alias=True),
                "hotspots": _dump(hotspots),
                "enrichments": [],
            })
        except Exception as exc:
            logger.error("Snapshot write failed (%s): %s", snapshot_id, exc)
            return None
        return snapshot_id

    async def write_latest(
        self,
        hotspots: list[Hotspot],
        params: HotspotParams,
        snapshot_id: Optional[str],
        created_at: datetime,
    ) -> bool:
        try:
            await self.hotspots.update_one(
                {"_id": LATEST_DOC_ID},
                {"$set": {
                    "createdAt": created_at,
                    "snapshotId": snapshot_id,
                    "params": params.model_dump(by_alias=True),
                    "hotspots": _dump(hotspots),
                }},
                upsert=True,
            )
        except Exception as exc:
            logger.error("Latest hotspots write failed: %s", exc)
            return False
        return True

    async def read_latest(self) -> Optional[LatestHotspots]:
        try:
            doc = await self.hotspots.find_one({"_id": LATEST_DOC_ID})
        except Exception as exc:
            logger.error("Latest hotspots read failed: %s", exc)
            return None
        if not doc:
            return None
        return LatestHotspots.model_validate(doc)

    # ── Enrichment writes ─────────────────────────────────────────────────────

    async def merge_latest(self, bases: list[Hotspot], patches: list[HotspotPatch]) -> list[str]:
        """
        Apply each patch to its base hotspot with merge_hotspot() and write
        only the fields that changed into the matching hotspot in latest.
        Returns the ids actually updated.
        """
        by_id = {h.id: h for h in bases}
        updated: list[str] = []
        for patch in patches:
            base = by_id.get(patch.id)
            if base is None:
                continue
            changes = changed_fields(base, merge_hotspot(base, patch))
            if not changes:
                continue
            set_doc = {f"hotspots.$.{field}": value for field, value in changes.items()}
            try:
                result = await self.hotspots.update_one(
                    {"_id": LATEST_DOC_ID, "hotspots.id": patch.id},
                    {"$set": set_doc},
                )
            except Exception as exc:
                logger.error("Latest merge failed for %s: %s", patch.id, exc)
                continue
            if getattr(result, "matched_count", 0):
                updated.append(patch.id)
            else:
                logger.info("Hotspot %s no longer in latest; patch dropped", patch.id)
        return updated

    async def append_enrichments(self, snapshot_id: Optional[str], patches: list[HotspotPatch]) -> bool:
        if not snapshot_id or not patches:
            return False
        ts = utc_now().isoformat()
        entries = [{**p.model_dump(by_alias=True), "ts": ts} for p in patches]
        try:
            await self.snapshots.update_one(
                {"_id": snapshot_id},
                {
                    "$push": {"enrichments": {"$each": entries}},
                    "$setOnInsert": {"createdAt": utc_now()},
                },
                upsert=True,
            )
        except Exception as exc:
            logger.error("Snapshot enrichment append failed (%s): %s", snapshot_id, exc)
            return False
        return True

    # ── Meta ──────────────────────────────────────────────────────────────────

    async def claim_enrichment_slot(self, now: datetime, interval: timedelta) -> bool:
        """
        Set meta.lastSummariesAt to now if it is at least `interval` old or
        missing. One conditional upsert, so two overlapping runs cannot both
        win: when the filter misses an existing meta document, the upsert
        collides on _id and the caller loses.

        Any database error also counts as a lost claim.
        """
        try:
            result = await self.hotspots.update_one(
                {
                    "_id": META_DOC_ID,
                    "$or": [
                        {"lastSummariesAt": {"$lte": now - interval}},
                        {"lastSummariesAt": {"$exists": False}},
                    ],
                },
                {"$set": {"lastSummariesAt": now}},
                upsert=True,
            )
        except DuplicateKeyError:
            return False
        except Exception as exc:
            logger.error("Meta claim failed, enrichment not started: %s", exc)
            return False
        return bool(result.matched_count or result.upserted_id is not None)


def changed_fields(base: Hotspot, merged: Hotspot) -> dict[str, Any]:
    """camelCase field → new value, for every field that differs."""
    before = base.model_dump(by_alias=True)
    after = merged.model_dump(by_alias=True)
    return {k: v for k, v in after.items() if before.get(k) != v}


class EnrichmentRateGuard:
    """
    Allow at most one AI enrichment run per interval.

    The last-run time lives in hotspots/meta so every process shares it.
    The clock is injected so tests can move time explicitly. The guard
    fails closed: if the claim cannot be written, no run starts.
    """

    def __init__(
        self,
        store: HotspotStore,
        interval: timedelta,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.interval = interval
        self.clock = clock

    async def try_acquire(self) -> bool:
        """True if this caller won the slot for the current interval."""
        acquired = await self.store.claim_enrichment_slot(self.clock(), self.interval)
        if not acquired:
            logger.info("AI enrichment skipped, slot held (min interval %s)", self.interval)
        return acquired
