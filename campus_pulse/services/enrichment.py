"""
enrichment.py — Background AI refinement of hotspot guidance.

Runs after the heuristic response has already been sent (FastAPI
BackgroundTasks). For hotspots the heuristic left without an alternative
route, it asks a text model for a one-line summary, a recommendation and a
concrete alternative road, then merges the answers into hotspots/latest and
appends them to the run's snapshot.

Flow
────
  1. EnrichmentRateGuard — at most one run per ENRICHMENT_MIN_INTERVAL_MINUTES.
  2. Chunk hotspots (chunk_size) and keep those still missing an
     alternativeRoute whose sampleType is routing-relevant (AI_ROUTE_TYPES).
  3. One prompt per chunk → TextGenerationChain.
  4. parse_enrichment_response() — slice the outermost [...] and decode.
  5. merge_hotspot() per patch → HotspotStore.merge_latest() writes the
     changed fields; append_enrichments() records the raw patches.

A failed or malformed chunk is logged and skipped; other chunks continue.
run() never raises.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pydantic import ValidationError

from campus_pulse.ai.text_generation import TextGenerationChain
from campus_pulse.models.hotspot import Hotspot, HotspotPatch
from campus_pulse.services.snapshot_store import EnrichmentRateGuard, HotspotStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a concise campus safety assistant. Return only valid JSON array."


class EnrichmentParseError(ValueError):
    """The model's answer did not contain a usable JSON array."""


@dataclass
class EnrichmentReport:
    skipped: bool = False
    chunks_sent: int = 0
    chunks_failed: int = 0
    patched_ids: list[str] = field(default_factory=list)


def chunked(items: list[Hotspot], size: int) -> Iterable[list[Hotspot]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def needs_enrichment(hotspot: Hotspot, route_types: set[str]) -> bool:
    return not hotspot.alternative_route and hotspot.sample_type.lower() in route_types


def build_hotspot_line(h: Hotspot) -> str:
    coords = f"{h.centroid.lat:.4f},{h.centroid.lng:.4f}"
    area = h.area_name or h.sample_location_name or coords
    nearby = ", ".join(h.nearby_road_variants[:3])
    return (
        f"Hotspot id:{h.id} at {area} (centroid {coords}). "
        f'PrimaryRoad:"{h.primary_road or ""}". NearbyCandidates:"{nearby}". '
        f"{h.count} events, mostly {h.sample_type}."
    )


def build_enrichment_prompt(hotspots: list[Hotspot]) -> str:
    lines = "\n".join(build_hotspot_line(h) for h in hotspots)
    return (
        f"{lines}\n\n"
        "Return a JSON array with one object per hotspot, each with keys: "
        "id, summary (<=18 words), "
        'recommendation (pattern: "Avoid AREA; take ALT instead." <=10 words), '
        "alternativeRoute (ALT, a specific nearby road or town)."
    )


def parse_enrichment_response(text: Optional[str]) -> list[HotspotPatch]:
    """
    Decode the JSON array embedded in a model answer.

    Models wrap JSON in prose or code fences, so everything outside the first
    "[" and the last "]" is discarded before decoding. Entries without an id
    or with the wrong shape are dropped.

    Raises:
        EnrichmentParseError: no array, undecodable JSON, or not a list.
    """
    if not text:
        raise EnrichmentParseError("empty response")
    first = text.find("[")
    last = text.rfind("]")
    if first == -1 or last <= first:
        raise EnrichmentParseError("no JSON array in response")
    try:
        parsed = json.loads(text[first:last + 1])
    except json.JSONDecodeError as exc:
        raise EnrichmentParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, list):
        raise EnrichmentParseError("JSON payload is not an array")

    patches: list[HotspotPatch] = []
    for item in parsed:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        try:
            patches.append(HotspotPatch.model_validate({**item, "id": str(item["id"])}))
        except ValidationError as exc:
            logger.debug("Dropping malformed enrichment entry %r: %s", item, exc)
    return patches


class HotspotEnricher:
    def __init__(
        self,
        store: HotspotStore,
        text_chain: TextGenerationChain,
        guard: EnrichmentRateGuard,
        route_types: set[str],
        chunk_size: int = 10,
    ) -> None:
        self.store = store
        self.text_chain = text_chain
        self.guard = guard
        self.route_types = {t.lower() for t in route_types}
        self.chunk_size = max(1, chunk_size)

    def candidates(self, hotspots: list[Hotspot]) -> list[Hotspot]:
        return [h for h in hotspots if needs_enrichment(h, self.route_types)]

    async def run(self, hotspots: list[Hotspot], snapshot_id: Optional[str]) -> EnrichmentReport:
        report = EnrichmentReport()
        try:
            if not self.candidates(hotspots):
                logger.info("[summaries] nothing to enrich")
                report.skipped = True
                return report
            if not await self.guard.try_acquire():
                report.skipped = True
                return report

            for start, chunk in zip(range(0, len(hotspots), self.chunk_size), chunked(hotspots, self.chunk_size)):
                label = f"{start}..{start + len(chunk) - 1}"
                need_ai = self.candidates(chunk)
                if not need_ai:
                    logger.info("[summaries] chunk %s skipped (no AI needed)", label)
                    continue
                report.chunks_sent += 1
                try:
                    patched = await self._enrich_chunk(need_ai, snapshot_id, label)
                except Exception as exc:
                    logger.warning("[summaries] chunk %s failed: %s", label, exc)
                    patched = None
                if patched is None:
                    report.chunks_failed += 1
                else:
                    report.patched_ids.extend(patched)
        except Exception as exc:
            logger.warning("[summaries] background process failed: %s", exc)
        return report

    async def _enrich_chunk(
        self,
        chunk: list[Hotspot],
        snapshot_id: Optional[str],
        label: str,
    ) -> Optional[list[str]]:
        text = await self.text_chain.complete(
            SYSTEM_PROMPT,
            build_enrichment_prompt(chunk),
            response_key="hotspot_enrichment",
        )
        if not text:
            logger.warning("[summaries] chunk %s: no provider answered", label)
            return None
        try:
            patches = parse_enrichment_response(text)
        except EnrichmentParseError as exc:
            logger.warning("[summaries] chunk %s unparseable: %s", label, exc)
            return None

        requested = {h.id for h in chunk}
        patches = [p for p in patches if p.id in requested and p.updates()]
        if not patches:
            logger.info("[summaries] chunk %s: model returned no usable entries", label)
            return []

        updated = await self.store.merge_latest(chunk, patches)
        await self.store.append_enrichments(snapshot_id, patches)
        logger.info("[summaries] chunk %s processed (%d hotspots patched)", label, len(updated))
        return updated
