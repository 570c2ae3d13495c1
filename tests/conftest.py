"""
pytest configuration and shared fixtures for the Campus Pulse API tests.

Key concern: tests must not require a live MongoDB, geocoding API or
text-generation key. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client = None (disconnected); route tests that need
     storage override get_db with the in-memory FakeDB below.
  3. Ensuring AI_MOCK_MODE=true so GeminiClient returns canned responses,
     and overriding get_resolver / get_text_chain with fakes.
"""

import asyncio
import copy
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("AI_MOCK_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "")
os.environ.setdefault("OPENAI_API_KEY", "")


# ── In-memory MongoDB emulator ─────────────────────────────────────────────────

def _comparable(a: Any, b: Any) -> bool:
    """Mongo only compares values of the same BSON type bracket."""
    if isinstance(a, datetime) and isinstance(b, datetime):
        return True
    numeric = (int, float)
    if isinstance(a, numeric) and isinstance(b, numeric):
        return not isinstance(a, bool) and not isinstance(b, bool)
    return isinstance(a, str) and isinstance(b, str)


def _field_matches(doc: dict, key: str, cond: dict) -> bool:
    for op, bound in cond.items():
        if op == "$exists":
            if (key in doc) != bool(bound):
                return False
            continue
        value = doc.get(key)
        if value is None or not _comparable(value, bound):
            return False
        if isinstance(value, datetime):
            # naive datetimes come back from Mongo as UTC
            value, bound = (d if d.tzinfo else d.replace(tzinfo=timezone.utc) for d in (value, bound))
        if op == "$gte" and value < bound:
            return False
        if op == "$lte" and value > bound:
            return False
    return True


def _matches(doc: dict, query: dict) -> bool:
    for key, value in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in value):
                return False
        elif key == "hotspots.id":
            if not any(h.get("id") == value for h in doc.get("hotspots") or []):
                return False
        elif isinstance(value, dict):
            if not _field_matches(doc, key, value):
                return False
        elif doc.get(key) != value:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    async def to_list(self, length: Optional[int] = None):
        return self._docs if length is None else self._docs[:length]


class FakeCollection:
    """
    Minimal async-compatible replica of the Motor collection API we use.

    find_one / update_one yield to the event loop first, like a real round
    trip, so concurrent callers interleave. A duplicate _id raises
    DuplicateKeyError the way the unique _id index does.
    """

    def __init__(self):
        self.docs: list[dict] = []
        self.fail_writes = False

    def _has_id(self, doc_id: Any) -> bool:
        return any(d.get("_id") == doc_id for d in self.docs)

    def find(self, query: dict) -> FakeCursor:
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, query)])

    async def find_one(self, query: dict):
        await asyncio.sleep(0)
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, doc: dict):
        if self.fail_writes:
            raise RuntimeError("write refused")
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        if self._has_id(doc["_id"]):
            raise DuplicateKeyError(f"E11000 duplicate key: {doc['_id']}")
        self.docs.append(doc)
        result = MagicMock()
        result.inserted_id = doc["_id"]
        return result

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        await asyncio.sleep(0)
        if self.fail_writes:
            raise RuntimeError("write refused")
        result = MagicMock()
        result.upserted_id = None
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update, query, inserted=False)
                result.matched_count = 1
                return result
        result.matched_count = 0
        if upsert:
            doc = {
                k: v for k, v in query.items()
                if not k.startswith("$") and "." not in k and not isinstance(v, dict)
            }
            if "_id" in doc and self._has_id(doc["_id"]):
                raise DuplicateKeyError(f"E11000 duplicate key: {doc['_id']}")
            doc.setdefault("_id", ObjectId())
            self._apply(doc, update, query, inserted=True)
            self.docs.append(doc)
            result.upserted_id = doc["_id"]
        return result

    @staticmethod
    def _apply(doc: dict, update: dict, query: dict, inserted: bool) -> None:
        for key, value in update.get("$set", {}).items():
            if key.startswith("hotspots.$."):
                field = key[len("hotspots.$."):]
                for h in doc.get("hotspots") or []:
                    if h.get("id") == query.get("hotspots.id"):
                        h[field] = value
                        break
            else:
                doc[key] = copy.deepcopy(value)
        for key, value in update.get("$push", {}).items():
            items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
            doc.setdefault(key, []).extend(copy.deepcopy(items))
        if inserted:
            for key, value in update.get("$setOnInsert", {}).items():
                doc.setdefault(key, value)


class FakeDB:
    """Fake MongoDB database — lazily creates collections."""

    def __init__(self):
        self._cols: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


# ── Fake collaborators ────────────────────────────────────────────────────────

class FakeResolver:
    """
    Reverse geocoder stand-in.

    `results` maps a (lat, lng) rounded to 4 decimals to a GeocodeResult;
    anything else resolves to `default`. Every call is recorded.
    """

    def __init__(self, results: Optional[dict] = None, default: Any = None):
        self.results = results or {}
        self.default = default
        self.calls: list[tuple[float, float]] = []

    async def resolve(self, lat: float, lng: float):
        self.calls.append((lat, lng))
        return self.results.get((round(lat, 4), round(lng, 4)), self.default)


class FakeTextChain:
    """TextGenerationChain stand-in that replays queued answers."""

    def __init__(self, answers: Optional[list] = None):
        self.answers = list(answers or [])
        self.prompts: list[str] = []

    @property
    def enabled(self) -> bool:
        return True

    async def complete(self, system: str, prompt: str, response_key: str = "default"):
        self.prompts.append(prompt)
        if not self.answers:
            return None
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def alert_doc(lat: float, lng: float, minutes_ago: float = 30, now: datetime = NOW, **extra) -> dict:
    """A stored alert document as POST /alerts writes it."""
    created = now - timedelta(minutes=minutes_ago)
    return {
        "type": "threat",
        "location": {"lat": lat, "lng": lng},
        "locationName": "Ring Road, Kingston",
        "severity": 1,
        "createdAt": created,
        "expiresAt": created + timedelta(days=7),
        "status": "active",
        "reportedBy": None,
        **extra,
    }


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None (disconnected)

    Tests that need storage override get_db with a FakeDB.
    """
    with (
        patch("campus_pulse.main.connect_to_mongo", new_callable=AsyncMock),
        patch("campus_pulse.main.close_mongo_connection", new_callable=AsyncMock),
    ):
        import campus_pulse.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """slowapi keeps counters in memory across tests; start each one clean."""
    from campus_pulse.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
def fake_db():
    """Fresh in-memory DB for each test."""
    return FakeDB()


@pytest.fixture()
def fake_resolver():
    return FakeResolver()


@pytest.fixture()
def fake_text_chain():
    return FakeTextChain()


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """
    HTTPX async test client wired to the FastAPI app.

    Geocoding and text generation are replaced with fakes so no test
    reaches a real network service.
    """
    from campus_pulse.ai.text_generation import get_text_chain
    from campus_pulse.main import app
    from campus_pulse.services.geocoding import get_resolver

    app.dependency_overrides[get_resolver] = lambda: FakeResolver()
    app.dependency_overrides[get_text_chain] = lambda: FakeTextChain()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
