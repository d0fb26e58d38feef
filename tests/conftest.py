"""
pytest configuration and shared fixtures for the Ratemap API tests.

Tests must not require a live MongoDB. We achieve this by:
  1. Setting db_client.client / .db to None for every test, so anything that
     is not given a database explicitly sees the "disconnected" state.
  2. Providing FakeDB — a tiny in-memory stand-in for the parts of Motor the
     rating store uses — injected via app.dependency_overrides[get_db].
  3. Overriding get_transformer with a seeded LocationTransformer so stored
     centroids are reproducible.
"""

import copy
import os
import random
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")


# ── In-memory Motor stand-in ──────────────────────────────────────────────────

def _within(point: dict, polygon: dict) -> bool:
    ring = polygon["coordinates"][0]
    xs = [p[0] for p in ring]
    ys = [p[1] for p in ring]
    lng, lat = point["coordinates"]
    return min(xs) <= lng <= max(xs) and min(ys) <= lat <= max(ys)


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        if isinstance(cond, dict) and "$geoWithin" in cond:
            if not _within(doc[key], cond["$geoWithin"]["$geometry"]):
                return False
        elif doc.get(key) != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    async def to_list(self, length=None):
        return self._docs if length is None else self._docs[:length]


class FakeRatingsCollection:
    """Supports exactly the calls RatingStore makes."""

    def __init__(self):
        self.docs: list[dict] = []

    def find(self, query, projection=None):
        found = [copy.deepcopy(d) for d in self.docs if _matches(d, query)]
        if projection:
            keep = [k for k, v in projection.items() if v]
            found = [{k: d[k] for k in keep if k in d} for d in found]
        return FakeCursor(found)

    async def insert_one(self, doc):
        doc = {**doc, "_id": ObjectId()}
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query):
        for d in self.docs:
            if _matches(d, query):
                return copy.deepcopy(d)
        return None

    async def find_one_and_update(self, query, update, return_document=None):
        for d in self.docs:
            if _matches(d, query):
                d.update(update["$set"])
                return copy.deepcopy(d)
        return None

    async def delete_one(self, query):
        for i, d in enumerate(self.docs):
            if _matches(d, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDB:
    def __init__(self):
        self.ratings = FakeRatingsCollection()

    def __getitem__(self, name):
        assert name == "ratings"
        return self.ratings


def _rating_doc(
    lng, lat, safety=5, amenities=5, livability=5, status="approved", user_id="user-1", note=None
):
    """A stored rating document whose centroid is already the public point."""
    now = datetime.now(tz=timezone.utc)
    return {
        "user_id": user_id,
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "centroid": {"type": "Point", "coordinates": [lng, lat]},
        "scores": {"safety": safety, "amenities": amenities, "livability": livability},
        "note": note,
        "status": status,
        "device_id": None,
        "created_at": now,
        "updated_at": now,
    }


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test and reset rate-limit counters.

    - connect_to_mongo / close_mongo_connection → no-op AsyncMocks
    - db_client.client / db_client.db → None (health reports "disconnected")
    """
    from ratemap.core.rate_limit import limiter

    with (
        patch("ratemap.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("ratemap.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import ratemap.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None
        limiter.reset()

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """HTTPX async client against the app with no database at all."""
    from ratemap.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def fake_db():
    return FakeDB()


@pytest.fixture()
def make_rating():
    """make_rating(lng, lat, safety=8, status="pending") → stored rating document."""
    return _rating_doc


@pytest.fixture()
async def api_client(fake_db):
    """Client wired to FakeDB and a seeded transformer."""
    from ratemap.core.config import settings
    from ratemap.core.database import get_db
    from ratemap.main import app
    from ratemap.routes.ratings import get_transformer
    from ratemap.services.geo import LocationTransformer

    transformer = LocationTransformer(settings.grid, rng=random.Random(1234))
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_transformer] = lambda: transformer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    """auth_headers("user-1") → {"Authorization": "Bearer <jwt>"}"""
    from ratemap.core.security import create_access_token

    def _headers(user_id: str = "user-1", is_admin: bool = False) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, is_admin=is_admin)}"}

    return _headers
