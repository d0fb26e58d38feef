"""
rating_store.py — Data access for the `ratings` collection.

Thin wrapper over a Motor database handle. Every driver failure is turned
into StorageUnavailable so routes report 503 instead of leaking PyMongo
errors; nothing here retries.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from ratemap.core.database import RATINGS_COLLECTION
from ratemap.core.errors import RatingNotFound, StorageUnavailable

logger = logging.getLogger(__name__)


def _oid(rating_id: str) -> ObjectId:
    try:
        return ObjectId(rating_id)
    except (InvalidId, TypeError):
        raise RatingNotFound(f"Rating '{rating_id}' not found")


class RatingStore:
    """Rating persistence; construct per request from the injected db handle."""

    def __init__(self, db):
        self._db = db

    @property
    def collection(self):
        # Checked per call so request validation still runs (and fails with
        # 400) before a missing database turns into a 503.
        if self._db is None:
            raise StorageUnavailable()
        return self._db[RATINGS_COLLECTION]

    async def find_approved(self, bbox_polygon: dict) -> list[dict]:
        """Approved ratings whose stored centroid lies inside *bbox_polygon*.

        Only `centroid` and `scores` are fetched.
        """
        query = {
            "status": "approved",
            "centroid": {"$geoWithin": {"$geometry": bbox_polygon}},
        }
        try:
            cursor = self.collection.find(query, {"centroid": 1, "scores": 1, "_id": 0})
            return await cursor.to_list(length=None)
        except PyMongoError as exc:
            logger.warning("Heatmap query failed: %s", exc)
            raise StorageUnavailable() from exc

    async def insert(self, doc: dict) -> str:
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as exc:
            logger.warning("Rating insert failed: %s", exc)
            raise StorageUnavailable() from exc
        return str(result.inserted_id)

    async def get(self, rating_id: str) -> dict:
        oid = _oid(rating_id)
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as exc:
            logger.warning("Rating lookup failed: %s", exc)
            raise StorageUnavailable() from exc
        if not doc:
            raise RatingNotFound(f"Rating '{rating_id}' not found")
        return doc

    async def list_ratings(self, query: dict[str, Any], limit: int = 50) -> list[dict]:
        try:
            cursor = self.collection.find(query).sort("updated_at", -1).limit(limit)
            return await cursor.to_list(length=limit)
        except PyMongoError as exc:
            logger.warning("Rating list failed: %s", exc)
            raise StorageUnavailable() from exc

    async def _update(self, rating_id: str, fields: dict) -> dict:
        oid = _oid(rating_id)
        fields = {**fields, "updated_at": datetime.now(tz=timezone.utc)}
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            logger.warning("Rating update failed: %s", exc)
            raise StorageUnavailable() from exc
        if not doc:
            raise RatingNotFound(f"Rating '{rating_id}' not found")
        return doc

    async def set_status(self, rating_id: str, status: str) -> dict:
        return await self._update(rating_id, {"status": status})

    async def update_scores(self, rating_id: str, scores: dict, **fields: Optional[str]) -> dict:
        """Replace the scores; `note` is only written when passed."""
        return await self._update(rating_id, {**fields, "scores": scores})

    async def delete(self, rating_id: str) -> None:
        oid = _oid(rating_id)
        try:
            result = await self.collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            logger.warning("Rating delete failed: %s", exc)
            raise StorageUnavailable() from exc
        if result.deleted_count == 0:
            raise RatingNotFound(f"Rating '{rating_id}' not found")
