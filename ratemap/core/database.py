"""
MongoDB connection management using Motor (async driver).

Single DatabaseClient instance shared across all requests via a module-level
singleton. FastAPI's dependency injection (get_db) gives routes access
without importing the singleton directly.

The connection is opened in FastAPI's lifespan (startup) and closed on
shutdown. Required indexes are created right after the startup ping.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, GEOSPHERE

from ratemap.core.config import settings

logger = logging.getLogger(__name__)

RATINGS_COLLECTION = "ratings"


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    Attributes on a class (rather than bare globals) so tests can swap
    .client and .db and restore them afterwards.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


# Module-level singleton — all app code references this object
db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection, validate it with a ping and ensure indexes.

    Called once at app startup (via lifespan). If MongoDB is unavailable the
    API keeps running in degraded mode: get_db() returns None and the rating
    and heatmap routes answer 503.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=settings.mongo_timeout_ms,
            tlsCAFile=certifi.where(),
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        await ensure_indexes(db_client.db)
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — DB endpoints will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the geo and moderation indexes on the ratings collection (idempotent)."""
    ratings = db[RATINGS_COLLECTION]
    await ratings.create_index([("centroid", GEOSPHERE)])
    await ratings.create_index([("geometry", GEOSPHERE)])
    await ratings.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    await ratings.create_index([("user_id", ASCENDING), ("updated_at", DESCENDING)])


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable; routes turn that into a
    StorageUnavailable (503) rather than an empty answer.
    """
    return db_client.db


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
