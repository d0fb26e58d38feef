#!/usr/bin/env python3
"""
seed_ratings.py — Populate MongoDB with demo ratings for local development.

Inserts:
  - Point and polygon ratings around a few city centres, each run through the
    same LocationTransformer the API uses (so stored centroids are jittered)
  - The indexes the heatmap query needs

Usage:
    pip install -e .
    python scripts/seed_ratings.py --per-city 40

Reads MONGO_URI / MONGO_DB_NAME (and the grid settings) from the environment
or .env. Safe to re-run: deletes earlier seed ratings first.
"""

import argparse
import asyncio
import random
from datetime import datetime, timedelta, timezone

from motor.motor_asyncio import AsyncIOMotorClient

from ratemap.core.config import settings
from ratemap.core.database import RATINGS_COLLECTION, ensure_indexes
from ratemap.services.geo import LocationTransformer

SEED_USER = "seed-script"

# (label, lng, lat, base score) — base score skews the demo heat per city
CITY_CENTRES = [
    ("London",     -0.1276, 51.5074, 7),
    ("Casablanca", -7.6200, 33.5700, 6),
    ("New York",  -74.0060, 40.7128, 5),
    ("Berlin",     13.4050, 52.5200, 8),
]


def _score(rng: random.Random, base: int) -> int:
    return max(0, min(10, base + rng.randint(-3, 3)))


def _square(lng: float, lat: float, half: float) -> dict:
    return {
        "type": "Polygon",
        "coordinates": [[
            [lng - half, lat - half],
            [lng - half, lat + half],
            [lng + half, lat + half],
            [lng + half, lat - half],
            [lng - half, lat - half],
        ]],
    }


def build_ratings(per_city: int, rng: random.Random) -> list[dict]:
    transformer = LocationTransformer(settings.grid, rng=rng, centroid_method=settings.centroid_method)
    now = datetime.now(timezone.utc)
    docs = []
    for label, lng, lat, base in CITY_CENTRES:
        for i in range(per_city):
            plng = lng + rng.uniform(-0.02, 0.02)
            plat = lat + rng.uniform(-0.02, 0.02)
            if i % 4 == 0:
                geometry = _square(plng, plat, rng.uniform(0.0005, 0.002))
            else:
                geometry = {"type": "Point", "coordinates": [plng, plat]}

            created = now - timedelta(hours=rng.randint(0, 24 * 30))
            docs.append({
                "user_id": SEED_USER,
                "geometry": geometry,
                "centroid": transformer.transform(geometry).to_document(),
                "scores": {
                    "safety": _score(rng, base),
                    "amenities": _score(rng, base - 1),
                    "livability": _score(rng, base + 1),
                },
                "note": f"Seed rating near {label}",
                "status": "approved" if i % 10 else "pending",
                "device_id": None,
                "created_at": created,
                "updated_at": created,
            })
    return docs


async def seed(per_city: int, seed_value: int) -> None:
    print("Connecting to MongoDB...")
    client = AsyncIOMotorClient(settings.mongo_uri)
    db = client[settings.mongo_db_name]
    ratings = db[RATINGS_COLLECTION]

    try:
        await client.admin.command("ping")
        print("Connected.")

        # ─── Clean up previous seed data ──────────────────────────────────────
        deleted = await ratings.delete_many({"user_id": SEED_USER})
        print(f"Removed {deleted.deleted_count} existing seed ratings.")

        # ─── Insert sample ratings ────────────────────────────────────────────
        docs = build_ratings(per_city, random.Random(seed_value))
        result = await ratings.insert_many(docs)
        print(f"Inserted {len(result.inserted_ids)} ratings.")

        # ─── Ensure indexes exist ─────────────────────────────────────────────
        await ensure_indexes(db)
        print("Indexes ensured.")

        print("\nSeed complete! Ratings by status:")
        pipeline = [
            {"$match": {"user_id": SEED_USER}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]
        async for doc in ratings.aggregate(pipeline):
            print(f"  {doc['_id']}: {doc['count']}")

    finally:
        client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo ratings")
    parser.add_argument("--per-city", type=int, default=40)
    parser.add_argument("--seed", type=int, default=42, help="random seed for repeatable data")
    args = parser.parse_args()
    asyncio.run(seed(args.per_city, args.seed))
