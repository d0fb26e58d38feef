"""
heat_aggregator.py — Viewport heat grid over approved ratings.

    aggregate(bbox, category, zoom) → list[HeatFeature]

  1. validate bbox         → InvalidBoundingBox
  2. validate category     → InvalidCategory
  3. one storage query: approved ratings with centroid inside the bbox
  4. re-quantize each stored centroid on the shared GridSpec (stored points
     carry jitter, so they are not grid-aligned)
  5. group by cell, arithmetic mean of the requested category score
  6. weight = mean / 10
  7. one feature per cell: cell centre, weight, count, averageScore (1 dp)

`zoom` only tunes blob radius on the client; it never changes which records
are read or how they are grouped. Feature order is unspecified. A bbox with
no ratings is an empty list, not an error.

TESTING
────────
    pytest tests/test_heat_aggregator.py -v
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional, Sequence, Union

from ratemap.core.errors import InvalidBoundingBox, InvalidCategory
from ratemap.models.heatmap import HeatFeature, HeatPoint, HeatProperties
from ratemap.models.rating import CATEGORIES, MAX_SCORE
from ratemap.services.geo import GridSpec, cell_center, cell_index

logger = logging.getLogger(__name__)

BBox = tuple[float, float, float, float]


# ── Bounding box ──────────────────────────────────────────────────────────────

def parse_bbox(raw: str) -> BBox:
    """Parse "minLng,minLat,maxLng,maxLat" into four floats."""
    parts = raw.split(",") if raw else []
    if len(parts) != 4:
        raise InvalidBoundingBox("bbox must be four comma-separated numbers")
    try:
        values = tuple(float(p) for p in parts)
    except ValueError:
        raise InvalidBoundingBox("bbox must be four comma-separated numbers")
    return validate_bbox(values)


def validate_bbox(bbox: Sequence[float]) -> BBox:
    if len(bbox) != 4:
        raise InvalidBoundingBox("bbox must have exactly four values")
    try:
        min_lng, min_lat, max_lng, max_lat = (float(v) for v in bbox)
    except (TypeError, ValueError):
        raise InvalidBoundingBox("bbox values must be numbers")

    if not all(math.isfinite(v) for v in (min_lng, min_lat, max_lng, max_lat)):
        raise InvalidBoundingBox("bbox values must be finite")
    if not (min_lng < max_lng and min_lat < max_lat):
        raise InvalidBoundingBox("bbox min must be lower than max on both axes")
    if not (-180 <= min_lng and max_lng <= 180 and -90 <= min_lat and max_lat <= 90):
        raise InvalidBoundingBox("bbox outside the valid coordinate range")
    return min_lng, min_lat, max_lng, max_lat


def bbox_polygon(bbox: BBox) -> dict:
    """Closed GeoJSON Polygon for a $geoWithin query."""
    min_lng, min_lat, max_lng, max_lat = bbox
    return {
        "type": "Polygon",
        "coordinates": [[
            [min_lng, min_lat],
            [max_lng, min_lat],
            [max_lng, max_lat],
            [min_lng, max_lat],
            [min_lng, min_lat],
        ]],
    }


def validate_category(category: str) -> str:
    if category not in CATEGORIES:
        raise InvalidCategory(
            f"Unknown category '{category}'. Choose from: {', '.join(CATEGORIES)}"
        )
    return category


# ── Aggregation ───────────────────────────────────────────────────────────────

def _round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def aggregate_records(
    records: Iterable[dict],
    category: str,
    grid: GridSpec,
) -> list[HeatFeature]:
    """
    Group stored {centroid, scores} records into heat cells (pure).

    Records without a score for *category* are skipped.
    """
    cells: dict[tuple[int, int], list[float]] = {}
    for record in records:
        score = (record.get("scores") or {}).get(category)
        if score is None:
            logger.debug("Skipping rating without a %s score", category)
            continue
        lng, lat = record["centroid"]["coordinates"][:2]
        key = (cell_index(lng, grid.cell_size), cell_index(lat, grid.cell_size))
        cells.setdefault(key, []).append(float(score))

    features = []
    for (ix, iy), scores in cells.items():
        mean = sum(scores) / len(scores)
        features.append(HeatFeature(
            geometry=HeatPoint(coordinates=[
                cell_center(ix, grid.cell_size),
                cell_center(iy, grid.cell_size),
            ]),
            properties=HeatProperties(
                weight=min(1.0, max(0.0, mean / MAX_SCORE)),
                count=len(scores),
                averageScore=_round_half_up(mean),
            ),
        ))
    return features


class HeatAggregator:
    """Binds a rating store to the grid; one instance per request is fine."""

    def __init__(self, store, grid: GridSpec):
        self.store = store
        self.grid = grid

    async def aggregate(
        self,
        bbox: Union[str, Sequence[float]],
        category: str,
        zoom: Optional[int] = None,  # rendering hint only
    ) -> list[HeatFeature]:
        box = parse_bbox(bbox) if isinstance(bbox, str) else validate_bbox(bbox)
        validate_category(category)

        records = await self.store.find_approved(bbox_polygon(box))
        features = aggregate_records(records, category, self.grid)
        logger.debug(
            "Heatmap %s/%s zoom=%s: %d ratings → %d cells",
            category, box, zoom, len(records), len(features),
        )
        return features
