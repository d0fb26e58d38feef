"""
heatmap.py — Rating heatmap route.

Routes:
  GET  /api/v1/heatmap?bbox=minLng,minLat,maxLng,maxLat&category=safety&zoom=12

HOW THE DATA FLOWS
──────────────────
1. The map client sends its current viewport as `bbox` whenever the map moves.
2. HeatAggregator validates bbox + category, runs one $geoWithin query for
   approved ratings and groups their stored centroids on the privacy grid.
3. The response is a GeoJSON FeatureCollection; the client feeds
   `properties.weight` straight into its heat layer.

`zoom` is accepted so the client can send one query string for everything it
renders; it does not affect the aggregation.

Errors:
  400  invalid_bbox / invalid_category
  422  missing bbox or zoom outside 0–22
  503  storage_unavailable (retry later)

TESTING YOUR CHANGES
─────────────────────
  pytest tests/test_heatmap.py -v

  curl "http://localhost:8000/api/v1/heatmap?bbox=-0.2,51.45,0,51.55&category=safety&zoom=12"
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from ratemap.core.config import settings
from ratemap.core.database import get_db
from ratemap.core.rate_limit import limiter
from ratemap.models.heatmap import HeatmapFeatureCollection
from ratemap.services.heat_aggregator import HeatAggregator
from ratemap.services.rating_store import RatingStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/heatmap", tags=["heatmap"])


@router.get("", response_model=HeatmapFeatureCollection)
@limiter.limit(settings.heatmap_limit)
async def get_heatmap(
    request: Request,
    bbox: str = Query(..., description="minLng,minLat,maxLng,maxLat"),
    # Validated by the aggregator so an unknown value is a 400 invalid_category.
    category: str = Query(default="safety", description="safety | amenities | livability"),
    zoom: int = Query(default=10, ge=0, le=22, description="Map zoom (rendering hint)"),
    db=Depends(get_db),
):
    """Aggregate approved ratings inside the viewport into weighted grid cells."""
    aggregator = HeatAggregator(RatingStore(db), settings.grid)
    features = await aggregator.aggregate(bbox, category, zoom)
    return HeatmapFeatureCollection(features=features)
