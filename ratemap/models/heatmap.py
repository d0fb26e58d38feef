"""
heatmap.py — Pydantic models for the heatmap API.

GET /api/v1/heatmap returns a GeoJSON FeatureCollection. Each feature is one
grid cell:

  {
    "type": "Feature",
    "geometry":   { "type": "Point", "coordinates": [-0.128, 51.507] },
    "properties": { "weight": 0.8, "count": 3, "averageScore": 8.0 }
  }

  weight        mean category score / 10, in [0, 1] — drives heat intensity
  count         number of approved ratings in the cell
  averageScore  mean score rounded to one decimal, for tooltips

Coordinates are cell centres on the privacy grid, never a rating's own
stored point.
"""

from typing import Literal

from pydantic import BaseModel, Field


class HeatPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: list[float]   # [lng, lat]


class HeatProperties(BaseModel):
    weight: float = Field(..., ge=0, le=1)
    count: int = Field(..., ge=1)
    averageScore: float


class HeatFeature(BaseModel):
    """One aggregated grid cell."""

    type: Literal["Feature"] = "Feature"
    geometry: HeatPoint
    properties: HeatProperties


class HeatmapFeatureCollection(BaseModel):
    """Response body for GET /api/v1/heatmap. Feature order is not meaningful."""

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[HeatFeature]
