"""
rating.py — Pydantic schemas for rating submission, moderation and storage.

This is the structural gate in front of the location transformer: by the time
a geometry reaches services/geo.py it has the right arity, finite numbers
inside the legal range, and (for polygons) closed rings of ≥ 4 positions.

MongoDB document shape (collection `ratings`):

  {
    "user_id":   "65f0c1...",
    "geometry":  { "type": "Polygon", "coordinates": [[[lng, lat], ...]] },
    "centroid":  { "type": "Point", "coordinates": [lng, lat] },   ← 2dsphere, jittered
    "scores":    { "safety": 7, "amenities": 5, "livability": 8 },
    "note":      "Quiet street, good lighting",
    "status":    "approved",
    "device_id": null,
    "created_at": ISODate(...),
    "updated_at": ISODate(...)
  }
"""

import math
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

Category = Literal["safety", "amenities", "livability"]
RatingStatus = Literal["pending", "approved", "rejected"]

CATEGORIES: tuple[str, ...] = ("safety", "amenities", "livability")
MAX_SCORE = 10.0

Score = Annotated[float, Field(ge=0, le=MAX_SCORE)]


def _check_position(position: list[float]) -> list[float]:
    if len(position) != 2:
        raise ValueError("position must be [lng, lat]")
    lng, lat = position
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ValueError("coordinates must be finite")
    if not (-180 <= lng <= 180 and -90 <= lat <= 90):
        raise ValueError("coordinates out of range")
    return position


# ── Geometry ──────────────────────────────────────────────────────────────────

class PointGeometry(BaseModel):
    type: Literal["Point"]
    coordinates: list[float]

    @field_validator("coordinates")
    @classmethod
    def _valid_position(cls, v: list[float]) -> list[float]:
        return _check_position(v)


class PolygonGeometry(BaseModel):
    type: Literal["Polygon"]
    coordinates: list[list[list[float]]] = Field(..., min_length=1)

    @field_validator("coordinates")
    @classmethod
    def _valid_rings(cls, rings: list[list[list[float]]]) -> list[list[list[float]]]:
        for ring in rings:
            if len(ring) < 4:
                raise ValueError("polygon ring needs at least 4 positions")
            for position in ring:
                _check_position(position)
            if ring[0] != ring[-1]:
                raise ValueError("polygon ring must be closed")
        return rings


Geometry = Annotated[Union[PointGeometry, PolygonGeometry], Field(discriminator="type")]


# ── Scores ────────────────────────────────────────────────────────────────────

class Scores(BaseModel):
    safety: Score
    amenities: Score
    livability: Score


# ── Requests ──────────────────────────────────────────────────────────────────

class RatingCreate(BaseModel):
    """Payload for POST /api/v1/ratings."""
    geometry: Geometry
    scores: Scores
    note: Optional[str] = Field(default=None, max_length=140)
    device_id: Optional[str] = Field(default=None, max_length=100)


class RatingPatch(BaseModel):
    """
    Payload for PATCH /api/v1/ratings/{id}.

    Admins send `status`; owners send `scores` (and optionally `note`).
    Geometry and centroid are not editable.
    """
    status: Optional[Literal["approved", "rejected"]] = None
    scores: Optional[Scores] = None
    note: Optional[str] = Field(default=None, max_length=140)


class FlagRequest(BaseModel):
    """Payload for POST /api/v1/ratings/flag."""
    rating_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=200)


# ── Responses ─────────────────────────────────────────────────────────────────

class RatingOut(BaseModel):
    """A stored rating. `centroid` is the published (jittered) location."""
    id: str
    user_id: str
    geometry: Geometry
    centroid: list[float]
    scores: Scores
    note: Optional[str] = None
    status: RatingStatus
    device_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RatingCreateResponse(BaseModel):
    ok: bool
    id: str
    status: RatingStatus
    scores: Scores


class RatingListResponse(BaseModel):
    items: list[RatingOut]
    count: int


class FlagResponse(BaseModel):
    ok: bool
    id: str
    status: RatingStatus
