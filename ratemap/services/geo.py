"""
geo.py — Location privacy transformer.

Turns a submitted GeoJSON geometry (Point or Polygon) into the single
coordinate pair we are willing to publish for a rating:

    public = jitter(quantize(centroid(geometry)))

  centroid  — Point: itself. Polygon: mean of the exterior ring's positions
              (closing position included, which is how every stored rating
              so far was computed). "area_weighted" is available as opt-in.
  quantize  — snap each axis to a grid of `cell_size` degrees (0.001 ≈ 100 m).
  jitter    — add uniform noise in [-max_jitter, +max_jitter] per axis.

The random draw is not repeatable, so LocationTransformer.transform() must be
called exactly once per submission and its result persisted as-is. Never
recompute the public location from the stored geometry.

The same GridSpec is handed to the heat aggregator, which re-quantizes the
stored (jittered) points at read time. That only merges correctly while
max_jitter < cell_size / 2. GridSpec enforces it.

USAGE
─────
    from ratemap.services.geo import GridSpec, LocationTransformer

    transformer = LocationTransformer(GridSpec())
    location = transformer.transform({"type": "Point", "coordinates": [-7.62, 33.57]})
    location.quantized        # (-7.62, 33.57)
    location.to_document()    # {"type": "Point", "coordinates": [-7.6198.., 33.5702..]}
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from ratemap.core.errors import InvalidGeometry, UnsupportedGeometry

Coordinate = tuple[float, float]

DEFAULT_CELL_SIZE = 0.001
DEFAULT_MAX_JITTER = 0.0003

CENTROID_METHODS = ("vertex_mean", "area_weighted")


@dataclass(frozen=True)
class GridSpec:
    """Quantization grid shared by the write path and the read path."""

    cell_size: float = DEFAULT_CELL_SIZE
    max_jitter: float = DEFAULT_MAX_JITTER

    def __post_init__(self) -> None:
        if not (math.isfinite(self.cell_size) and self.cell_size > 0):
            raise ValueError(f"cell_size must be a positive number, got {self.cell_size!r}")
        if not (math.isfinite(self.max_jitter) and 0 <= self.max_jitter < self.cell_size / 2):
            raise ValueError(
                f"max_jitter must be in [0, cell_size / 2), got {self.max_jitter!r} "
                f"for cell_size {self.cell_size!r}"
            )


# ── Centroid ──────────────────────────────────────────────────────────────────

def _as_mapping(geometry: Any) -> Mapping[str, Any]:
    # Accept both raw GeoJSON dicts (from Mongo) and the request models.
    if hasattr(geometry, "model_dump"):
        return geometry.model_dump()
    if isinstance(geometry, Mapping):
        return geometry
    raise UnsupportedGeometry(f"Unsupported geometry: {type(geometry).__name__}")


def _vertex_mean(ring: list) -> Coordinate:
    x = sum(float(p[0]) for p in ring)
    y = sum(float(p[1]) for p in ring)
    return x / len(ring), y / len(ring)


def _area_weighted(ring: list) -> Coordinate:
    """Shoelace centroid of a simple ring; vertex mean when the area is zero."""
    points = [(float(p[0]), float(p[1])) for p in ring]
    if points[0] != points[-1]:
        points.append(points[0])

    area2 = 0.0
    cx = cy = 0.0
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        cross = x0 * y1 - x1 * y0
        area2 += cross
        cx += (x0 + x1) * cross
        cy += (y0 + y1) * cross

    if area2 == 0:
        return _vertex_mean(ring)
    return cx / (3 * area2), cy / (3 * area2)


def compute_centroid(geometry: Any, method: str = "vertex_mean") -> Coordinate:
    """
    Representative (lng, lat) of a Point or Polygon geometry.

    Raises UnsupportedGeometry for any other geometry type and
    InvalidGeometry when the coordinates are empty or not finite.
    """
    if method not in CENTROID_METHODS:
        raise ValueError(f"Unknown centroid method '{method}'")

    geom = _as_mapping(geometry)
    kind = geom.get("type")
    coords = geom.get("coordinates")

    if kind == "Point":
        if not coords or len(coords) != 2:
            raise InvalidGeometry("Point must have exactly two coordinates")
        centroid = (float(coords[0]), float(coords[1]))
    elif kind == "Polygon":
        ring = coords[0] if coords else None
        if not ring:
            raise InvalidGeometry("Polygon has an empty exterior ring")
        centroid = _area_weighted(ring) if method == "area_weighted" else _vertex_mean(ring)
    else:
        raise UnsupportedGeometry(f"Unsupported geometry type '{kind}'")

    if not all(math.isfinite(v) for v in centroid):
        raise InvalidGeometry("Geometry coordinates must be finite numbers")
    return centroid


# ── Quantization ──────────────────────────────────────────────────────────────

def _decimals(cell_size: float) -> int:
    return max(0, -Decimal(repr(cell_size)).normalize().as_tuple().exponent)


def cell_index(value: float, cell_size: float = DEFAULT_CELL_SIZE) -> int:
    """Integer grid index of *value*; ties round toward +inf like Math.round."""
    return math.floor(value / cell_size + 0.5)


def cell_center(index: int, cell_size: float = DEFAULT_CELL_SIZE) -> float:
    return round(index * cell_size, _decimals(cell_size))


def quantize_coordinate(value: float, cell_size: float = DEFAULT_CELL_SIZE) -> float:
    """Snap one axis to the nearest multiple of *cell_size*."""
    return cell_center(cell_index(value, cell_size), cell_size)


def quantize_centroid(centroid: Coordinate, cell_size: float = DEFAULT_CELL_SIZE) -> Coordinate:
    return (
        quantize_coordinate(centroid[0], cell_size),
        quantize_coordinate(centroid[1], cell_size),
    )


# ── Jitter ────────────────────────────────────────────────────────────────────

def add_jitter(
    value: float,
    max_jitter: float = DEFAULT_MAX_JITTER,
    rng: Optional[random.Random] = None,
) -> float:
    """Add a uniform offset in [-max_jitter, +max_jitter]. Not repeatable."""
    source = rng if rng is not None else random
    return value + source.uniform(-max_jitter, max_jitter)


# ── Pipeline ──────────────────────────────────────────────────────────────────

def _clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


@dataclass(frozen=True)
class PrivateLocation:
    """Outcome of one transform() call. Only `public` is ever published."""

    centroid: Coordinate
    quantized: Coordinate
    public: Coordinate

    def to_document(self) -> dict:
        """GeoJSON Point stored as the rating's `centroid` field."""
        return {"type": "Point", "coordinates": [self.public[0], self.public[1]]}


class LocationTransformer:
    """
    Geometry → PrivateLocation. Pass a seeded random.Random for repeatable
    output in tests; production uses the module-level generator.
    """

    def __init__(
        self,
        grid: GridSpec,
        rng: Optional[random.Random] = None,
        centroid_method: str = "vertex_mean",
    ):
        if centroid_method not in CENTROID_METHODS:
            raise ValueError(f"Unknown centroid method '{centroid_method}'")
        self.grid = grid
        self.rng = rng
        self.centroid_method = centroid_method

    def transform(self, geometry: Any) -> PrivateLocation:
        centroid = compute_centroid(geometry, self.centroid_method)
        quantized = quantize_centroid(centroid, self.grid.cell_size)
        # Clamped so points on the antimeridian or a pole stay legal positions.
        public = (
            _clamp(add_jitter(quantized[0], self.grid.max_jitter, self.rng), 180.0),
            _clamp(add_jitter(quantized[1], self.grid.max_jitter, self.rng), 90.0),
        )
        return PrivateLocation(centroid=centroid, quantized=quantized, public=public)
