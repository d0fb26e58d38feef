"""
errors.py — Domain error taxonomy.

Services raise these; main.py registers a single handler that renders them
as  { "detail": "...", "code": "...", "retryable": bool }  with the status
code below.

  UnsupportedGeometry  400  geometry tag is not Point / Polygon
  InvalidGeometry      400  structurally degenerate geometry (empty ring)
  InvalidBoundingBox   400  malformed or inverted bbox
  InvalidCategory      400  category outside the rating dimensions
  RatingNotFound       404  unknown rating id
  StorageUnavailable   503  the database query failed — the only retryable one
"""


class RatemapError(Exception):
    """Base class for every error the API reports to callers."""

    status_code = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self)


class UnsupportedGeometry(RatemapError):
    """Geometry type must be Point or Polygon."""

    status_code = 400
    code = "unsupported_geometry"


class InvalidGeometry(RatemapError):
    """Geometry has no usable coordinates."""

    status_code = 400
    code = "invalid_geometry"


class InvalidBoundingBox(RatemapError):
    """Invalid bbox coordinates."""

    status_code = 400
    code = "invalid_bbox"


class InvalidCategory(RatemapError):
    """Unknown rating category."""

    status_code = 400
    code = "invalid_category"


class RatingNotFound(RatemapError):
    """Rating not found."""

    status_code = 404
    code = "rating_not_found"


class StorageUnavailable(RatemapError):
    """Database unavailable."""

    status_code = 503
    code = "storage_unavailable"
    retryable = True
