"""
ratings.py — Rating submission and moderation routes.

Routes:
  POST   /api/v1/ratings        — submit a rating (auth, rate-limited)
  GET    /api/v1/ratings        — own ratings; admins may list everything
  PATCH  /api/v1/ratings/{id}   — admin: approve / reject; owner: edit scores + note
  DELETE /api/v1/ratings/{id}   — owner or admin
  POST   /api/v1/ratings/flag   — send a rating back to moderation

Submission runs the location transformer exactly once and stores its public
(jittered) point as `centroid`. The raw geometry is kept for audit, but
neither field can be edited afterwards.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ratemap.core.config import settings
from ratemap.core.database import get_db
from ratemap.core.rate_limit import limiter
from ratemap.core.security import Identity
from ratemap.models.rating import (
    FlagRequest,
    FlagResponse,
    RatingCreate,
    RatingCreateResponse,
    RatingListResponse,
    RatingOut,
    RatingPatch,
    RatingStatus,
)
from ratemap.routes.auth import CurrentUser
from ratemap.services.geo import LocationTransformer
from ratemap.services.rating_store import RatingStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ratings", tags=["ratings"])

_transformer = LocationTransformer(settings.grid, centroid_method=settings.centroid_method)


def get_transformer() -> LocationTransformer:
    """FastAPI dependency — overridden in tests with a seeded transformer."""
    return _transformer


# ── Helpers ───────────────────────────────────────────────────────────────────

def _doc_to_rating(doc: dict) -> RatingOut:
    now = datetime.now(tz=timezone.utc)
    return RatingOut(
        id=str(doc["_id"]),
        user_id=str(doc["user_id"]),
        geometry=doc["geometry"],
        centroid=doc["centroid"]["coordinates"],
        scores=doc["scores"],
        note=doc.get("note"),
        status=doc.get("status", "pending"),
        device_id=doc.get("device_id"),
        created_at=doc.get("created_at", now),
        updated_at=doc.get("updated_at", now),
    )


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = " ".join(note.split())
    return note or None


def _require_owner_or_admin(doc: dict, user: Identity, action: str) -> None:
    if str(doc["user_id"]) != user.user_id and not user.is_admin:
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this rating")


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("", response_model=RatingCreateResponse, status_code=201)
@limiter.limit(settings.rating_submit_limit)
async def create_rating(
    request: Request,
    payload: RatingCreate,
    user: CurrentUser,
    db=Depends(get_db),
    transformer: LocationTransformer = Depends(get_transformer),
):
    """Store a rating with its privacy-protected location."""
    store = RatingStore(db)

    # The only random draw for this submission; its result is what gets stored.
    location = transformer.transform(payload.geometry)

    note = _clean_note(payload.note)
    status = "pending" if settings.review_notes and note else "approved"
    now = datetime.now(tz=timezone.utc)
    doc = {
        "user_id": user.user_id,
        "geometry": payload.geometry.model_dump(),
        "centroid": location.to_document(),
        "scores": payload.scores.model_dump(),
        "note": note,
        "status": status,
        "device_id": payload.device_id,
        "created_at": now,
        "updated_at": now,
    }
    rating_id = await store.insert(doc)
    logger.info("Rating %s stored for user %s (status=%s)", rating_id, user.user_id, status)

    return RatingCreateResponse(ok=True, id=rating_id, status=status, scores=payload.scores)


@router.get("", response_model=RatingListResponse)
async def list_ratings(
    user: CurrentUser,
    status: Optional[RatingStatus] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db=Depends(get_db),
):
    """Own ratings for regular users; any user's (or all) ratings for admins."""
    query: dict = {}
    if user_id:
        if user_id != user.user_id and not user.is_admin:
            raise HTTPException(status_code=403, detail="Forbidden")
        query["user_id"] = user_id
    elif not user.is_admin:
        query["user_id"] = user.user_id

    if status:
        query["status"] = status

    docs = await RatingStore(db).list_ratings(query, limit=limit)
    items = [_doc_to_rating(d) for d in docs]
    return RatingListResponse(items=items, count=len(items))


@router.post("/flag", response_model=FlagResponse)
async def flag_rating(payload: FlagRequest, user: CurrentUser, db=Depends(get_db)):
    """Put a rating back into the moderation queue."""
    store = RatingStore(db)
    doc = await store.set_status(payload.rating_id, "pending")
    logger.info(
        "Rating %s flagged by %s: %s", payload.rating_id, user.user_id, payload.reason
    )
    return FlagResponse(ok=True, id=str(doc["_id"]), status=doc["status"])


@router.patch("/{rating_id}", response_model=RatingOut)
async def update_rating(
    rating_id: str,
    payload: RatingPatch,
    user: CurrentUser,
    db=Depends(get_db),
):
    """
    Moderate (admin) or edit scores and note (owner).

    A status change is sent on its own; mixing it with scores or a note is a 422.
    """
    store = RatingStore(db)
    doc = await store.get(rating_id)
    _require_owner_or_admin(doc, user, "update")

    if payload.status is not None:
        if not user.is_admin:
            raise HTTPException(status_code=403, detail="Only moderators can change status")
        if payload.scores is not None or "note" in payload.model_fields_set:
            raise HTTPException(
                status_code=422, detail="Status changes cannot be combined with edits"
            )
        doc = await store.set_status(rating_id, payload.status)
        logger.info("Rating %s %s by %s", rating_id, payload.status, user.user_id)
        return _doc_to_rating(doc)

    if payload.scores is None:
        raise HTTPException(status_code=422, detail="Nothing to update")

    # An omitted note is left alone; an explicit null or blank note clears it.
    fields = {}
    if "note" in payload.model_fields_set:
        fields["note"] = _clean_note(payload.note)
    doc = await store.update_scores(rating_id, payload.scores.model_dump(), **fields)
    return _doc_to_rating(doc)


@router.delete("/{rating_id}")
async def delete_rating(rating_id: str, user: CurrentUser, db=Depends(get_db)):
    """Delete a rating (owner or admin)."""
    store = RatingStore(db)
    doc = await store.get(rating_id)
    _require_owner_or_admin(doc, user, "delete")
    await store.delete(rating_id)
    logger.info("Rating %s deleted by %s", rating_id, user.user_id)
    return {"ok": True, "id": rating_id}
