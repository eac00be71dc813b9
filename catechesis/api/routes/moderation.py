"""
catechesis.api.routes.moderation — Queue, flags & reviews
===========================================================

Reading the queue and the open-flag list needs a moderator role; the
write paths enforce their own permissions in the service layer.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from catechesis.api.deps import ActorDep, DispatcherDep, EngineDep
from catechesis.api.routes.explanations import submission_dict
from catechesis.collaborators import Actor
from catechesis.database.models import Flag, Review
from catechesis.errors import PermissionDenied
from catechesis.services import explanation_service, flag_service, review_service

router = APIRouter(tags=["moderation"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class FlagBody(BaseModel):
    reason: str
    details: str | None = Field(default=None, max_length=2000)


class ResolveBody(BaseModel):
    resolution: str
    notes: str | None = None


class ReviewBody(BaseModel):
    status: str
    quality_rating: int | None = None
    accuracy_score: int | None = None
    clarity_score: int | None = None
    theological_soundness_score: int | None = None
    comments: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _require_moderator(actor: Actor) -> None:
    if not actor.is_moderator:
        raise PermissionDenied("Moderator role required")


def flag_dict(f: Flag) -> dict:
    return {
        "id": f.id,
        "submission_id": f.submission_id,
        "flagger_id": str(f.flagger_id),
        "reason": f.reason,
        "details": f.details,
        "status": f.status,
        "moderator_id": str(f.moderator_id) if f.moderator_id is not None else None,
        "moderator_notes": f.moderator_notes,
        "resolved_at": f.resolved_at.isoformat() if f.resolved_at else None,
        "created_at": f.created_at.isoformat() if f.created_at else None,
    }


def review_dict(r: Review) -> dict:
    return {
        "id": r.id,
        "submission_id": r.submission_id,
        "reviewer_id": str(r.reviewer_id),
        "status": r.status,
        "comments": r.comments,
        "quality_rating": r.quality_rating,
        "accuracy_score": r.accuracy_score,
        "clarity_score": r.clarity_score,
        "theological_soundness_score": r.theological_soundness_score,
        "reviewed_at": r.reviewed_at.isoformat() if r.reviewed_at else None,
    }


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------
@router.get("/moderation/queue")
def moderation_queue(
    actor: ActorDep, engine: EngineDep, limit: int | None = Query(None, ge=1, le=500)
):
    """FLAGGED first, then UNDER_REVIEW, then PENDING; oldest first within each."""
    _require_moderator(actor)
    rows = explanation_service.get_moderation_queue(engine, limit)
    return {"explanations": [submission_dict(s) for s in rows]}


@router.get("/moderation/pending")
def pending(actor: ActorDep, engine: EngineDep):
    _require_moderator(actor)
    return {"explanations": [submission_dict(s) for s in explanation_service.get_pending(engine)]}


# ---------------------------------------------------------------------------
# Flags
# ---------------------------------------------------------------------------
@router.post("/explanations/{submission_id}/flags", status_code=status.HTTP_201_CREATED)
def flag_explanation(submission_id: int, body: FlagBody, actor: ActorDep, engine: EngineDep):
    flag = flag_service.flag_submission(engine, submission_id, actor, body.reason, body.details)
    return flag_dict(flag)


@router.get("/explanations/{submission_id}/flags")
def flags_for_explanation(
    submission_id: int, actor: ActorDep, engine: EngineDep, open_only: bool = Query(False)
):
    _require_moderator(actor)
    if open_only:
        rows = flag_service.get_open_flags(engine, submission_id)
    else:
        rows = flag_service.get_flags_for_submission(engine, submission_id)
    return {
        "flags": [flag_dict(f) for f in rows],
        "heavily_flagged": flag_service.is_heavily_flagged(engine, submission_id),
    }


@router.post("/flags/{flag_id}/resolve")
def resolve_flag(
    flag_id: int, body: ResolveBody, actor: ActorDep, engine: EngineDep, events: DispatcherDep
):
    flag = flag_service.resolve_flag(
        engine, flag_id, actor, body.resolution, body.notes, events=events
    )
    return flag_dict(flag)


@router.get("/flags/open")
def open_flags(actor: ActorDep, engine: EngineDep):
    _require_moderator(actor)
    return {"flags": [flag_dict(f) for f in flag_service.get_all_open_flags(engine)]}


@router.get("/flags/statistics")
def flag_statistics(actor: ActorDep, engine: EngineDep):
    _require_moderator(actor)
    stats = flag_service.get_flag_statistics(engine)
    return {"total": stats.total, "by_status": stats.by_status, "by_reason": stats.by_reason}


@router.get("/users/{user_id}/flags")
def flags_by_user(user_id: int, actor: ActorDep, engine: EngineDep):
    if actor.user_id != user_id:
        _require_moderator(actor)
    return {
        "raised": [flag_dict(f) for f in flag_service.get_flags_by_user(engine, user_id)],
        "resolved": [flag_dict(f) for f in flag_service.get_flags_resolved_by(engine, user_id)],
    }


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
@router.post("/explanations/{submission_id}/reviews", status_code=status.HTTP_201_CREATED)
def submit_review(
    submission_id: int,
    body: ReviewBody,
    actor: ActorDep,
    engine: EngineDep,
    events: DispatcherDep,
):
    review = review_service.submit_review(
        engine, submission_id, actor, body.status,
        quality_rating=body.quality_rating,
        accuracy_score=body.accuracy_score,
        clarity_score=body.clarity_score,
        theological_soundness_score=body.theological_soundness_score,
        comments=body.comments,
        events=events,
    )
    return review_dict(review)


@router.get("/explanations/{submission_id}/reviews")
def reviews_for_explanation(submission_id: int, engine: EngineDep):
    rows = review_service.get_reviews_for_submission(engine, submission_id)
    return {
        "reviews": [review_dict(r) for r in rows],
        "needs_more_reviews": review_service.needs_more_reviews(engine, submission_id),
    }


@router.get("/explanations/{submission_id}/consensus")
def consensus(submission_id: int, engine: EngineDep):
    result = review_service.get_consensus(engine, submission_id)
    return {
        "total_reviews": result.total_reviews,
        "approvals": result.approvals,
        "rejections": result.rejections,
        "needs_revision": result.needs_revision,
        "status": result.status,
        "has_consensus": result.has_consensus,
    }


@router.get("/explanations/{submission_id}/scores")
def average_scores(submission_id: int, engine: EngineDep):
    scores = review_service.get_average_scores(engine, submission_id)
    return {
        "review_count": scores.review_count,
        "quality_rating": scores.quality_rating,
        "accuracy_score": scores.accuracy_score,
        "clarity_score": scores.clarity_score,
        "theological_soundness_score": scores.theological_soundness_score,
    }


@router.get("/users/{user_id}/reviews")
def reviews_by_reviewer(user_id: int, engine: EngineDep):
    return {"reviews": [review_dict(r) for r in review_service.get_reviews_by_reviewer(engine, user_id)]}
