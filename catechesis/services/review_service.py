"""
catechesis.services.review_service — Review Ledger & consensus
================================================================

Moderators (PRIEST, THEOLOGY_REVIEWER, ADMIN) submit one structured review
per submission.  A review drives the lifecycle immediately:

    APPROVED        → submission APPROVED
    REJECTED        → submission REJECTED
    NEEDS_REVISION  → submission UNDER_REVIEW (unless already there)

Consensus across all reviews is a strict majority and is reported, not
enforced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catechesis.collaborators import Actor
from catechesis.constants import MIN_REVIEWS_FOR_DECISION
from catechesis.database.models import Review, ReviewStatus, SubmissionStatus
from catechesis.engine.consensus import Consensus, compute_consensus, mean_or_none
from catechesis.engine.events import (
    EventDispatcher,
    ExplanationApproved,
    ExplanationRejected,
    ExplanationReviewed,
)
from catechesis.engine.lifecycle import apply_status, status_for_review
from catechesis.errors import (
    CONFLICT_DUPLICATE_REVIEW,
    ConflictError,
    PermissionDenied,
    ValidationError,
)
from catechesis.services.explanation_service import (
    lock_submission,
    publish,
    recompute_quality_score,
)
from catechesis.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AverageScores:
    """Per-criterion means; ``None`` where no review rated that criterion."""

    review_count: int
    quality_rating: float | None
    accuracy_score: float | None
    clarity_score: float | None
    theological_soundness_score: float | None


def _parse_status(status: ReviewStatus | str) -> ReviewStatus:
    try:
        return ReviewStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown review status: {status}") from None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def submit_review(
    engine: Engine,
    submission_id: int,
    actor: Actor,
    status: ReviewStatus | str,
    *,
    quality_rating: int | None = None,
    accuracy_score: int | None = None,
    clarity_score: int | None = None,
    theological_soundness_score: int | None = None,
    comments: str | None = None,
    events: EventDispatcher | None = None,
) -> Review:
    """Record a moderator review and apply its lifecycle outcome.

    Raises
    ------
    PermissionDenied
        Reviewer is not a moderator.
    NotFoundError
        Unknown submission.
    ConflictError
        ``duplicate_review`` when this reviewer already reviewed it.
    ValidationError
        Unknown status or a score outside 1–5.
    """
    if not actor.is_moderator:
        raise PermissionDenied("Only moderators can review submissions")
    parsed = _parse_status(status)

    with Session(engine, expire_on_commit=False) as session:
        submission = lock_submission(session, submission_id)
        existing = session.scalar(
            select(Review.id).where(
                Review.submission_id == submission_id, Review.reviewer_id == actor.user_id
            )
        )
        if existing is not None:
            raise ConflictError(
                CONFLICT_DUPLICATE_REVIEW,
                f"Reviewer {actor.user_id} already reviewed submission {submission_id}",
            )
        get_or_create_user(session, actor)

        # Score validators fire here and raise ValidationError
        review = Review(
            submission_id=submission_id,
            reviewer_id=actor.user_id,
            status=parsed,
            comments=comments,
            quality_rating=quality_rating,
            accuracy_score=accuracy_score,
            clarity_score=clarity_score,
            theological_soundness_score=theological_soundness_score,
        )
        session.add(review)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                CONFLICT_DUPLICATE_REVIEW,
                f"Reviewer {actor.user_id} already reviewed submission {submission_id}",
            ) from exc

        target = status_for_review(submission.status, parsed)
        changed = False
        if target is not None:
            changed = apply_status(submission, target)
        recompute_quality_score(session, submission)
        submitter_id = submission.submitter_id
        new_status = submission.status
        session.commit()

    logger.info(
        "Review %s on submission %s by %s: %s (submission now %s)",
        review.id, submission_id, actor.user_id, parsed, new_status,
    )
    publish(events, ExplanationReviewed(
        review_id=review.id,
        submission_id=submission_id,
        reviewer_id=actor.user_id,
        status=parsed.value,
    ))
    if changed and new_status == SubmissionStatus.APPROVED:
        publish(events, ExplanationApproved(submission_id=submission_id, submitter_id=submitter_id))
    elif changed and new_status == SubmissionStatus.REJECTED:
        publish(events, ExplanationRejected(submission_id=submission_id, submitter_id=submitter_id))
    return review


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_reviews_for_submission(engine: Engine, submission_id: int) -> list[Review]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Review)
            .where(Review.submission_id == submission_id)
            .order_by(Review.reviewed_at.asc(), Review.id.asc())
        ).all())


def get_reviews_by_reviewer(engine: Engine, reviewer_id: int) -> list[Review]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Review).where(Review.reviewer_id == reviewer_id).order_by(Review.reviewed_at.desc())
        ).all())


def get_consensus(engine: Engine, submission_id: int) -> Consensus:
    with Session(engine) as session:
        statuses = session.scalars(
            select(Review.status).where(Review.submission_id == submission_id)
        ).all()
    return compute_consensus(statuses)


def get_average_scores(engine: Engine, submission_id: int) -> AverageScores:
    reviews = get_reviews_for_submission(engine, submission_id)
    return AverageScores(
        review_count=len(reviews),
        quality_rating=mean_or_none(r.quality_rating for r in reviews),
        accuracy_score=mean_or_none(r.accuracy_score for r in reviews),
        clarity_score=mean_or_none(r.clarity_score for r in reviews),
        theological_soundness_score=mean_or_none(r.theological_soundness_score for r in reviews),
    )


def needs_more_reviews(
    engine: Engine, submission_id: int, minimum: int = MIN_REVIEWS_FOR_DECISION
) -> bool:
    with Session(engine) as session:
        count = session.scalar(
            select(func.count(Review.id)).where(Review.submission_id == submission_id)
        ) or 0
    return count < minimum
