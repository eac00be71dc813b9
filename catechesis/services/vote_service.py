"""
catechesis.services.vote_service — Vote Ledger
================================================

One helpful / unhelpful vote per (submission, user), only on APPROVED
submissions.  Each mutation runs in a single transaction holding the
submission row lock, so ``helpful_count`` always equals the number of
helpful votes and the quality score is recomputed before commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catechesis.collaborators import Actor
from catechesis.database.models import ExplanationSubmission, SubmissionStatus, Vote
from catechesis.engine.events import EventDispatcher, ExplanationVoted
from catechesis.errors import (
    CONFLICT_DUPLICATE_VOTE,
    CONFLICT_INVALID_STATE,
    ConflictError,
    NotFoundError,
)
from catechesis.services.explanation_service import (
    lock_submission,
    publish,
    recompute_quality_score,
)
from catechesis.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VoteStatistics:
    total_votes: int
    helpful_votes: int
    unhelpful_votes: int
    helpful_percentage: float


def _find_vote(session: Session, submission_id: int, user_id: int) -> Vote | None:
    return session.scalar(
        select(Vote).where(Vote.submission_id == submission_id, Vote.user_id == user_id)
    )


def _require_approved(submission: ExplanationSubmission) -> None:
    if submission.status != SubmissionStatus.APPROVED:
        raise ConflictError(
            CONFLICT_INVALID_STATE,
            f"Can only vote on APPROVED submissions (status is {submission.status})",
        )


def _adjust_helpful_count(session: Session, submission: ExplanationSubmission, delta: int) -> None:
    """``helpful_count += delta`` in SQL, then reload the locked row."""
    session.flush()
    session.execute(
        update(ExplanationSubmission)
        .where(ExplanationSubmission.id == submission.id)
        .values(helpful_count=ExplanationSubmission.helpful_count + delta)
        .execution_options(synchronize_session=False)
    )
    session.refresh(submission)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def cast_vote(
    engine: Engine,
    submission_id: int,
    actor: Actor,
    is_helpful: bool,
    comment: str | None = None,
    *,
    events: EventDispatcher | None = None,
) -> Vote:
    """Record a new vote.  A second vote by the same user is a conflict."""
    with Session(engine, expire_on_commit=False) as session:
        submission = lock_submission(session, submission_id)
        _require_approved(submission)
        if _find_vote(session, submission_id, actor.user_id) is not None:
            raise ConflictError(
                CONFLICT_DUPLICATE_VOTE,
                f"User {actor.user_id} already voted on submission {submission_id}",
            )
        get_or_create_user(session, actor)

        vote = Vote(
            submission_id=submission_id,
            user_id=actor.user_id,
            is_helpful=is_helpful,
            comment=comment,
        )
        session.add(vote)
        try:
            session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent insert of the same pair
            raise ConflictError(
                CONFLICT_DUPLICATE_VOTE,
                f"User {actor.user_id} already voted on submission {submission_id}",
            ) from exc
        if is_helpful:
            _adjust_helpful_count(session, submission, 1)
        recompute_quality_score(session, submission)
        owner_id = submission.submitter_id
        session.commit()

    publish(events, ExplanationVoted(
        submission_id=submission_id,
        voter_id=actor.user_id,
        owner_id=owner_id,
        is_helpful=is_helpful,
    ))
    return vote


def update_vote(
    engine: Engine,
    submission_id: int,
    actor: Actor,
    is_helpful: bool,
    comment: str | None = None,
) -> Vote:
    """Replace an existing vote (delete + insert in one transaction)."""
    with Session(engine, expire_on_commit=False) as session:
        submission = lock_submission(session, submission_id)
        existing = _find_vote(session, submission_id, actor.user_id)
        if existing is None:
            raise NotFoundError("Vote", (submission_id, actor.user_id))

        flipped = existing.is_helpful != is_helpful
        session.delete(existing)
        session.flush()

        vote = Vote(
            submission_id=submission_id,
            user_id=actor.user_id,
            is_helpful=is_helpful,
            comment=comment,
        )
        session.add(vote)
        session.flush()
        if flipped:
            _adjust_helpful_count(session, submission, 1 if is_helpful else -1)
        recompute_quality_score(session, submission)
        session.commit()
        return vote


def remove_vote(engine: Engine, submission_id: int, actor: Actor) -> bool:
    """Withdraw a vote.  Returns False if the user had not voted."""
    with Session(engine) as session:
        submission = lock_submission(session, submission_id)
        existing = _find_vote(session, submission_id, actor.user_id)
        if existing is None:
            return False
        was_helpful = existing.is_helpful
        session.delete(existing)
        session.flush()
        if was_helpful:
            _adjust_helpful_count(session, submission, -1)
        recompute_quality_score(session, submission)
        session.commit()
        return True


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_statistics(engine: Engine, submission_id: int) -> VoteStatistics:
    with Session(engine) as session:
        total = session.scalar(
            select(func.count(Vote.id)).where(Vote.submission_id == submission_id)
        ) or 0
        helpful = session.scalar(
            select(func.count(Vote.id)).where(
                Vote.submission_id == submission_id, Vote.is_helpful.is_(True)
            )
        ) or 0
    return VoteStatistics(
        total_votes=total,
        helpful_votes=helpful,
        unhelpful_votes=total - helpful,
        helpful_percentage=(helpful / total * 100) if total else 0.0,
    )


def get_user_vote(engine: Engine, submission_id: int, user_id: int) -> Vote | None:
    with Session(engine, expire_on_commit=False) as session:
        return _find_vote(session, submission_id, user_id)


def has_user_voted(engine: Engine, submission_id: int, user_id: int) -> bool:
    return get_user_vote(engine, submission_id, user_id) is not None


def get_votes_for_submission(engine: Engine, submission_id: int) -> list[Vote]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Vote)
            .where(Vote.submission_id == submission_id)
            .order_by(Vote.created_at.desc(), Vote.id.desc())
        ).all())


def get_votes_by_user(engine: Engine, user_id: int) -> list[Vote]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Vote).where(Vote.user_id == user_id).order_by(Vote.created_at.desc())
        ).all())


def get_top_voted(engine: Engine, question_id: int, limit: int = 10) -> list[ExplanationSubmission]:
    """APPROVED submissions for a question by quality score, then helpful count."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(ExplanationSubmission)
            .where(
                ExplanationSubmission.question_id == question_id,
                ExplanationSubmission.status == SubmissionStatus.APPROVED,
            )
            .order_by(
                func.coalesce(ExplanationSubmission.quality_score, 0).desc(),
                ExplanationSubmission.helpful_count.desc(),
                ExplanationSubmission.id.asc(),
            )
            .limit(limit)
        ).all())
