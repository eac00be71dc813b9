"""
catechesis.services.explanation_service — Submission intake & lifecycle
=========================================================================

Owns ``ExplanationSubmission.status``:

* intake of text and audio/video explanations,
* moderator claim (PENDING → UNDER_REVIEW),
* view counting, admin deletion,
* the shared helpers the vote / flag / review ledgers use inside their own
  transactions: :func:`lock_submission` and :func:`recompute_quality_score`,
* moderation queue and read queries.

Domain events are published only after the owning transaction commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, case, func, select
from sqlalchemy.orm import Session

from catechesis.collaborators import (
    Actor,
    ContentCatalog,
    FileCatalog,
    NullContentCatalog,
    NullFileCatalog,
)
from catechesis.constants import FILE_CONTENT_TYPES
from catechesis.database.models import (
    ContentType,
    ExplanationSubmission,
    Flag,
    FlagStatus,
    Review,
    SubmissionStatus,
    Vote,
)
from catechesis.engine.events import (
    DomainEvent,
    EventDispatcher,
    ExplanationDeleted,
    ExplanationSubmitted,
)
from catechesis.engine.lifecycle import apply_status
from catechesis.engine.quality import compute_quality_score
from catechesis.errors import (
    CONFLICT_INVALID_STATE,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from catechesis.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

# Moderation queue buckets, most urgent first
QUEUE_STATUSES: tuple[SubmissionStatus, ...] = (
    SubmissionStatus.FLAGGED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.PENDING,
)


# ---------------------------------------------------------------------------
# Shared transaction helpers
# ---------------------------------------------------------------------------
def lock_submission(session: Session, submission_id: int) -> ExplanationSubmission:
    """Load the submission with a row lock (``SELECT … FOR UPDATE``).

    Serializes concurrent votes / flags / reviews on the same submission;
    different submissions never contend.
    """
    submission = session.scalar(
        select(ExplanationSubmission)
        .where(ExplanationSubmission.id == submission_id)
        .with_for_update()
    )
    if submission is None:
        raise NotFoundError("Submission", submission_id)
    return submission


def recompute_quality_score(session: Session, submission: ExplanationSubmission) -> int:
    """Recompute and store the quality score from the rows in this session."""
    ratings = session.scalars(
        select(Review.quality_rating).where(Review.submission_id == submission.id)
    ).all()
    votes = session.scalars(
        select(Vote.is_helpful).where(Vote.submission_id == submission.id)
    ).all()
    open_flags = session.scalar(
        select(func.count(Flag.id)).where(
            Flag.submission_id == submission.id,
            Flag.status == FlagStatus.OPEN,
        )
    ) or 0

    score = compute_quality_score(
        ratings, votes, submission.view_count, submission.helpful_count, open_flags
    )
    submission.quality_score = score
    return score


def publish(events: EventDispatcher | None, event: DomainEvent) -> None:
    """Announce *event*; a missing dispatcher means nobody is listening."""
    if events is not None:
        events.publish(event)


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------
def _require_question(catalog: ContentCatalog, question_id: int) -> None:
    if not catalog.question_exists(question_id):
        raise NotFoundError("Question", question_id)


def _require_language(language_code: str) -> str:
    code = (language_code or "").strip()
    if not code:
        raise ValidationError("language_code must not be blank")
    return code


def submit_text(
    engine: Engine,
    actor: Actor,
    question_id: int,
    language_code: str,
    text: str,
    *,
    catalog: ContentCatalog | None = None,
    events: EventDispatcher | None = None,
) -> ExplanationSubmission:
    """Create a PENDING text explanation."""
    if not text or not text.strip():
        raise ValidationError("Explanation text must not be blank")
    language_code = _require_language(language_code)
    _require_question(catalog or NullContentCatalog(), question_id)

    with Session(engine, expire_on_commit=False) as session:
        get_or_create_user(session, actor)
        submission = ExplanationSubmission(
            question_id=question_id,
            submitter_id=actor.user_id,
            language_code=language_code,
            content_type=ContentType.TEXT,
            text_content=text.strip(),
            status=SubmissionStatus.PENDING,
        )
        session.add(submission)
        session.commit()

    logger.info(
        "Text explanation %s submitted by %s for question %s",
        submission.id, actor.user_id, question_id,
    )
    publish(events, ExplanationSubmitted(
        submission_id=submission.id,
        submitter_id=actor.user_id,
        question_id=question_id,
    ))
    return submission


def submit_file(
    engine: Engine,
    actor: Actor,
    question_id: int,
    language_code: str,
    content_type: ContentType | str,
    file_id: int,
    *,
    catalog: ContentCatalog | None = None,
    files: FileCatalog | None = None,
    events: EventDispatcher | None = None,
) -> ExplanationSubmission:
    """Create a PENDING audio / video explanation from an uploaded file.

    The file must belong to the submitter, have passed the virus scan and
    match the declared content type.
    """
    if content_type not in FILE_CONTENT_TYPES:
        raise ValidationError(f"content_type must be AUDIO or VIDEO, got {content_type}")
    language_code = _require_language(language_code)
    _require_question(catalog or NullContentCatalog(), question_id)

    info = (files or NullFileCatalog()).get_file(file_id)
    if info is None:
        raise NotFoundError("File", file_id)
    if info.uploader_id != actor.user_id:
        raise PermissionDenied("Only the uploader may submit this file")
    if not info.is_safe():
        raise ValidationError(f"File {file_id} has not passed the virus scan")
    if info.upload_type != content_type:
        raise ValidationError(
            f"File {file_id} is {info.upload_type}, not {content_type}"
        )

    with Session(engine, expire_on_commit=False) as session:
        get_or_create_user(session, actor)
        submission = ExplanationSubmission(
            question_id=question_id,
            submitter_id=actor.user_id,
            language_code=language_code,
            content_type=ContentType(content_type),
            file_id=info.file_id,
            file_url=info.url,
            file_size_bytes=info.size_bytes,
            file_mime_type=info.mime_type,
            duration_seconds=info.duration_seconds,
            status=SubmissionStatus.PENDING,
        )
        session.add(submission)
        session.commit()

    logger.info(
        "%s explanation %s submitted by %s (file %s)",
        content_type, submission.id, actor.user_id, file_id,
    )
    publish(events, ExplanationSubmitted(
        submission_id=submission.id,
        submitter_id=actor.user_id,
        question_id=question_id,
    ))
    return submission


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------
def start_review(engine: Engine, submission_id: int, actor: Actor) -> ExplanationSubmission:
    """A moderator claims a PENDING submission (re-claiming re-stamps)."""
    if not actor.is_moderator:
        raise PermissionDenied("Only moderators can start a review")

    with Session(engine, expire_on_commit=False) as session:
        submission = lock_submission(session, submission_id)
        if submission.status not in (SubmissionStatus.PENDING, SubmissionStatus.UNDER_REVIEW):
            raise ConflictError(
                CONFLICT_INVALID_STATE,
                f"Submission {submission_id} is {submission.status}, not awaiting review",
            )
        apply_status(submission, SubmissionStatus.UNDER_REVIEW)
        session.commit()
        return submission


def record_view(engine: Engine, submission_id: int) -> bool:
    """Increment the view counter.  Returns False for unknown submissions."""
    with Session(engine) as session:
        submission = _lock_or_none(session, submission_id)
        if submission is None:
            return False
        submission.view_count += 1
        session.commit()
        return True


def _lock_or_none(session: Session, submission_id: int) -> ExplanationSubmission | None:
    try:
        return lock_submission(session, submission_id)
    except NotFoundError:
        return None


def delete_submission(
    engine: Engine,
    submission_id: int,
    actor: Actor,
    *,
    events: EventDispatcher | None = None,
) -> None:
    """Admin-only hard delete; votes, flags and reviews go with it."""
    if not actor.is_admin:
        raise PermissionDenied("Only admins can delete submissions")

    with Session(engine) as session:
        submission = lock_submission(session, submission_id)
        submitter_id = submission.submitter_id
        session.delete(submission)
        session.commit()

    logger.info("Submission %s deleted by admin %s", submission_id, actor.user_id)
    publish(events, ExplanationDeleted(submission_id=submission_id, submitter_id=submitter_id))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_submission(engine: Engine, submission_id: int) -> ExplanationSubmission:
    with Session(engine, expire_on_commit=False) as session:
        submission = session.get(ExplanationSubmission, submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        return submission


def get_submissions_for_question(
    engine: Engine,
    question_id: int,
    status: SubmissionStatus | str | None = None,
    language_code: str | None = None,
) -> list[ExplanationSubmission]:
    """All submissions for a question, newest first, optionally filtered."""
    stmt = select(ExplanationSubmission).where(ExplanationSubmission.question_id == question_id)
    if status is not None:
        try:
            parsed = SubmissionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown submission status: {status}") from None
        stmt = stmt.where(ExplanationSubmission.status == parsed)
    if language_code is not None:
        stmt = stmt.where(ExplanationSubmission.language_code == language_code)
    stmt = stmt.order_by(ExplanationSubmission.submitted_at.desc(), ExplanationSubmission.id.desc())
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).all())


def get_approved_for_question(
    engine: Engine, question_id: int, language_code: str | None = None
) -> list[ExplanationSubmission]:
    """Public listing: APPROVED only, best quality first."""
    stmt = select(ExplanationSubmission).where(
        ExplanationSubmission.question_id == question_id,
        ExplanationSubmission.status == SubmissionStatus.APPROVED,
    )
    if language_code is not None:
        stmt = stmt.where(ExplanationSubmission.language_code == language_code)
    stmt = stmt.order_by(
        func.coalesce(ExplanationSubmission.quality_score, 0).desc(),
        ExplanationSubmission.helpful_count.desc(),
        ExplanationSubmission.id.asc(),
    )
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).all())


def get_user_submissions(engine: Engine, user_id: int) -> list[ExplanationSubmission]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(ExplanationSubmission)
            .where(ExplanationSubmission.submitter_id == user_id)
            .order_by(ExplanationSubmission.submitted_at.desc(), ExplanationSubmission.id.desc())
        ).all())


def get_pending(engine: Engine) -> list[ExplanationSubmission]:
    """PENDING submissions, oldest first."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(ExplanationSubmission)
            .where(ExplanationSubmission.status == SubmissionStatus.PENDING)
            .order_by(ExplanationSubmission.submitted_at.asc(), ExplanationSubmission.id.asc())
        ).all())


def get_moderation_queue(engine: Engine, limit: int | None = None) -> list[ExplanationSubmission]:
    """FLAGGED, then UNDER_REVIEW, then PENDING; oldest first inside each bucket."""
    priority = case(
        (ExplanationSubmission.status == SubmissionStatus.FLAGGED, 1),
        (ExplanationSubmission.status == SubmissionStatus.UNDER_REVIEW, 2),
        else_=3,
    )
    stmt = (
        select(ExplanationSubmission)
        .where(ExplanationSubmission.status.in_([s.value for s in QUEUE_STATUSES]))
        .order_by(priority, ExplanationSubmission.submitted_at.asc(), ExplanationSubmission.id.asc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).all())
