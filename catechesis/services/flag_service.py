"""
catechesis.services.flag_service — Flag Ledger
================================================

Users raise flags against explanations; moderators resolve or dismiss
them.  A user holds at most one OPEN flag per submission and may flag again
once their earlier flag is closed.

The first flag on an APPROVED submission moves it to FLAGGED; closing the
last OPEN flag on a FLAGGED submission moves it back to APPROVED.  The
quality score is recomputed in the same transaction either way.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catechesis.collaborators import Actor
from catechesis.constants import HEAVILY_FLAGGED_THRESHOLD
from catechesis.database.models import (
    FLAG_RESOLUTIONS,
    Flag,
    FlagReason,
    FlagStatus,
    SubmissionStatus,
)
from catechesis.engine.events import EventDispatcher, FlagResolved
from catechesis.engine.lifecycle import apply_status
from catechesis.errors import (
    CONFLICT_DUPLICATE_FLAG,
    ConflictError,
    NotFoundError,
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
class FlagStatistics:
    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    by_reason: dict[str, int] = field(default_factory=dict)


def _parse_reason(reason: FlagReason | str) -> FlagReason:
    try:
        return FlagReason(reason)
    except ValueError:
        raise ValidationError(f"Unknown flag reason: {reason}") from None


def _parse_resolution(resolution: FlagStatus | str) -> FlagStatus:
    try:
        parsed = FlagStatus(resolution)
    except ValueError:
        raise ValidationError(f"Unknown flag status: {resolution}") from None
    if parsed not in FLAG_RESOLUTIONS:
        raise ValidationError(f"Flag resolution must be RESOLVED or DISMISSED, got {parsed}")
    return parsed


def _open_flag_count(session: Session, submission_id: int) -> int:
    return session.scalar(
        select(func.count(Flag.id)).where(
            Flag.submission_id == submission_id, Flag.status == FlagStatus.OPEN
        )
    ) or 0


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def flag_submission(
    engine: Engine,
    submission_id: int,
    actor: Actor,
    reason: FlagReason | str,
    details: str | None = None,
) -> Flag:
    """Raise an OPEN flag; APPROVED submissions become FLAGGED."""
    parsed_reason = _parse_reason(reason)

    with Session(engine, expire_on_commit=False) as session:
        submission = lock_submission(session, submission_id)
        already_open = session.scalar(
            select(Flag.id).where(
                Flag.submission_id == submission_id,
                Flag.flagger_id == actor.user_id,
                Flag.status == FlagStatus.OPEN,
            )
        )
        if already_open is not None:
            raise ConflictError(
                CONFLICT_DUPLICATE_FLAG,
                f"User {actor.user_id} already has an open flag on submission {submission_id}",
            )
        get_or_create_user(session, actor)

        flag = Flag(
            submission_id=submission_id,
            flagger_id=actor.user_id,
            reason=parsed_reason,
            details=details,
            status=FlagStatus.OPEN,
        )
        session.add(flag)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                CONFLICT_DUPLICATE_FLAG,
                f"User {actor.user_id} already has an open flag on submission {submission_id}",
            ) from exc

        if submission.status == SubmissionStatus.APPROVED:
            apply_status(submission, SubmissionStatus.FLAGGED)
            logger.info("Submission %s flagged (%s) by %s", submission_id, parsed_reason, actor.user_id)
        recompute_quality_score(session, submission)
        session.commit()
        return flag


def resolve_flag(
    engine: Engine,
    flag_id: int,
    actor: Actor,
    resolution: FlagStatus | str,
    notes: str | None = None,
    *,
    events: EventDispatcher | None = None,
) -> Flag:
    """Close a flag as RESOLVED or DISMISSED (moderators only)."""
    parsed = _parse_resolution(resolution)
    if not actor.is_moderator:
        raise PermissionDenied("Only moderators can resolve flags")

    with Session(engine, expire_on_commit=False) as session:
        submission_id = session.scalar(select(Flag.submission_id).where(Flag.id == flag_id))
        if submission_id is None:
            raise NotFoundError("Flag", flag_id)
        # Lock order: submission first, then the flag, like every other ledger
        submission = lock_submission(session, submission_id)
        flag = session.get(Flag, flag_id, with_for_update=True)
        if flag is None:
            raise NotFoundError("Flag", flag_id)
        get_or_create_user(session, actor)

        flag.resolve(parsed, actor.user_id, notes)
        session.flush()

        if (
            submission.status == SubmissionStatus.FLAGGED
            and _open_flag_count(session, submission_id) == 0
        ):
            apply_status(submission, SubmissionStatus.APPROVED)
            logger.info("Submission %s restored to APPROVED after last flag closed", submission_id)
        recompute_quality_score(session, submission)
        session.commit()

    publish(events, FlagResolved(
        flag_id=flag.id,
        submission_id=submission_id,
        moderator_id=actor.user_id,
        resolution=parsed.value,
    ))
    return flag


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_flags_for_submission(engine: Engine, submission_id: int) -> list[Flag]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Flag).where(Flag.submission_id == submission_id).order_by(Flag.created_at.desc())
        ).all())


def get_open_flags(engine: Engine, submission_id: int) -> list[Flag]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Flag)
            .where(Flag.submission_id == submission_id, Flag.status == FlagStatus.OPEN)
            .order_by(Flag.created_at.asc())
        ).all())


def get_flags_by_user(engine: Engine, user_id: int) -> list[Flag]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Flag).where(Flag.flagger_id == user_id).order_by(Flag.created_at.desc())
        ).all())


def get_all_open_flags(engine: Engine) -> list[Flag]:
    """Moderator inbox: every OPEN flag, oldest first."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Flag)
            .where(Flag.status == FlagStatus.OPEN)
            .order_by(Flag.created_at.asc(), Flag.id.asc())
        ).all())


def get_flags_resolved_by(engine: Engine, moderator_id: int) -> list[Flag]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Flag)
            .where(Flag.moderator_id == moderator_id, Flag.resolved_at.isnot(None))
            .order_by(Flag.resolved_at.desc())
        ).all())


def get_flag_statistics(engine: Engine) -> FlagStatistics:
    with Session(engine) as session:
        rows = session.execute(select(Flag.status, Flag.reason)).all()
    return FlagStatistics(
        total=len(rows),
        by_status=dict(Counter(row.status for row in rows)),
        by_reason=dict(Counter(row.reason for row in rows)),
    )


def is_heavily_flagged(
    engine: Engine, submission_id: int, threshold: int = HEAVILY_FLAGGED_THRESHOLD
) -> bool:
    """True once a submission has *threshold* or more OPEN flags."""
    with Session(engine) as session:
        return _open_flag_count(session, submission_id) >= threshold
