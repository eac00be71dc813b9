"""
catechesis.engine.lifecycle — Submission status state machine
===============================================================

States::

    PENDING ──► UNDER_REVIEW ──► APPROVED ⇄ FLAGGED
                      │
                      └────────► REJECTED

Reviews may move a submission to APPROVED / REJECTED / UNDER_REVIEW from
any state.  FLAGGED is only ever entered from APPROVED (the flag ledger
owns that edge).  No state is intrinsically terminal; removal happens
only through an explicit admin delete.

Entering UNDER_REVIEW stamps ``reviewed_at`` (re-entry re-stamps);
entering APPROVED stamps ``approved_at``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from catechesis.database.models import ReviewStatus, SubmissionStatus, utcnow
from catechesis.errors import CONFLICT_INVALID_TRANSITION, ConflictError

if TYPE_CHECKING:
    from catechesis.database.models import ExplanationSubmission


def check_transition(current: SubmissionStatus | str, target: SubmissionStatus | str) -> None:
    """Raise :class:`ConflictError` if *current* → *target* is not allowed."""
    match SubmissionStatus(target):
        case SubmissionStatus.FLAGGED:
            if current != SubmissionStatus.APPROVED:
                raise ConflictError(
                    CONFLICT_INVALID_TRANSITION,
                    f"Only APPROVED submissions can be flagged (status is {current})",
                )
        case SubmissionStatus.PENDING:
            if current != SubmissionStatus.PENDING:
                raise ConflictError(
                    CONFLICT_INVALID_TRANSITION,
                    f"A submission cannot return to PENDING (status is {current})",
                )
        case SubmissionStatus.UNDER_REVIEW | SubmissionStatus.APPROVED | SubmissionStatus.REJECTED:
            pass


def apply_status(
    submission: ExplanationSubmission,
    target: SubmissionStatus,
    now: datetime | None = None,
) -> bool:
    """Move *submission* to *target*, stamping lifecycle timestamps.

    Returns ``True`` when the status actually changed.  Setting the current
    status again is a no-op (except UNDER_REVIEW, whose stamp is refreshed
    on every entry the caller asks for).
    """
    check_transition(submission.status, target)
    now = now or utcnow()
    changed = submission.status != target

    match target:
        case SubmissionStatus.UNDER_REVIEW:
            submission.reviewed_at = now
        case SubmissionStatus.APPROVED:
            if changed:
                submission.approved_at = now
        case SubmissionStatus.PENDING | SubmissionStatus.REJECTED | SubmissionStatus.FLAGGED:
            pass

    submission.status = target
    return changed


def status_for_review(
    current: SubmissionStatus | str, review_status: ReviewStatus | str
) -> SubmissionStatus | None:
    """Submission status a review outcome drives, or ``None`` for no change."""
    match ReviewStatus(review_status):
        case ReviewStatus.APPROVED:
            return SubmissionStatus.APPROVED
        case ReviewStatus.REJECTED:
            return SubmissionStatus.REJECTED
        case ReviewStatus.NEEDS_REVISION:
            if current == SubmissionStatus.UNDER_REVIEW:
                return None
            return SubmissionStatus.UNDER_REVIEW
