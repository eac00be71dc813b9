"""
catechesis.engine.consensus — Review majority & score averages
================================================================

Strict-majority consensus over a submission's reviews and per-criterion
score averages.  Pure functions over plain values.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from catechesis.database.models import ReviewStatus


@dataclass(frozen=True, slots=True)
class Consensus:
    """Outcome of :func:`compute_consensus`.

    ``status`` is ``None`` when no status holds a strict majority.
    """

    total_reviews: int
    approvals: int
    rejections: int
    needs_revision: int
    status: ReviewStatus | None

    @property
    def has_consensus(self) -> bool:
        return self.status is not None


def compute_consensus(statuses: Sequence[str]) -> Consensus:
    """Majority rule: a status wins only with more than half of all reviews.

    Ties never produce consensus; NEEDS_REVISION counts toward the total
    but never wins.
    """
    total = len(statuses)
    approvals = sum(1 for s in statuses if s == ReviewStatus.APPROVED)
    rejections = sum(1 for s in statuses if s == ReviewStatus.REJECTED)
    revisions = total - approvals - rejections

    status: ReviewStatus | None = None
    if total and approvals > total / 2:
        status = ReviewStatus.APPROVED
    elif total and rejections > total / 2:
        status = ReviewStatus.REJECTED

    return Consensus(
        total_reviews=total,
        approvals=approvals,
        rejections=rejections,
        needs_revision=revisions,
        status=status,
    )


def mean_or_none(values: Iterable[int | None]) -> float | None:
    """Mean of the non-null values, or ``None`` when there are none."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)
