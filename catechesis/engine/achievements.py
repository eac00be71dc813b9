"""
catechesis.engine.achievements — Achievement progress evaluation
==================================================================

Each achievement names a ``metric_key``; the metric is read from a fixed
mapping onto :class:`UserProfile` counters.  Progress only moves forward
and completion is a one-way latch: once an achievement is complete it is
never evaluated again.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from catechesis.database.models import UserProfile

# ---------------------------------------------------------------------------
# Metric name → UserProfile counter
# ---------------------------------------------------------------------------
METRIC_FIELDS: dict[str, str] = {
    "total_submissions": "total_submissions",
    "approved_submissions": "approved_submissions",
    "total_votes_cast": "total_votes_cast",
    "total_helpful_votes": "total_helpful_votes",
    "flags_resolved": "total_flags_resolved",
    "reviews_completed": "total_reviews_completed",
}

VALID_METRICS: frozenset[str] = frozenset(METRIC_FIELDS)

# Map ActivityType → UserProfile counter bumped by record_activity.
# APPROVAL is counted by record_approval, not by the generic path.
ACTIVITY_TO_COUNTER: dict[str, str] = {
    "SUBMISSION": "total_submissions",
    "VOTE": "total_votes_cast",
    "FLAG_RESOLVED": "total_flags_resolved",
    "REVIEW": "total_reviews_completed",
}


def metric_values(profile: UserProfile) -> dict[str, int]:
    """Snapshot every known metric from *profile*."""
    return {metric: getattr(profile, field) or 0 for metric, field in METRIC_FIELDS.items()}


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """New state for one (user, achievement) progress row."""

    current_value: int
    completed: bool
    newly_completed: bool


def evaluate_progress(
    metric_value: int,
    target_value: int,
    existing_value: int | None = None,
    existing_completed: bool = False,
) -> ProgressUpdate | None:
    """Decide the next progress state.

    Returns ``None`` when nothing may change (the row is already complete).
    ``existing_value is None`` means no progress row exists yet.
    """
    if existing_completed:
        return None

    value = metric_value if existing_value is None else max(existing_value, metric_value)
    done = value >= target_value
    return ProgressUpdate(current_value=value, completed=done, newly_completed=done)
