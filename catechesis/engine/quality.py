"""
catechesis.engine.quality — Explanation quality score
=======================================================

Blends moderator ratings, community helpfulness and view engagement into
a single 0–100 score, minus a penalty for open flags.  Recomputed inside
every vote, flag and review transaction; never cached beyond it.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

# ---------------------------------------------------------------------------
# Weights and defaults (single source of truth)
# ---------------------------------------------------------------------------
NEUTRAL_SCORE = 50
_RATING_SCALE = 20  # 1–5 star rating → 20–100
_WEIGHT_RATING = 0.4
_WEIGHT_HELPFUL = 0.3
_WEIGHT_ENGAGEMENT = 0.2
_WEIGHT_BASELINE = 0.1
_FLAG_PENALTY_EACH = 10
_FLAG_PENALTY_CAP = 50


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_quality_score(
    review_ratings: Iterable[int | None],
    vote_flags: Iterable[bool],
    view_count: int,
    helpful_count: int,
    open_flag_count: int,
) -> int:
    """Return the quality score of one submission, always in ``[0, 100]``.

    Parameters
    ----------
    review_ratings:
        ``quality_rating`` of every review (``None`` for unrated reviews).
    vote_flags:
        ``is_helpful`` of every vote.
    view_count, helpful_count:
        The submission's counters.
    open_flag_count:
        Number of flags still OPEN on the submission.
    """
    ratings = list(review_ratings)
    votes = list(vote_flags)

    if not ratings and not votes:
        return NEUTRAL_SCORE

    rated = [r for r in ratings if r is not None]
    avg_rating = (sum(rated) / len(rated)) * _RATING_SCALE if rated else NEUTRAL_SCORE

    if votes:
        helpful_ratio = sum(1 for v in votes if v) / len(votes) * 100
    else:
        helpful_ratio = NEUTRAL_SCORE

    if view_count > 0:
        engagement = _clamp(helpful_count / view_count * 100, 0, 100)
    else:
        engagement = NEUTRAL_SCORE

    weighted = (
        _WEIGHT_RATING * avg_rating
        + _WEIGHT_HELPFUL * helpful_ratio
        + _WEIGHT_ENGAGEMENT * engagement
        + _WEIGHT_BASELINE * NEUTRAL_SCORE
    )
    penalty = min(max(open_flag_count, 0) * _FLAG_PENALTY_EACH, _FLAG_PENALTY_CAP)
    return int(_clamp(_round_half_up(weighted - penalty), 0, 100))
