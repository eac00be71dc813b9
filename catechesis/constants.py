"""
catechesis.constants — Shared Constants
=========================================

Single source of truth for role groups, activity point values, badge codes
and the achievement metric names.  Import from here instead of repeating
literals in services and handlers.
"""

from __future__ import annotations

from catechesis.database.models import ActivityType, UserRole

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
MODERATOR_ROLES: frozenset[UserRole] = frozenset({
    UserRole.PRIEST,
    UserRole.THEOLOGY_REVIEWER,
    UserRole.ADMIN,
})


def is_moderator(role: UserRole | str) -> bool:
    """True when *role* may review submissions and resolve flags."""
    return role in MODERATOR_ROLES


# ---------------------------------------------------------------------------
# Activity points
# ---------------------------------------------------------------------------
ACTIVITY_POINTS: dict[ActivityType, int] = {
    ActivityType.SUBMISSION: 5,
    ActivityType.APPROVAL: 15,
    ActivityType.VOTE: 1,
    ActivityType.FLAG_RESOLVED: 3,
    ActivityType.REVIEW: 5,
}

ENTITY_EXPLANATION = "EXPLANATION"
ENTITY_FLAG = "FLAG"
ENTITY_REVIEW = "REVIEW"

# ---------------------------------------------------------------------------
# Badge codes and the exact counter values at which handlers award them
# ---------------------------------------------------------------------------
BADGE_FIRST_SUBMISSION = "FIRST_SUBMISSION"
BADGE_FIRST_APPROVAL = "FIRST_APPROVAL"
BADGE_APPROVAL_10 = "APPROVAL_10"
BADGE_APPROVAL_50 = "APPROVAL_50"
BADGE_FIRST_VOTE = "FIRST_VOTE"
BADGE_HELPFUL_10 = "HELPFUL_10"
BADGE_HELPFUL_100 = "HELPFUL_100"
BADGE_FIRST_REVIEW = "FIRST_REVIEW"

APPROVAL_MILESTONES: dict[int, str] = {
    1: BADGE_FIRST_APPROVAL,
    10: BADGE_APPROVAL_10,
    50: BADGE_APPROVAL_50,
}

HELPFUL_MILESTONES: dict[int, str] = {
    10: BADGE_HELPFUL_10,
    100: BADGE_HELPFUL_100,
}

# ---------------------------------------------------------------------------
# Flag / review thresholds
# ---------------------------------------------------------------------------
HEAVILY_FLAGGED_THRESHOLD = 3
MIN_REVIEWS_FOR_DECISION = 2

# Allowed content types per upload category
FILE_CONTENT_TYPES: frozenset[str] = frozenset({"AUDIO", "VIDEO"})
