"""
catechesis.database.seed — Badge & Achievement Catalog Seeder
===============================================================

The handlers award badges by code, so the catalog must exist before the
first event is processed.  Seeding runs from :func:`init_db` and from
``python -m catechesis seed``.

Idempotent — only inserts codes that don't already exist.  Rows edited
later (names, icons, ``is_active``) are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from catechesis.constants import (
    BADGE_APPROVAL_10,
    BADGE_APPROVAL_50,
    BADGE_FIRST_APPROVAL,
    BADGE_FIRST_REVIEW,
    BADGE_FIRST_SUBMISSION,
    BADGE_FIRST_VOTE,
    BADGE_HELPFUL_10,
    BADGE_HELPFUL_100,
)
from catechesis.database.models import Achievement, Badge

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Catalog: code → (name, description, category, points)
# ---------------------------------------------------------------------------
DEFAULT_BADGES: dict[str, tuple[str, str, str, int]] = {
    BADGE_FIRST_SUBMISSION: ("First Steps", "Submitted a first explanation", "CONTRIBUTION", 5),
    BADGE_FIRST_APPROVAL: ("Approved Voice", "First explanation approved", "CONTRIBUTION", 10),
    BADGE_APPROVAL_10: ("Faithful Teacher", "Ten explanations approved", "CONTRIBUTION", 25),
    BADGE_APPROVAL_50: ("Doctor of the Flock", "Fifty explanations approved", "CONTRIBUTION", 100),
    BADGE_FIRST_VOTE: ("Discerning Reader", "Cast a first vote", "COMMUNITY", 1),
    BADGE_HELPFUL_10: ("Helpful Guide", "Ten helpful votes received", "COMMUNITY", 10),
    BADGE_HELPFUL_100: ("Light to Others", "One hundred helpful votes received", "COMMUNITY", 50),
    BADGE_FIRST_REVIEW: ("Watchful Shepherd", "Resolved a first flag", "MODERATION", 5),
}

# code → (name, description, category, metric_key, target, points, badge_code)
DEFAULT_ACHIEVEMENTS: dict[str, tuple[str, str, str, str, int, int, str | None]] = {
    "SUBMIT_5": (
        "Diligent Student", "Submit five explanations",
        "CONTRIBUTION", "total_submissions", 5, 10, None,
    ),
    "SUBMIT_25": (
        "Steady Catechist", "Submit twenty-five explanations",
        "CONTRIBUTION", "total_submissions", 25, 30, None,
    ),
    "APPROVED_10": (
        "Trusted Explainer", "Have ten explanations approved",
        "CONTRIBUTION", "approved_submissions", 10, 25, BADGE_APPROVAL_10,
    ),
    "VOTES_50": (
        "Engaged Reader", "Cast fifty votes",
        "COMMUNITY", "total_votes_cast", 50, 15, None,
    ),
    "HELPFUL_25": (
        "Well Received", "Receive twenty-five helpful votes",
        "COMMUNITY", "total_helpful_votes", 25, 20, None,
    ),
    "FLAGS_10": (
        "Guardian of Truth", "Resolve ten flags",
        "MODERATION", "flags_resolved", 10, 20, None,
    ),
    "REVIEWS_10": (
        "Careful Reviewer", "Complete ten reviews",
        "MODERATION", "reviews_completed", 10, 20, None,
    ),
}


def seed_catalog(engine: Engine) -> dict[str, int]:
    """Insert missing badges and achievements.

    Returns ``{"badges": N, "achievements": M}`` — the number inserted.
    """
    with Session(engine) as session:
        existing_badges = {
            b.code: b for b in session.scalars(select(Badge)).all()
        }
        badges_added = 0
        for code, (name, description, category, points) in DEFAULT_BADGES.items():
            if code in existing_badges:
                continue
            badge = Badge(
                code=code, name=name, description=description,
                category=category, points_value=points,
            )
            session.add(badge)
            existing_badges[code] = badge
            badges_added += 1
        session.flush()

        existing_achievements = set(session.scalars(select(Achievement.code)).all())
        achievements_added = 0
        for code, entry in DEFAULT_ACHIEVEMENTS.items():
            if code in existing_achievements:
                continue
            name, description, category, metric, target, points, badge_code = entry
            badge = existing_badges.get(badge_code) if badge_code else None
            session.add(Achievement(
                code=code, name=name, description=description, category=category,
                metric_key=metric, target_value=target, points_value=points,
                badge_id=badge.id if badge is not None else None,
            ))
            achievements_added += 1
        session.commit()

    if badges_added or achievements_added:
        logger.info(
            "Seeded %d badge(s) and %d achievement(s)", badges_added, achievements_added
        )
    return {"badges": badges_added, "achievements": achievements_added}
