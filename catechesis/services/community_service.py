"""
catechesis.services.community_service — Points, Achievements, Badges, Leaderboards
====================================================================================

Shared service module used by the community event handlers, the API and
the scheduler.

* **Activity** — :func:`record_activity` appends to the point ledger,
  bumps the matching profile counter and evaluates achievements, all in
  the caller's session.  Inserts are idempotent on ``source_key`` (SAVEPOINT
  + IntegrityError against ``ix_contribution_activity_idempotent``), so a
  replayed event changes nothing.
* **Achievements** — progress is monotonic, completion latches, and the
  first completion awards the linked badge.
* **Badges** — :func:`award_badge` is idempotent.
* **Leaderboards** — :func:`rebuild_leaderboard` is a full recompute for the
  current period, written in batches and serialized per (type, period).
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catechesis.collaborators import Actor
from catechesis.constants import ACTIVITY_POINTS, ENTITY_EXPLANATION
from catechesis.database.engine import get_session
from catechesis.database.models import (
    Achievement,
    ActivityType,
    Badge,
    ContributionActivity,
    LeaderboardEntry,
    LeaderboardType,
    UserAchievement,
    UserBadge,
    UserProfile,
    as_utc,
    utcnow,
)
from catechesis.engine.achievements import ACTIVITY_TO_COUNTER, evaluate_progress, metric_values
from catechesis.engine.periods import period_key, utc_today, window_start
from catechesis.errors import ValidationError
from catechesis.services.user_service import get_or_create_profile, get_or_create_user

logger = logging.getLogger(__name__)

# Leaderboard rows written per transaction during a rebuild
REBUILD_BATCH_SIZE = 500

EDITABLE_PROFILE_FIELDS: frozenset[str] = frozenset({
    "display_name", "bio", "avatar_url", "location", "website_url", "is_public",
})

_rebuild_locks: dict[tuple[str, str], threading.Lock] = {}
_rebuild_locks_guard = threading.Lock()


# ---------------------------------------------------------------------------
# Activity ledger
# ---------------------------------------------------------------------------
def _append_activity(
    session: Session,
    user_id: int,
    activity_type: ActivityType,
    entity_type: str,
    entity_id: int,
    points: int,
    occurred_at: datetime | None,
    source_key: str | None,
) -> ContributionActivity | None:
    """Insert one ledger row; ``None`` when *source_key* was already used."""
    if source_key is not None:
        seen = session.scalar(
            select(ContributionActivity.id).where(ContributionActivity.source_key == source_key)
        )
        if seen is not None:
            logger.debug("Duplicate activity %s ignored", source_key)
            return None

    when = as_utc(occurred_at) or utcnow()
    activity = ContributionActivity(
        user_id=user_id,
        activity_type=activity_type,
        entity_type=entity_type,
        entity_id=entity_id,
        points_earned=points,
        activity_date=when.date(),
        source_key=source_key,
        created_at=when,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(activity)
            session.flush()
    except IntegrityError:
        # A concurrent handler inserted the same key first
        logger.debug("Duplicate activity %s ignored (race)", source_key)
        return None
    return activity


def increment_counter(session: Session, profile: UserProfile, counter: str) -> int:
    """Add one to *counter* in SQL and reload *profile*; returns the new value.

    ``SET col = col + 1``: concurrent handlers for the same user never lose
    an increment.  On PostgreSQL the UPDATE holds the profile row lock until
    commit, so achievement evaluation for one user is serialized too.
    """
    column = getattr(UserProfile, counter)
    session.flush()
    session.execute(
        update(UserProfile)
        .where(UserProfile.user_id == profile.user_id)
        .values({column: column + 1})
        .execution_options(synchronize_session=False)
    )
    session.refresh(profile)
    return getattr(profile, counter)


def record_activity(
    session: Session,
    user_id: int,
    activity_type: ActivityType | str,
    entity_type: str,
    entity_id: int,
    points: int | None = None,
    *,
    occurred_at: datetime | None = None,
    source_key: str | None = None,
) -> ContributionActivity | None:
    """Append a point-earning action, bump its counter, re-check achievements.

    *points* defaults to :data:`~catechesis.constants.ACTIVITY_POINTS`.
    Returns ``None`` (and changes nothing) for a replayed *source_key*.
    """
    activity_type = ActivityType(activity_type)
    if points is None:
        points = ACTIVITY_POINTS[activity_type]

    profile = get_or_create_profile(session, user_id)
    activity = _append_activity(
        session, user_id, activity_type, entity_type, entity_id, points, occurred_at, source_key
    )
    if activity is None:
        return None

    counter = ACTIVITY_TO_COUNTER.get(activity_type)
    if counter is not None:
        increment_counter(session, profile, counter)
    check_achievements(session, user_id, profile)
    return activity


def record_approval(
    session: Session,
    user_id: int,
    submission_id: int,
    *,
    occurred_at: datetime | None = None,
    source_key: str | None = None,
) -> UserProfile | None:
    """+15 APPROVAL points and ``approved_submissions + 1`` for the submitter.

    Returns the updated profile, or ``None`` for a replay.
    """
    profile = get_or_create_profile(session, user_id)
    activity = _append_activity(
        session,
        user_id,
        ActivityType.APPROVAL,
        ENTITY_EXPLANATION,
        submission_id,
        ACTIVITY_POINTS[ActivityType.APPROVAL],
        occurred_at,
        source_key,
    )
    if activity is None:
        return None
    increment_counter(session, profile, "approved_submissions")
    check_achievements(session, user_id, profile)
    return profile


def record_helpful_vote_received(session: Session, user_id: int) -> int:
    """Bump the owner's helpful-vote counter; returns the new value."""
    profile = get_or_create_profile(session, user_id)
    increment_counter(session, profile, "total_helpful_votes")
    check_achievements(session, user_id, profile)
    return profile.total_helpful_votes


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------
def check_achievements(
    session: Session, user_id: int, profile: UserProfile | None = None
) -> list[UserAchievement]:
    """Advance every active achievement for *user_id*; return newly completed."""
    profile = profile or get_or_create_profile(session, user_id)
    values = metric_values(profile)
    achievements = session.scalars(
        select(Achievement).where(Achievement.is_active.is_(True))
    ).unique().all()
    progress = {
        ua.achievement_id: ua
        for ua in session.scalars(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        ).unique().all()
    }

    now = utcnow()
    newly_completed: list[UserAchievement] = []
    for achievement in achievements:
        if achievement.metric_key not in values:
            logger.debug("Achievement %s has unknown metric %s", achievement.code, achievement.metric_key)
            continue

        row = progress.get(achievement.id)
        update = evaluate_progress(
            values[achievement.metric_key],
            achievement.target_value,
            row.current_value if row is not None else None,
            row.completed if row is not None else False,
        )
        if update is None:
            continue

        if row is None:
            row = UserAchievement(
                user_id=user_id,
                achievement=achievement,
                current_value=update.current_value,
                completed=update.completed,
                completed_at=now if update.completed else None,
            )
            try:
                with session.begin_nested():
                    session.add(row)
                    session.flush()
            except IntegrityError:
                # Another handler created this progress row concurrently
                continue
        else:
            row.current_value = update.current_value
            if update.completed:
                row.completed = True
                row.completed_at = now

        if update.newly_completed:
            newly_completed.append(row)
            logger.info("User %s completed achievement %s", user_id, achievement.code)
            if achievement.badge is not None:
                award_badge(session, user_id, achievement.badge.code, f"Earned via {achievement.name}")

    return newly_completed


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
def award_badge(
    session: Session, user_id: int, code: str, note: str | None = None
) -> UserBadge | None:
    """Give badge *code* to *user_id*.  Already held / unknown → ``None``."""
    badge = session.scalar(select(Badge).where(Badge.code == code))
    if badge is None or not badge.is_active:
        logger.warning("Badge %s is not in the active catalog; not awarded", code)
        return None

    held = session.scalar(
        select(UserBadge.id).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge.id)
    )
    if held is not None:
        return None

    user_badge = UserBadge(user_id=user_id, badge=badge, context_note=note)
    try:
        with session.begin_nested():
            session.add(user_badge)
            session.flush()
    except IntegrityError:
        return None
    logger.info("Awarded badge %s to user %s", code, user_id)
    return user_badge


def get_all_badges(engine: Engine) -> list[Badge]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.category, Badge.id)
        ).all())


def get_user_badges(engine: Engine, user_id: int) -> list[UserBadge]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(UserBadge)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at.desc())
        ).unique().all())


def has_badge(engine: Engine, user_id: int, code: str) -> bool:
    with Session(engine) as session:
        return session.scalar(
            select(UserBadge.id)
            .join(Badge, Badge.id == UserBadge.badge_id)
            .where(UserBadge.user_id == user_id, Badge.code == code)
        ) is not None


def get_all_achievements(engine: Engine) -> list[Achievement]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Achievement).where(Achievement.is_active.is_(True)).order_by(Achievement.id)
        ).unique().all())


def get_user_achievements(engine: Engine, user_id: int) -> list[UserAchievement]:
    """Completed first, then by progress ratio."""
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        ).unique().all())
    return sorted(
        rows,
        key=lambda ua: (
            ua.completed,
            ua.current_value / ua.achievement.target_value if ua.achievement.target_value else 1.0,
        ),
        reverse=True,
    )


def get_completed_achievements(engine: Engine, user_id: int) -> list[UserAchievement]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(UserAchievement)
            .where(UserAchievement.user_id == user_id, UserAchievement.completed.is_(True))
            .order_by(UserAchievement.completed_at.desc())
        ).unique().all())


# ---------------------------------------------------------------------------
# Profiles & stats
# ---------------------------------------------------------------------------
def get_profile(engine: Engine, user_id: int) -> UserProfile | None:
    with Session(engine, expire_on_commit=False) as session:
        return session.get(UserProfile, user_id)


def update_profile(engine: Engine, actor: Actor, **changes: object) -> UserProfile:
    """Edit the actor's own public profile fields."""
    unknown = set(changes) - EDITABLE_PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

    with Session(engine, expire_on_commit=False) as session:
        get_or_create_user(session, actor)
        profile = get_or_create_profile(session, actor.user_id)
        for key, value in changes.items():
            setattr(profile, key, value)
        session.commit()
        return profile


def get_total_points(engine: Engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.coalesce(func.sum(ContributionActivity.points_earned), 0))
            .where(ContributionActivity.user_id == user_id)
        ) or 0


def get_recent_activity(
    engine: Engine, user_id: int, days: int = 30, today: date | None = None
) -> list[ContributionActivity]:
    since = (today or utc_today()) - timedelta(days=days)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(ContributionActivity)
            .where(
                ContributionActivity.user_id == user_id,
                ContributionActivity.activity_date >= since,
            )
            .order_by(ContributionActivity.created_at.desc(), ContributionActivity.id.desc())
        ).all())


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
def _parse_board(board: LeaderboardType | str) -> LeaderboardType:
    try:
        return LeaderboardType(board)
    except ValueError:
        raise ValidationError(f"Unknown leaderboard type: {board!r}") from None


def _rebuild_lock(board: str, key: str) -> threading.Lock:
    """Per-process lock for one (board, period); idle locks of earlier
    periods of the same board are dropped."""
    with _rebuild_locks_guard:
        for stale in [
            k for k, lock in _rebuild_locks.items()
            if k[0] == board and k[1] != key and not lock.locked()
        ]:
            del _rebuild_locks[stale]
        return _rebuild_locks.setdefault((board, key), threading.Lock())


def rebuild_leaderboard(
    engine: Engine,
    board: LeaderboardType | str,
    today: date | None = None,
    batch_size: int = REBUILD_BATCH_SIZE,
) -> dict[str, int | str]:
    """Recompute the ranking of *board* for its current period.

    Users are ranked by points earned inside the window (ties by user id);
    the counters on each row are copied from the profile.  Rows of users
    who no longer have in-window activity are removed.

    Returns a summary dict: ``{"period_key": …, "ranked": N, "removed": M}``.
    """
    board = _parse_board(board)
    today = today or utc_today()
    key = period_key(board, today)
    since = window_start(board, today)

    with _rebuild_lock(board, key):
        points_col = func.sum(ContributionActivity.points_earned)
        with get_session(engine) as session:
            scored = session.execute(
                select(ContributionActivity.user_id, points_col.label("points"))
                .where(
                    ContributionActivity.activity_date >= since,
                    ContributionActivity.activity_date <= today,
                )
                .group_by(ContributionActivity.user_id)
                .order_by(points_col.desc(), ContributionActivity.user_id.asc())
            ).all()
            user_ids = [row.user_id for row in scored]
            profiles = {
                p.user_id: (p.total_submissions, p.approved_submissions, p.total_helpful_votes)
                for p in session.scalars(
                    select(UserProfile).where(UserProfile.user_id.in_(user_ids))
                ).all()
            } if user_ids else {}

        snapshot_at = utcnow()
        for start in range(0, len(scored), batch_size):
            chunk = scored[start:start + batch_size]
            with get_session(engine) as session:
                existing = {
                    entry.user_id: entry
                    for entry in session.scalars(
                        select(LeaderboardEntry).where(
                            LeaderboardEntry.leaderboard_type == board,
                            LeaderboardEntry.period_key == key,
                            LeaderboardEntry.user_id.in_([row.user_id for row in chunk]),
                        )
                    ).all()
                }
                for offset, row in enumerate(chunk):
                    submissions, approvals, helpful = profiles.get(row.user_id, (0, 0, 0))
                    entry = existing.get(row.user_id)
                    if entry is None:
                        entry = LeaderboardEntry(
                            user_id=row.user_id, leaderboard_type=board, period_key=key
                        )
                        session.add(entry)
                    entry.rank = start + offset + 1
                    entry.total_points = int(row.points or 0)
                    entry.submissions = submissions
                    entry.approvals = approvals
                    entry.helpful_votes = helpful
                    entry.snapshot_at = snapshot_at

        with get_session(engine) as session:
            stale = delete(LeaderboardEntry).where(
                LeaderboardEntry.leaderboard_type == board,
                LeaderboardEntry.period_key == key,
            )
            if user_ids:
                stale = stale.where(LeaderboardEntry.user_id.not_in(user_ids))
            removed = session.execute(stale).rowcount or 0

    logger.info(
        "Leaderboard %s/%s rebuilt: %d ranked, %d removed", board, key, len(scored), removed
    )
    return {"period_key": key, "ranked": len(scored), "removed": removed}


def rebuild_all_leaderboards(engine: Engine, today: date | None = None) -> dict[str, dict]:
    """Rebuild every board type; one failing board does not stop the others."""
    results: dict[str, dict] = {}
    for board in LeaderboardType:
        try:
            results[board.value] = rebuild_leaderboard(engine, board, today)
        except Exception:
            logger.exception("Leaderboard rebuild failed for %s", board)
            results[board.value] = {"error": "rebuild failed"}
    return results


def get_leaderboard(
    engine: Engine,
    board: LeaderboardType | str,
    limit: int = 20,
    today: date | None = None,
) -> list[LeaderboardEntry]:
    board = _parse_board(board)
    key = period_key(board, today or utc_today())
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(LeaderboardEntry)
            .where(LeaderboardEntry.leaderboard_type == board, LeaderboardEntry.period_key == key)
            .order_by(LeaderboardEntry.rank.asc())
            .limit(limit)
        ).all())


def get_user_rank(
    engine: Engine,
    user_id: int,
    board: LeaderboardType | str,
    today: date | None = None,
) -> LeaderboardEntry | None:
    board = _parse_board(board)
    key = period_key(board, today or utc_today())
    with Session(engine, expire_on_commit=False) as session:
        return session.scalar(
            select(LeaderboardEntry).where(
                LeaderboardEntry.user_id == user_id,
                LeaderboardEntry.leaderboard_type == board,
                LeaderboardEntry.period_key == key,
            )
        )
