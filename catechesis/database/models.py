"""
catechesis.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- users                    — Local mirror of the external user directory
- explanation_submissions  — Crowd-sourced explanations + derived quality score
- explanation_votes        — One helpful/unhelpful vote per (submission, user)
- explanation_flags        — Content concerns awaiting moderator resolution
- explanation_reviews      — One structured moderator review per (submission, reviewer)
- user_profiles            — Public profile + denormalized contribution counters
- badges / user_badges     — Badge catalog and awards
- achievements / user_achievements — Metric-threshold goals and progress
- contribution_activity    — Append-only point ledger with idempotent insert
- leaderboard_entries      — Ranked rows per (type, period), rebuilt in bulk
- analytics_daily_snapshots / analytics_user_growth /
  analytics_moderation_performance — One row per calendar date
"""

from __future__ import annotations

import enum
from datetime import UTC, date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from catechesis.errors import CONFLICT_FLAG_CLOSED, ConflictError, ValidationError


def utcnow() -> datetime:
    """Timezone-aware ``now`` used for every timestamp column default."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Catechesis ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(enum.StrEnum):
    PUBLIC_USER = "PUBLIC_USER"
    CATECHIST = "CATECHIST"
    PRIEST = "PRIEST"
    THEOLOGY_REVIEWER = "THEOLOGY_REVIEWER"
    ADMIN = "ADMIN"


class ContentType(enum.StrEnum):
    TEXT = "TEXT"
    AUDIO = "AUDIO"
    VIDEO = "VIDEO"


class SubmissionStatus(enum.StrEnum):
    """Explanation lifecycle states (see :mod:`catechesis.engine.lifecycle`)."""
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FLAGGED = "FLAGGED"


class FlagReason(enum.StrEnum):
    INACCURATE = "INACCURATE"
    INAPPROPRIATE = "INAPPROPRIATE"
    MISLEADING = "MISLEADING"
    POOR_QUALITY = "POOR_QUALITY"
    DUPLICATE = "DUPLICATE"
    OFF_TOPIC = "OFF_TOPIC"
    OTHER = "OTHER"


class FlagStatus(enum.StrEnum):
    OPEN = "OPEN"
    REVIEWED = "REVIEWED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class ReviewStatus(enum.StrEnum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"


class ActivityType(enum.StrEnum):
    """Point-earning actions recorded in contribution_activity."""
    SUBMISSION = "SUBMISSION"
    APPROVAL = "APPROVAL"
    REVIEW = "REVIEW"
    VOTE = "VOTE"
    FLAG_RESOLVED = "FLAG_RESOLVED"


class LeaderboardType(enum.StrEnum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    ALL_TIME = "ALL_TIME"


# Terminal flag resolutions accepted by Flag.resolve()
FLAG_RESOLUTIONS: frozenset[FlagStatus] = frozenset({FlagStatus.RESOLVED, FlagStatus.DISMISSED})

REVIEW_SCORE_MIN = 1
REVIEW_SCORE_MAX = 5


# ---------------------------------------------------------------------------
# Users: mirror of the external identity provider
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=UserRole.PUBLIC_USER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    profile: Mapped[UserProfile | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
        Index("ix_users_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.display_name!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Explanation submissions
# ---------------------------------------------------------------------------
class ExplanationSubmission(Base):
    """A user-contributed explanation attached to a catechism question.

    ``helpful_count`` is denormalized and always equals the number of
    helpful votes; ``quality_score`` is recomputed inside every vote, flag
    and review transaction.
    """
    __tablename__ = "explanation_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    submitter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    language_code: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    content_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # Payload: text, or a reference to an uploaded file
    text_content: Mapped[str | None] = mapped_column(Text, default=None)
    file_id: Mapped[int | None] = mapped_column(Integer, default=None)
    file_url: Mapped[str | None] = mapped_column(String(500), default=None)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, default=None)
    file_mime_type: Mapped[str | None] = mapped_column(String(100), default=None)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, default=None)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubmissionStatus.PENDING
    )
    quality_score: Mapped[int | None] = mapped_column(Integer, default=None)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    helpful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    votes: Mapped[list[Vote]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )
    flags: Mapped[list[Flag]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )
    reviews: Mapped[list[Review]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_submissions_question_status", "question_id", "status"),
        Index("ix_submissions_status_submitted", "status", "submitted_at"),
        Index("ix_submissions_submitter", "submitter_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ExplanationSubmission id={self.id} q={self.question_id} "
            f"status={self.status} score={self.quality_score}>"
        )


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "explanation_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("explanation_submissions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    is_helpful: Mapped[bool] = mapped_column(Boolean, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    submission: Mapped[ExplanationSubmission] = relationship(back_populates="votes")

    __table_args__ = (
        UniqueConstraint("submission_id", "user_id", name="uq_votes_submission_user"),
        Index("ix_votes_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Vote sub={self.submission_id} user={self.user_id} helpful={self.is_helpful}>"


# ---------------------------------------------------------------------------
# Flags
# ---------------------------------------------------------------------------
class Flag(Base):
    __tablename__ = "explanation_flags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("explanation_submissions.id", ondelete="CASCADE"), nullable=False
    )
    flagger_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=FlagStatus.OPEN)
    moderator_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), default=None
    )
    moderator_notes: Mapped[str | None] = mapped_column(Text, default=None)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    submission: Mapped[ExplanationSubmission] = relationship(back_populates="flags")

    __table_args__ = (
        # At most one OPEN flag per flagger per submission; re-flag after resolution is fine
        Index(
            "ix_flags_one_open_per_flagger",
            "submission_id",
            "flagger_id",
            unique=True,
            postgresql_where=status == FlagStatus.OPEN.value,
            sqlite_where=status == FlagStatus.OPEN.value,
        ),
        Index("ix_flags_status_created", "status", "created_at"),
        Index("ix_flags_flagger", "flagger_id"),
    )

    def resolve(
        self,
        resolution: FlagStatus,
        moderator_id: int,
        notes: str | None,
        now: datetime | None = None,
    ) -> None:
        """Close the flag.  Only RESOLVED / DISMISSED are terminal, and a flag
        closes exactly once."""
        if resolution not in FLAG_RESOLUTIONS:
            raise ValidationError(
                f"Flag resolution must be RESOLVED or DISMISSED, got {resolution}"
            )
        if self.resolved_at is not None:
            raise ConflictError(CONFLICT_FLAG_CLOSED, f"Flag {self.id} is already closed")
        self.status = resolution
        self.moderator_id = moderator_id
        self.moderator_notes = notes
        self.resolved_at = now or utcnow()

    def __repr__(self) -> str:
        return f"<Flag id={self.id} sub={self.submission_id} reason={self.reason} status={self.status}>"


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
class Review(Base):
    __tablename__ = "explanation_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("explanation_submissions.id", ondelete="CASCADE"), nullable=False
    )
    reviewer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, default=None)
    quality_rating: Mapped[int | None] = mapped_column(Integer, default=None)
    accuracy_score: Mapped[int | None] = mapped_column(Integer, default=None)
    clarity_score: Mapped[int | None] = mapped_column(Integer, default=None)
    theological_soundness_score: Mapped[int | None] = mapped_column(Integer, default=None)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    submission: Mapped[ExplanationSubmission] = relationship(back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("submission_id", "reviewer_id", name="uq_reviews_submission_reviewer"),
        Index("ix_reviews_reviewer", "reviewer_id"),
        Index("ix_reviews_reviewed_at", "reviewed_at"),
    )

    @validates(
        "quality_rating", "accuracy_score", "clarity_score", "theological_soundness_score"
    )
    def _validate_score(self, key: str, value: int | None) -> int | None:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{key} must be a whole number, got {value!r}")
        if not REVIEW_SCORE_MIN <= value <= REVIEW_SCORE_MAX:
            raise ValidationError(
                f"{key} must be between {REVIEW_SCORE_MIN} and {REVIEW_SCORE_MAX}, got {value}"
            )
        return value

    def __repr__(self) -> str:
        return f"<Review sub={self.submission_id} reviewer={self.reviewer_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Profiles: public fields + achievement counters
# ---------------------------------------------------------------------------
class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    bio: Mapped[str | None] = mapped_column(Text, default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    location: Mapped[str | None] = mapped_column(String(100), default=None)
    website_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)

    total_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approved_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_votes_cast: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_helpful_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_flags_resolved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_reviews_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped[User] = relationship(back_populates="profile")

    def __repr__(self) -> str:
        return (
            f"<UserProfile user={self.user_id} subs={self.total_submissions} "
            f"approved={self.approved_submissions}>"
        )


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    points_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Badge code={self.code!r}>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    context_note: Mapped[str | None] = mapped_column(Text, default=None)

    badge: Mapped[Badge] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_key: Mapped[str] = mapped_column(String(50), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    points_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badge_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="SET NULL"), default=None
    )
    icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    badge: Mapped[Badge | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Achievement code={self.code!r} {self.metric_key}>={self.target_value}>"


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    achievement: Mapped[Achievement] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_ach"),
    )

    @property
    def progress_percent(self) -> int:
        target = self.achievement.target_value
        if target <= 0:
            return 100
        return max(0, min(100, int(self.current_value / target * 100)))

    def __repr__(self) -> str:
        return (
            f"<UserAchievement user={self.user_id} ach={self.achievement_id} "
            f"value={self.current_value} done={self.completed}>"
        )


# ---------------------------------------------------------------------------
# ContributionActivity: append-only point ledger
# ---------------------------------------------------------------------------
class ContributionActivity(Base):
    __tablename__ = "contribution_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_key: Mapped[str | None] = mapped_column(String(128), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        # Replayed events carry the same source_key and are dropped on insert
        Index(
            "ix_contribution_activity_idempotent",
            "source_key",
            unique=True,
            postgresql_where=source_key.isnot(None),
            sqlite_where=source_key.isnot(None),
        ),
        Index("ix_contribution_activity_user_date", "user_id", "activity_date"),
        Index("ix_contribution_activity_date", "activity_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ContributionActivity user={self.user_id} type={self.activity_type} "
            f"pts={self.points_earned}>"
        )


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    leaderboard_type: Mapped[str] = mapped_column(String(10), nullable=False)
    period_key: Mapped[str] = mapped_column(String(10), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approvals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    helpful_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snapshot_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "leaderboard_type", "period_key", name="uq_leaderboard_user_period"
        ),
        Index("ix_leaderboard_period_rank", "leaderboard_type", "period_key", "rank"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaderboardEntry {self.leaderboard_type}/{self.period_key} "
            f"#{self.rank} user={self.user_id} pts={self.total_points}>"
        )


# ---------------------------------------------------------------------------
# Analytics: one row per calendar date, upserted by the nightly job
# ---------------------------------------------------------------------------
class AnalyticsDailySnapshot(Base):
    __tablename__ = "analytics_daily_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)

    # Catalog
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_booklets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_acts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Explanations
    total_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    under_review_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approved_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejected_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flagged_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    text_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    audio_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    video_explanations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_explanations_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_approvals_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Users
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_users_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_users_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Engagement
    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_helpful_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_flags: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    open_flags: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Global point-in-time averages
    avg_quality_score: Mapped[float | None] = mapped_column(Float, default=None)
    avg_helpful_pct: Mapped[float | None] = mapped_column(Float, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<AnalyticsDailySnapshot {self.snapshot_date} total={self.total_explanations}>"


class AnalyticsUserGrowth(Base):
    __tablename__ = "analytics_user_growth"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    public_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    catechists: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    theology_reviewers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    admins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_registrations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<AnalyticsUserGrowth {self.snapshot_date} total={self.total_users}>"


class AnalyticsModerationPerformance(Base):
    __tablename__ = "analytics_moderation_performance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    avg_review_hours: Mapped[float | None] = mapped_column(Float, default=None)
    median_review_hours: Mapped[float | None] = mapped_column(Float, default=None)
    queue_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviews_completed_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flags_resolved_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<AnalyticsModerationPerformance {self.snapshot_date} "
            f"queue={self.queue_length} avg_h={self.avg_review_hours}>"
        )
