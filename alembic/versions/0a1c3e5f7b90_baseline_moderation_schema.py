"""Baseline moderation, community and analytics schema

Revision ID: 0a1c3e5f7b90
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c3e5f7b90"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _count(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def upgrade() -> None:
    """Create every table of the moderation core."""
    # -- identity ----------------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("email", sa.String(255)),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("role", sa.String(32), nullable=False, server_default="PUBLIC_USER"),
        _ts("created_at"),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    # -- submissions & ledgers ---------------------------------------------
    op.create_table(
        "explanation_submissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.Column("submitter_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("language_code", sa.String(10), nullable=False, server_default="en"),
        sa.Column("content_type", sa.String(10), nullable=False),
        sa.Column("text_content", sa.Text()),
        sa.Column("file_id", sa.Integer()),
        sa.Column("file_url", sa.String(500)),
        sa.Column("file_size_bytes", sa.BigInteger()),
        sa.Column("file_mime_type", sa.String(100)),
        sa.Column("duration_seconds", sa.Integer()),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("quality_score", sa.Integer()),
        _count("view_count"),
        _count("helpful_count"),
        _ts("submitted_at"),
        _ts("reviewed_at"),
        _ts("approved_at"),
        _ts("updated_at"),
    )
    op.create_index(
        "ix_submissions_question_status", "explanation_submissions", ["question_id", "status"]
    )
    op.create_index(
        "ix_submissions_status_submitted", "explanation_submissions", ["status", "submitted_at"]
    )
    op.create_index("ix_submissions_submitter", "explanation_submissions", ["submitter_id"])

    op.create_table(
        "explanation_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "submission_id", sa.Integer(),
            sa.ForeignKey("explanation_submissions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("is_helpful", sa.Boolean(), nullable=False),
        sa.Column("comment", sa.Text()),
        _ts("created_at"),
        sa.UniqueConstraint("submission_id", "user_id", name="uq_votes_submission_user"),
    )
    op.create_index("ix_votes_user", "explanation_votes", ["user_id"])

    op.create_table(
        "explanation_flags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "submission_id", sa.Integer(),
            sa.ForeignKey("explanation_submissions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("flagger_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.String(20), nullable=False),
        sa.Column("details", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("moderator_id", sa.BigInteger(), sa.ForeignKey("users.id")),
        sa.Column("moderator_notes", sa.Text()),
        _ts("resolved_at"),
        _ts("created_at"),
    )
    op.create_index(
        "ix_flags_one_open_per_flagger",
        "explanation_flags",
        ["submission_id", "flagger_id"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
        sqlite_where=sa.text("status = 'OPEN'"),
    )
    op.create_index("ix_flags_status_created", "explanation_flags", ["status", "created_at"])
    op.create_index("ix_flags_flagger", "explanation_flags", ["flagger_id"])

    op.create_table(
        "explanation_reviews",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "submission_id", sa.Integer(),
            sa.ForeignKey("explanation_submissions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("reviewer_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("comments", sa.Text()),
        sa.Column("quality_rating", sa.Integer()),
        sa.Column("accuracy_score", sa.Integer()),
        sa.Column("clarity_score", sa.Integer()),
        sa.Column("theological_soundness_score", sa.Integer()),
        _ts("reviewed_at"),
        sa.UniqueConstraint(
            "submission_id", "reviewer_id", name="uq_reviews_submission_reviewer"
        ),
    )
    op.create_index("ix_reviews_reviewer", "explanation_reviews", ["reviewer_id"])
    op.create_index("ix_reviews_reviewed_at", "explanation_reviews", ["reviewed_at"])

    # -- community -----------------------------------------------------------
    op.create_table(
        "user_profiles",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("display_name", sa.String(100)),
        sa.Column("bio", sa.Text()),
        sa.Column("avatar_url", sa.String(500)),
        sa.Column("location", sa.String(100)),
        sa.Column("website_url", sa.String(500)),
        sa.Column("is_public", sa.Boolean(), server_default=sa.true()),
        _count("total_submissions"),
        _count("approved_submissions"),
        _count("total_votes_cast"),
        _count("total_helpful_votes"),
        _count("total_flags_resolved"),
        _count("total_reviews_completed"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(50), nullable=False),
        _count("points_value"),
        sa.Column("icon_url", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        _ts("created_at"),
    )
    op.create_table(
        "user_badges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "badge_id", sa.Integer(),
            sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False,
        ),
        _ts("earned_at"),
        sa.Column("context_note", sa.Text()),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("metric_key", sa.String(50), nullable=False),
        sa.Column("target_value", sa.Integer(), nullable=False),
        _count("points_value"),
        sa.Column("badge_id", sa.Integer(), sa.ForeignKey("badges.id", ondelete="SET NULL")),
        sa.Column("icon_url", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        _ts("created_at"),
    )
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "achievement_id", sa.Integer(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False,
        ),
        _count("current_value"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("completed_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_ach"),
    )

    op.create_table(
        "contribution_activity",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("activity_type", sa.String(20), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        _count("points_earned"),
        sa.Column("activity_date", sa.Date(), nullable=False),
        sa.Column("source_key", sa.String(128)),
        _ts("created_at"),
    )
    op.create_index(
        "ix_contribution_activity_idempotent",
        "contribution_activity",
        ["source_key"],
        unique=True,
        postgresql_where=sa.text("source_key IS NOT NULL"),
        sqlite_where=sa.text("source_key IS NOT NULL"),
    )
    op.create_index(
        "ix_contribution_activity_user_date", "contribution_activity", ["user_id", "activity_date"]
    )
    op.create_index("ix_contribution_activity_date", "contribution_activity", ["activity_date"])

    op.create_table(
        "leaderboard_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("leaderboard_type", sa.String(10), nullable=False),
        sa.Column("period_key", sa.String(10), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        _count("total_points"),
        _count("submissions"),
        _count("approvals"),
        _count("helpful_votes"),
        _ts("snapshot_at"),
        sa.UniqueConstraint(
            "user_id", "leaderboard_type", "period_key", name="uq_leaderboard_user_period"
        ),
    )
    op.create_index(
        "ix_leaderboard_period_rank",
        "leaderboard_entries",
        ["leaderboard_type", "period_key", "rank"],
    )

    # -- analytics -----------------------------------------------------------
    op.create_table(
        "analytics_daily_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False, unique=True),
        _count("total_questions"),
        _count("total_booklets"),
        _count("total_acts"),
        _count("total_explanations"),
        _count("pending_explanations"),
        _count("under_review_explanations"),
        _count("approved_explanations"),
        _count("rejected_explanations"),
        _count("flagged_explanations"),
        _count("text_explanations"),
        _count("audio_explanations"),
        _count("video_explanations"),
        _count("new_explanations_today"),
        _count("new_approvals_today"),
        _count("total_users"),
        _count("new_users_today"),
        _count("active_users_today"),
        _count("total_votes"),
        _count("total_helpful_votes"),
        _count("total_flags"),
        _count("open_flags"),
        _count("total_reviews"),
        sa.Column("avg_quality_score", sa.Float()),
        sa.Column("avg_helpful_pct", sa.Float()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "analytics_user_growth",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False, unique=True),
        _count("total_users"),
        _count("public_users"),
        _count("catechists"),
        _count("priests"),
        _count("theology_reviewers"),
        _count("admins"),
        _count("new_registrations"),
        _ts("created_at"),
    )
    op.create_table(
        "analytics_moderation_performance",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False, unique=True),
        sa.Column("avg_review_hours", sa.Float()),
        sa.Column("median_review_hours", sa.Float()),
        _count("queue_length"),
        _count("reviews_completed_today"),
        _count("flags_resolved_today"),
        _ts("created_at"),
    )


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_table("analytics_moderation_performance")
    op.drop_table("analytics_user_growth")
    op.drop_table("analytics_daily_snapshots")

    op.drop_index("ix_leaderboard_period_rank", table_name="leaderboard_entries")
    op.drop_table("leaderboard_entries")

    op.drop_index("ix_contribution_activity_date", table_name="contribution_activity")
    op.drop_index("ix_contribution_activity_user_date", table_name="contribution_activity")
    op.drop_index("ix_contribution_activity_idempotent", table_name="contribution_activity")
    op.drop_table("contribution_activity")

    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("user_badges")
    op.drop_table("badges")
    op.drop_table("user_profiles")

    op.drop_index("ix_reviews_reviewed_at", table_name="explanation_reviews")
    op.drop_index("ix_reviews_reviewer", table_name="explanation_reviews")
    op.drop_table("explanation_reviews")

    op.drop_index("ix_flags_flagger", table_name="explanation_flags")
    op.drop_index("ix_flags_status_created", table_name="explanation_flags")
    op.drop_index("ix_flags_one_open_per_flagger", table_name="explanation_flags")
    op.drop_table("explanation_flags")

    op.drop_index("ix_votes_user", table_name="explanation_votes")
    op.drop_table("explanation_votes")

    op.drop_index("ix_submissions_submitter", table_name="explanation_submissions")
    op.drop_index("ix_submissions_status_submitted", table_name="explanation_submissions")
    op.drop_index("ix_submissions_question_status", table_name="explanation_submissions")
    op.drop_table("explanation_submissions")

    op.drop_index("ix_users_created_at", table_name="users")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
