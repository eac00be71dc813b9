"""
catechesis.services.analytics_service — Daily Snapshots & Dashboard
=====================================================================

Three independent snapshot builders share one date parameter:

* :func:`build_daily_snapshot` — content / engagement counts.
* :func:`build_user_growth` — role buckets and new registrations.
* :func:`build_moderation_performance` — review latency, queue, throughput.

Each builder upserts by ``snapshot_date`` in its own transaction, so a
rerun for the same date overwrites rather than duplicates.  The nightly
job (:func:`run_nightly_snapshot`) logs and continues when one builder
fails.

"Today" counts use UTC day ranges on the timestamp columns; averages
(quality, helpful %) are global point-in-time values.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import asdict, dataclass
from datetime import date, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from catechesis.collaborators import ContentCatalog, NullContentCatalog
from catechesis.database.models import (
    AnalyticsDailySnapshot,
    AnalyticsModerationPerformance,
    AnalyticsUserGrowth,
    ContentType,
    ContributionActivity,
    ExplanationSubmission,
    Flag,
    FlagStatus,
    Review,
    SubmissionStatus,
    User,
    UserRole,
    Vote,
    as_utc,
)
from catechesis.engine.periods import utc_day_range, utc_today

logger = logging.getLogger(__name__)

_ROLE_COLUMNS: dict[UserRole, str] = {
    UserRole.PUBLIC_USER: "public_users",
    UserRole.CATECHIST: "catechists",
    UserRole.PRIEST: "priests",
    UserRole.THEOLOGY_REVIEWER: "theology_reviewers",
    UserRole.ADMIN: "admins",
}


def _count(session: Session, stmt) -> int:
    return session.scalar(stmt) or 0


def _grouped_counts(session: Session, column) -> dict[str, int]:
    rows = session.execute(select(column, func.count()).group_by(column)).all()
    return {str(key): count for key, count in rows}


def _round2(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def _get_or_new(session: Session, model, snapshot_date: date):
    row = session.scalar(select(model).where(model.snapshot_date == snapshot_date))
    if row is None:
        row = model(snapshot_date=snapshot_date)
        session.add(row)
    return row


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def build_daily_snapshot(
    engine: Engine,
    snapshot_date: date,
    catalog: ContentCatalog | None = None,
) -> AnalyticsDailySnapshot:
    """Upsert the content / engagement snapshot for *snapshot_date*."""
    catalog = catalog or NullContentCatalog()
    start, end = utc_day_range(snapshot_date)
    sub = ExplanationSubmission

    with Session(engine, expire_on_commit=False) as session:
        by_status = _grouped_counts(session, sub.status)
        by_type = _grouped_counts(session, sub.content_type)

        total_votes = _count(session, select(func.count(Vote.id)))
        helpful_votes = _count(
            session, select(func.count(Vote.id)).where(Vote.is_helpful.is_(True))
        )
        avg_quality = session.scalar(
            select(func.avg(sub.quality_score)).where(
                sub.status == SubmissionStatus.APPROVED, sub.quality_score.isnot(None)
            )
        )

        snap = _get_or_new(session, AnalyticsDailySnapshot, snapshot_date)
        snap.total_questions = catalog.count_questions()
        snap.total_booklets = catalog.count_booklets()
        snap.total_acts = catalog.count_acts()

        snap.total_explanations = sum(by_status.values())
        snap.pending_explanations = by_status.get(SubmissionStatus.PENDING, 0)
        snap.under_review_explanations = by_status.get(SubmissionStatus.UNDER_REVIEW, 0)
        snap.approved_explanations = by_status.get(SubmissionStatus.APPROVED, 0)
        snap.rejected_explanations = by_status.get(SubmissionStatus.REJECTED, 0)
        snap.flagged_explanations = by_status.get(SubmissionStatus.FLAGGED, 0)
        snap.text_explanations = by_type.get(ContentType.TEXT, 0)
        snap.audio_explanations = by_type.get(ContentType.AUDIO, 0)
        snap.video_explanations = by_type.get(ContentType.VIDEO, 0)
        snap.new_explanations_today = _count(
            session,
            select(func.count(sub.id)).where(sub.submitted_at >= start, sub.submitted_at < end),
        )
        snap.new_approvals_today = _count(
            session,
            select(func.count(sub.id)).where(sub.approved_at >= start, sub.approved_at < end),
        )

        snap.total_users = _count(session, select(func.count(User.id)))
        snap.new_users_today = _count(
            session,
            select(func.count(User.id)).where(User.created_at >= start, User.created_at < end),
        )
        snap.active_users_today = _count(
            session,
            select(func.count(func.distinct(ContributionActivity.user_id))).where(
                ContributionActivity.activity_date == snapshot_date
            ),
        )

        snap.total_votes = total_votes
        snap.total_helpful_votes = helpful_votes
        snap.total_flags = _count(session, select(func.count(Flag.id)))
        snap.open_flags = _count(
            session, select(func.count(Flag.id)).where(Flag.status == FlagStatus.OPEN)
        )
        snap.total_reviews = _count(session, select(func.count(Review.id)))

        snap.avg_quality_score = _round2(float(avg_quality)) if avg_quality is not None else None
        snap.avg_helpful_pct = _round2(helpful_votes / total_votes * 100) if total_votes else None

        session.commit()
        return snap


def build_user_growth(engine: Engine, snapshot_date: date) -> AnalyticsUserGrowth:
    """Upsert role buckets and registrations for *snapshot_date*."""
    start, end = utc_day_range(snapshot_date)
    with Session(engine, expire_on_commit=False) as session:
        by_role = _grouped_counts(session, User.role)
        growth = _get_or_new(session, AnalyticsUserGrowth, snapshot_date)
        growth.total_users = sum(by_role.values())
        for role, column in _ROLE_COLUMNS.items():
            setattr(growth, column, by_role.get(role, 0))
        growth.new_registrations = _count(
            session,
            select(func.count(User.id)).where(User.created_at >= start, User.created_at < end),
        )
        session.commit()
        return growth


def review_latency_hours(session: Session) -> list[float]:
    """Hours from submission to its earliest review, per reviewed submission."""
    rows = session.execute(
        select(ExplanationSubmission.submitted_at, func.min(Review.reviewed_at))
        .join(Review, Review.submission_id == ExplanationSubmission.id)
        .group_by(ExplanationSubmission.id, ExplanationSubmission.submitted_at)
    ).all()
    hours: list[float] = []
    for submitted_at, first_review in rows:
        if submitted_at is None or first_review is None:
            continue
        delta = as_utc(first_review) - as_utc(submitted_at)
        hours.append(max(delta.total_seconds(), 0.0) / 3600)
    return hours


def build_moderation_performance(
    engine: Engine, snapshot_date: date
) -> AnalyticsModerationPerformance:
    """Upsert review latency, queue length and the day's throughput."""
    start, end = utc_day_range(snapshot_date)
    with Session(engine, expire_on_commit=False) as session:
        hours = review_latency_hours(session)
        perf = _get_or_new(session, AnalyticsModerationPerformance, snapshot_date)
        perf.avg_review_hours = _round2(statistics.fmean(hours)) if hours else None
        perf.median_review_hours = _round2(statistics.median(hours)) if hours else None
        perf.queue_length = _count(
            session,
            select(func.count(ExplanationSubmission.id)).where(
                ExplanationSubmission.status.in_(
                    [SubmissionStatus.PENDING.value, SubmissionStatus.UNDER_REVIEW.value]
                )
            ),
        )
        perf.reviews_completed_today = _count(
            session,
            select(func.count(Review.id)).where(
                Review.reviewed_at >= start, Review.reviewed_at < end
            ),
        )
        perf.flags_resolved_today = _count(
            session,
            select(func.count(Flag.id)).where(Flag.resolved_at >= start, Flag.resolved_at < end),
        )
        session.commit()
        return perf


# ---------------------------------------------------------------------------
# Nightly job
# ---------------------------------------------------------------------------
def run_nightly_snapshot(
    engine: Engine,
    snapshot_date: date | None = None,
    catalog: ContentCatalog | None = None,
) -> dict[str, bool]:
    """Run all three builders for *snapshot_date* (default: today, UTC).

    Returns ``{"daily": ok, "user_growth": ok, "moderation": ok}``.
    """
    snapshot_date = snapshot_date or utc_today()
    builders = {
        "daily": lambda: build_daily_snapshot(engine, snapshot_date, catalog),
        "user_growth": lambda: build_user_growth(engine, snapshot_date),
        "moderation": lambda: build_moderation_performance(engine, snapshot_date),
    }
    results: dict[str, bool] = {}
    for name, build in builders.items():
        try:
            build()
            results[name] = True
        except Exception:
            logger.exception("Analytics %s snapshot failed for %s", name, snapshot_date)
            results[name] = False
    logger.info("Nightly analytics for %s: %s", snapshot_date, results)
    return results


# ---------------------------------------------------------------------------
# Dashboard & trends
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DashboardSummary:
    snapshot_date: date | None
    total_questions: int
    total_booklets: int
    total_users: int
    total_explanations: int
    approved_explanations: int
    pending_explanations: int
    open_flags: int
    avg_quality_score: float | None
    avg_helpful_pct: float | None
    new_explanations_today: int
    new_users_today: int
    new_approvals_today: int
    active_users_today: int
    moderation_queue_length: int
    avg_review_hours: float | None
    reviews_completed_today: int
    role_breakdown: dict[str, int] | None

    def to_dict(self) -> dict:
        return asdict(self)


def _latest(session: Session, model):
    return session.scalar(select(model).order_by(model.snapshot_date.desc()).limit(1))


def get_dashboard_summary(engine: Engine) -> DashboardSummary:
    """Compose the latest row of each snapshot type (zeros when none exist)."""
    with Session(engine) as session:
        snap = _latest(session, AnalyticsDailySnapshot)
        growth = _latest(session, AnalyticsUserGrowth)
        perf = _latest(session, AnalyticsModerationPerformance)

        return DashboardSummary(
            snapshot_date=snap.snapshot_date if snap else None,
            total_questions=snap.total_questions if snap else 0,
            total_booklets=snap.total_booklets if snap else 0,
            total_users=snap.total_users if snap else 0,
            total_explanations=snap.total_explanations if snap else 0,
            approved_explanations=snap.approved_explanations if snap else 0,
            pending_explanations=snap.pending_explanations if snap else 0,
            open_flags=snap.open_flags if snap else 0,
            avg_quality_score=snap.avg_quality_score if snap else None,
            avg_helpful_pct=snap.avg_helpful_pct if snap else None,
            new_explanations_today=snap.new_explanations_today if snap else 0,
            new_users_today=snap.new_users_today if snap else 0,
            new_approvals_today=snap.new_approvals_today if snap else 0,
            active_users_today=snap.active_users_today if snap else 0,
            moderation_queue_length=perf.queue_length if perf else 0,
            avg_review_hours=perf.avg_review_hours if perf else None,
            reviews_completed_today=perf.reviews_completed_today if perf else 0,
            role_breakdown={
                column: getattr(growth, column) for column in _ROLE_COLUMNS.values()
            } if growth else None,
        )


def _trend(engine: Engine, model, days: int, today: date | None):
    since = (today or utc_today()) - timedelta(days=days)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(model).where(model.snapshot_date >= since).order_by(model.snapshot_date.asc())
        ).all())


def get_explanation_trend(
    engine: Engine, days: int = 30, today: date | None = None
) -> list[AnalyticsDailySnapshot]:
    return _trend(engine, AnalyticsDailySnapshot, days, today)


def get_user_growth_trend(
    engine: Engine, days: int = 30, today: date | None = None
) -> list[AnalyticsUserGrowth]:
    return _trend(engine, AnalyticsUserGrowth, days, today)


def get_moderation_trend(
    engine: Engine, days: int = 30, today: date | None = None
) -> list[AnalyticsModerationPerformance]:
    return _trend(engine, AnalyticsModerationPerformance, days, today)


def get_top_explanations(engine: Engine, limit: int = 10) -> list[dict]:
    """APPROVED submissions ranked 1..N by quality score."""
    with Session(engine) as session:
        rows = session.scalars(
            select(ExplanationSubmission)
            .where(ExplanationSubmission.status == SubmissionStatus.APPROVED)
            .order_by(
                func.coalesce(ExplanationSubmission.quality_score, 0).desc(),
                ExplanationSubmission.id.asc(),
            )
            .limit(limit)
        ).all()
        return [
            {
                "rank": index,
                "submission_id": row.id,
                "question_id": row.question_id,
                "submitter_id": row.submitter_id,
                "quality_score": row.quality_score or 0,
                "helpful_count": row.helpful_count,
            }
            for index, row in enumerate(rows, start=1)
        ]


def get_content_breakdown(engine: Engine) -> dict[str, dict[str, int]]:
    """Submission counts by status, content type and language."""
    with Session(engine) as session:
        return {
            "by_status": _grouped_counts(session, ExplanationSubmission.status),
            "by_type": _grouped_counts(session, ExplanationSubmission.content_type),
            "by_language": _grouped_counts(session, ExplanationSubmission.language_code),
        }


def trigger_snapshot(
    engine: Engine,
    catalog: ContentCatalog | None = None,
    snapshot_date: date | None = None,
) -> DashboardSummary:
    """On-demand run of the nightly job, then the refreshed summary."""
    run_nightly_snapshot(engine, snapshot_date, catalog)
    return get_dashboard_summary(engine)
