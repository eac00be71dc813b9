"""
catechesis.api.routes.analytics — Dashboard, trends & snapshot trigger
========================================================================

Everything here is for moderators; triggering a snapshot is admin-only.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from catechesis.api.deps import ActorDep, CatalogDep, ConfigDep, EngineDep
from catechesis.collaborators import Actor
from catechesis.database.models import (
    AnalyticsDailySnapshot,
    AnalyticsModerationPerformance,
    AnalyticsUserGrowth,
)
from catechesis.errors import PermissionDenied
from catechesis.services import analytics_service

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _require_moderator(actor: Actor) -> None:
    if not actor.is_moderator:
        raise PermissionDenied("Moderator role required")


def _daily_dict(s: AnalyticsDailySnapshot) -> dict:
    return {
        "date": s.snapshot_date.isoformat(),
        "total_explanations": s.total_explanations,
        "pending": s.pending_explanations,
        "under_review": s.under_review_explanations,
        "approved": s.approved_explanations,
        "rejected": s.rejected_explanations,
        "flagged": s.flagged_explanations,
        "new_explanations": s.new_explanations_today,
        "new_approvals": s.new_approvals_today,
        "active_users": s.active_users_today,
        "total_votes": s.total_votes,
        "open_flags": s.open_flags,
        "avg_quality_score": s.avg_quality_score,
        "avg_helpful_pct": s.avg_helpful_pct,
    }


def _growth_dict(g: AnalyticsUserGrowth) -> dict:
    return {
        "date": g.snapshot_date.isoformat(),
        "total_users": g.total_users,
        "public_users": g.public_users,
        "catechists": g.catechists,
        "priests": g.priests,
        "theology_reviewers": g.theology_reviewers,
        "admins": g.admins,
        "new_registrations": g.new_registrations,
    }


def _moderation_dict(m: AnalyticsModerationPerformance) -> dict:
    return {
        "date": m.snapshot_date.isoformat(),
        "avg_review_hours": m.avg_review_hours,
        "median_review_hours": m.median_review_hours,
        "queue_length": m.queue_length,
        "reviews_completed": m.reviews_completed_today,
        "flags_resolved": m.flags_resolved_today,
    }


@router.get("/dashboard")
def dashboard(actor: ActorDep, engine: EngineDep):
    _require_moderator(actor)
    summary = analytics_service.get_dashboard_summary(engine)
    data = summary.to_dict()
    data["snapshot_date"] = summary.snapshot_date.isoformat() if summary.snapshot_date else None
    return data


@router.get("/trends/explanations")
def explanation_trend(
    actor: ActorDep, engine: EngineDep, cfg: ConfigDep, days: int | None = Query(None, ge=1, le=365)
):
    _require_moderator(actor)
    rows = analytics_service.get_explanation_trend(engine, days or cfg.trend_default_days)
    return {"points": [_daily_dict(s) for s in rows]}


@router.get("/trends/users")
def user_growth_trend(
    actor: ActorDep, engine: EngineDep, cfg: ConfigDep, days: int | None = Query(None, ge=1, le=365)
):
    _require_moderator(actor)
    rows = analytics_service.get_user_growth_trend(engine, days or cfg.trend_default_days)
    return {"points": [_growth_dict(g) for g in rows]}


@router.get("/trends/moderation")
def moderation_trend(
    actor: ActorDep, engine: EngineDep, cfg: ConfigDep, days: int | None = Query(None, ge=1, le=365)
):
    _require_moderator(actor)
    rows = analytics_service.get_moderation_trend(engine, days or cfg.trend_default_days)
    return {"points": [_moderation_dict(m) for m in rows]}


@router.get("/top-explanations")
def top_explanations(actor: ActorDep, engine: EngineDep, limit: int = Query(10, ge=1, le=100)):
    _require_moderator(actor)
    return {"explanations": analytics_service.get_top_explanations(engine, limit)}


@router.get("/content-breakdown")
def content_breakdown(actor: ActorDep, engine: EngineDep):
    _require_moderator(actor)
    return analytics_service.get_content_breakdown(engine)


@router.post("/snapshot")
def trigger_snapshot(actor: ActorDep, engine: EngineDep, catalog: CatalogDep):
    if not actor.is_admin:
        raise PermissionDenied("Only admins can trigger a snapshot")
    summary = analytics_service.trigger_snapshot(engine, catalog)
    data = summary.to_dict()
    data["snapshot_date"] = summary.snapshot_date.isoformat() if summary.snapshot_date else None
    return data
