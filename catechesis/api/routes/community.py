"""
catechesis.api.routes.community — Profiles, badges, achievements & leaderboards
=================================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from catechesis.api.deps import ActorDep, ConfigDep, EngineDep
from catechesis.database.models import (
    Achievement,
    Badge,
    ContributionActivity,
    LeaderboardEntry,
    UserAchievement,
    UserBadge,
    UserProfile,
)
from catechesis.errors import NotFoundError, PermissionDenied
from catechesis.services import community_service

router = APIRouter(tags=["community"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProfileUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)
    bio: str | None = None
    avatar_url: str | None = Field(default=None, max_length=500)
    location: str | None = Field(default=None, max_length=100)
    website_url: str | None = Field(default=None, max_length=500)
    is_public: bool | None = None


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def _profile_dict(p: UserProfile) -> dict:
    return {
        "user_id": str(p.user_id),
        "display_name": p.display_name,
        "bio": p.bio,
        "avatar_url": p.avatar_url,
        "location": p.location,
        "website_url": p.website_url,
        "is_public": p.is_public,
        "total_submissions": p.total_submissions,
        "approved_submissions": p.approved_submissions,
        "total_votes_cast": p.total_votes_cast,
        "total_helpful_votes": p.total_helpful_votes,
        "total_flags_resolved": p.total_flags_resolved,
        "total_reviews_completed": p.total_reviews_completed,
    }


def _badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "code": b.code,
        "name": b.name,
        "description": b.description,
        "category": b.category,
        "points_value": b.points_value,
        "icon_url": b.icon_url,
    }


def _user_badge_dict(ub: UserBadge) -> dict:
    return {
        **_badge_dict(ub.badge),
        "earned_at": ub.earned_at.isoformat() if ub.earned_at else None,
        "context_note": ub.context_note,
    }


def _achievement_dict(a: Achievement) -> dict:
    return {
        "id": a.id,
        "code": a.code,
        "name": a.name,
        "description": a.description,
        "category": a.category,
        "metric_key": a.metric_key,
        "target_value": a.target_value,
        "points_value": a.points_value,
        "badge_code": a.badge.code if a.badge else None,
    }


def _progress_dict(ua: UserAchievement) -> dict:
    return {
        **_achievement_dict(ua.achievement),
        "current_value": ua.current_value,
        "progress_percent": ua.progress_percent,
        "completed": ua.completed,
        "completed_at": ua.completed_at.isoformat() if ua.completed_at else None,
    }


def _activity_dict(a: ContributionActivity) -> dict:
    return {
        "id": a.id,
        "activity_type": a.activity_type,
        "entity_type": a.entity_type,
        "entity_id": a.entity_id,
        "points_earned": a.points_earned,
        "activity_date": a.activity_date.isoformat(),
    }


def _entry_dict(e: LeaderboardEntry) -> dict:
    return {
        "user_id": str(e.user_id),
        "rank": e.rank,
        "total_points": e.total_points,
        "submissions": e.submissions,
        "approvals": e.approvals,
        "helpful_votes": e.helpful_votes,
        "period_key": e.period_key,
    }


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/profile")
def get_profile(user_id: int, actor: ActorDep, engine: EngineDep):
    profile = community_service.get_profile(engine, user_id)
    if profile is None:
        raise NotFoundError("UserProfile", user_id)
    if not profile.is_public and actor.user_id != user_id and not actor.is_moderator:
        raise PermissionDenied("This profile is private")
    return {
        **_profile_dict(profile),
        "total_points": community_service.get_total_points(engine, user_id),
    }


@router.patch("/users/me/profile")
def update_my_profile(body: ProfileUpdate, actor: ActorDep, engine: EngineDep):
    changes = body.model_dump(exclude_unset=True)
    profile = community_service.update_profile(engine, actor, **changes)
    return _profile_dict(profile)


@router.get("/users/{user_id}/activity")
def recent_activity(
    user_id: int, engine: EngineDep, days: int = Query(30, ge=1, le=365)
):
    rows = community_service.get_recent_activity(engine, user_id, days)
    return {"activity": [_activity_dict(a) for a in rows]}


# ---------------------------------------------------------------------------
# Badges & achievements
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(engine: EngineDep):
    return {"badges": [_badge_dict(b) for b in community_service.get_all_badges(engine)]}


@router.get("/users/{user_id}/badges")
def user_badges(user_id: int, engine: EngineDep):
    rows = community_service.get_user_badges(engine, user_id)
    return {"badges": [_user_badge_dict(ub) for ub in rows]}


@router.get("/achievements")
def list_achievements(engine: EngineDep):
    rows = community_service.get_all_achievements(engine)
    return {"achievements": [_achievement_dict(a) for a in rows]}


@router.get("/users/{user_id}/achievements")
def user_achievements(user_id: int, engine: EngineDep, completed: bool = Query(False)):
    if completed:
        rows = community_service.get_completed_achievements(engine, user_id)
    else:
        rows = community_service.get_user_achievements(engine, user_id)
    return {"achievements": [_progress_dict(ua) for ua in rows]}


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
@router.get("/leaderboards/{board}")
def leaderboard(
    board: str,
    engine: EngineDep,
    cfg: ConfigDep,
    limit: int | None = Query(None, ge=1, le=100),
):
    rows = community_service.get_leaderboard(engine, board.upper(), limit or cfg.leaderboard_page_size)
    return {"leaderboard_type": board.upper(), "entries": [_entry_dict(e) for e in rows]}


@router.get("/leaderboards/{board}/users/{user_id}")
def user_rank(board: str, user_id: int, engine: EngineDep):
    entry = community_service.get_user_rank(engine, user_id, board.upper())
    return {"entry": _entry_dict(entry) if entry else None}


@router.post("/leaderboards/rebuild")
def rebuild_leaderboards(actor: ActorDep, engine: EngineDep):
    if not actor.is_admin:
        raise PermissionDenied("Only admins can rebuild leaderboards")
    return community_service.rebuild_all_leaderboards(engine)
