"""
catechesis.services.community_events — Gamification event handlers
====================================================================

Turns lifecycle events into points, counters and badges.  Each handler runs
on the dispatcher's thread pool in its own transaction, keyed by the
event's ``source_key`` so a replay is a no-op.

| Event                | Points | Counter                      | Badges                         |
|----------------------|--------|------------------------------|--------------------------------|
| ExplanationSubmitted | +5     | total_submissions            | FIRST_SUBMISSION at 1          |
| ExplanationApproved  | +15    | approved_submissions         | FIRST_APPROVAL / 10 / 50       |
| ExplanationVoted     | +1     | total_votes_cast (+ owner's  | FIRST_VOTE at 1; HELPFUL_10 /  |
|                      |        | total_helpful_votes)         | HELPFUL_100 for the owner      |
| FlagResolved         | +3     | total_flags_resolved         | FIRST_REVIEW at 1              |
| ExplanationReviewed  | +5     | total_reviews_completed      | —                              |

Badges are awarded when the counter hits the threshold *exactly*.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine

from catechesis.constants import (
    APPROVAL_MILESTONES,
    BADGE_FIRST_REVIEW,
    BADGE_FIRST_SUBMISSION,
    BADGE_FIRST_VOTE,
    ENTITY_EXPLANATION,
    ENTITY_FLAG,
    ENTITY_REVIEW,
    HELPFUL_MILESTONES,
)
from catechesis.database.engine import get_session
from catechesis.database.models import ActivityType
from catechesis.engine.events import (
    EventDispatcher,
    ExplanationApproved,
    ExplanationReviewed,
    ExplanationSubmitted,
    ExplanationVoted,
    FlagResolved,
)
from catechesis.services import community_service
from catechesis.services.user_service import get_or_create_profile

logger = logging.getLogger(__name__)


class CommunityEventHandlers:
    """Bound set of handlers sharing one engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def register(self, dispatcher: EventDispatcher) -> None:
        dispatcher.register(ExplanationSubmitted, self.on_submitted)
        dispatcher.register(ExplanationApproved, self.on_approved)
        dispatcher.register(ExplanationVoted, self.on_voted)
        dispatcher.register(FlagResolved, self.on_flag_resolved)
        dispatcher.register(ExplanationReviewed, self.on_reviewed)

    # -------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------
    def on_submitted(self, event: ExplanationSubmitted) -> None:
        with get_session(self.engine) as session:
            activity = community_service.record_activity(
                session,
                event.submitter_id,
                ActivityType.SUBMISSION,
                ENTITY_EXPLANATION,
                event.submission_id,
                occurred_at=event.occurred_at,
                source_key=event.source_key,
            )
            if activity is None:
                return
            profile = get_or_create_profile(session, event.submitter_id)
            if profile.total_submissions == 1:
                community_service.award_badge(
                    session, event.submitter_id, BADGE_FIRST_SUBMISSION,
                    "Submitted a first explanation",
                )

    def on_approved(self, event: ExplanationApproved) -> None:
        with get_session(self.engine) as session:
            profile = community_service.record_approval(
                session,
                event.submitter_id,
                event.submission_id,
                occurred_at=event.occurred_at,
                source_key=event.source_key,
            )
            if profile is None:
                return
            code = APPROVAL_MILESTONES.get(profile.approved_submissions)
            if code is not None:
                community_service.award_badge(
                    session, event.submitter_id, code,
                    f"{profile.approved_submissions} approved explanation(s)",
                )

    def on_voted(self, event: ExplanationVoted) -> None:
        with get_session(self.engine) as session:
            activity = community_service.record_activity(
                session,
                event.voter_id,
                ActivityType.VOTE,
                ENTITY_EXPLANATION,
                event.submission_id,
                occurred_at=event.occurred_at,
                source_key=event.source_key,
            )
            if activity is None:
                return
            voter = get_or_create_profile(session, event.voter_id)
            if voter.total_votes_cast == 1:
                community_service.award_badge(
                    session, event.voter_id, BADGE_FIRST_VOTE, "Cast a first vote"
                )

            if not event.is_helpful or event.voter_id == event.owner_id:
                return
            helpful = community_service.record_helpful_vote_received(session, event.owner_id)
            code = HELPFUL_MILESTONES.get(helpful)
            if code is not None:
                community_service.award_badge(
                    session, event.owner_id, code, f"{helpful} helpful votes received"
                )

    def on_flag_resolved(self, event: FlagResolved) -> None:
        with get_session(self.engine) as session:
            activity = community_service.record_activity(
                session,
                event.moderator_id,
                ActivityType.FLAG_RESOLVED,
                ENTITY_FLAG,
                event.flag_id,
                occurred_at=event.occurred_at,
                source_key=event.source_key,
            )
            if activity is None:
                return
            profile = get_or_create_profile(session, event.moderator_id)
            if profile.total_flags_resolved == 1:
                community_service.award_badge(
                    session, event.moderator_id, BADGE_FIRST_REVIEW, "Resolved a first flag"
                )

    def on_reviewed(self, event: ExplanationReviewed) -> None:
        with get_session(self.engine) as session:
            community_service.record_activity(
                session,
                event.reviewer_id,
                ActivityType.REVIEW,
                ENTITY_REVIEW,
                event.review_id,
                occurred_at=event.occurred_at,
                source_key=event.source_key,
            )


def register_handlers(dispatcher: EventDispatcher, engine: Engine) -> CommunityEventHandlers:
    """Wire the gamification handlers onto *dispatcher*."""
    handlers = CommunityEventHandlers(engine)
    handlers.register(dispatcher)
    logger.info("Community event handlers registered")
    return handlers
