"""
tests/test_concurrency.py — Counters & Ledgers Under Concurrent Writers
=========================================================================
Two styles of test, both against a file-backed SQLite database:

- Interleaved sessions: two sessions load the same row, then write one
  after the other, so a read-modify-write would lose the first update.
- Threads: many votes and the pooled dispatcher's handlers race on the
  same submission and the same owner's profile.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catechesis.collaborators import Actor
from catechesis.constants import BADGE_APPROVAL_10, BADGE_HELPFUL_10, ENTITY_EXPLANATION
from catechesis.database.models import (
    Badge,
    ExplanationSubmission,
    User,
    UserBadge,
    UserProfile,
    UserRole,
)
from catechesis.engine.events import EventDispatcher, ExplanationApproved
from catechesis.services import community_service, explanation_service, review_service, vote_service
from catechesis.services.community_events import register_handlers
from catechesis.services.user_service import get_or_create_profile, get_or_create_user


def _miss_first_lookup(monkeypatch, session: Session, model) -> None:
    """Make the session's first ``get`` for *model* come back empty, as if
    another writer inserted the row just after we looked."""
    real_get = session.get
    missed: list = []

    def get(entity, ident, **kwargs):
        if entity is model and not missed:
            missed.append(ident)
            return None
        return real_get(entity, ident, **kwargs)

    monkeypatch.setattr(session, "get", get)


def _badge_count(engine, user_id: int, code: str) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count(UserBadge.id))
            .join(Badge, Badge.id == UserBadge.badge_id)
            .where(UserBadge.user_id == user_id, Badge.code == code)
        )


# ===========================================================================
# Interleaved sessions
# ===========================================================================
class TestInterleavedCounters:
    def test_helpful_votes_are_not_lost(self, file_engine):
        with Session(file_engine) as setup:
            get_or_create_profile(setup, 7)
            setup.commit()

        with Session(file_engine) as a, Session(file_engine) as b:
            get_or_create_profile(a, 7)
            get_or_create_profile(b, 7)

            assert community_service.record_helpful_vote_received(a, 7) == 1
            a.commit()
            # b still holds the profile it loaded before a's commit
            assert community_service.record_helpful_vote_received(b, 7) == 2
            b.commit()

        assert community_service.get_profile(file_engine, 7).total_helpful_votes == 2

    def test_activity_counters_are_not_lost(self, file_engine):
        with Session(file_engine) as setup:
            get_or_create_profile(setup, 7)
            setup.commit()

        with Session(file_engine) as a, Session(file_engine) as b:
            get_or_create_profile(a, 7)
            get_or_create_profile(b, 7)
            community_service.record_activity(
                a, 7, "VOTE", ENTITY_EXPLANATION, 1, source_key="vote:1:7"
            )
            a.commit()
            community_service.record_activity(
                b, 7, "VOTE", ENTITY_EXPLANATION, 2, source_key="vote:2:7"
            )
            b.commit()

        assert community_service.get_profile(file_engine, 7).total_votes_cast == 2
        assert community_service.get_total_points(file_engine, 7) == 2

    def test_approvals_are_not_lost(self, file_engine):
        with Session(file_engine) as setup:
            get_or_create_profile(setup, 7)
            setup.commit()

        with Session(file_engine) as a, Session(file_engine) as b:
            get_or_create_profile(a, 7)
            get_or_create_profile(b, 7)
            community_service.record_approval(a, 7, 1, source_key="approval:1")
            a.commit()
            profile = community_service.record_approval(b, 7, 2, source_key="approval:2")
            assert profile.approved_submissions == 2
            b.commit()


class TestGetOrCreateRace:
    def test_user_inserted_by_someone_else(self, file_engine, monkeypatch):
        with Session(file_engine) as a:
            get_or_create_user(a, Actor(user_id=7, role=UserRole.CATECHIST, display_name="Anna"))
            a.commit()

        with Session(file_engine) as b:
            _miss_first_lookup(monkeypatch, b, User)
            user = get_or_create_user(b, Actor(user_id=7, role=UserRole.PRIEST, display_name="Anna"))
            assert user.id == 7
            b.commit()

        with Session(file_engine) as check:
            assert check.scalar(select(func.count(User.id))) == 1
            assert check.get(User, 7).role == UserRole.PRIEST

    def test_profile_race_keeps_the_handler_work(self, file_engine, monkeypatch):
        with Session(file_engine) as a:
            get_or_create_profile(a, 7)
            a.commit()

        with Session(file_engine) as b:
            _miss_first_lookup(monkeypatch, b, UserProfile)
            activity = community_service.record_activity(
                b, 7, "SUBMISSION", ENTITY_EXPLANATION, 1, source_key="submission:1"
            )
            assert activity is not None
            b.commit()

        assert community_service.get_profile(file_engine, 7).total_submissions == 1
        assert community_service.get_total_points(file_engine, 7) == 5


# ===========================================================================
# Threads
# ===========================================================================
class TestThreadedVotes:
    def test_helpful_count_matches_ledger_and_profile(self, serialized_engine, catechist, priest):
        events = EventDispatcher(max_workers=4)
        register_handlers(events, serialized_engine)
        sid = explanation_service.submit_text(
            serialized_engine, catechist, 7, "en", "Grace is a gift.", events=events
        ).id
        review_service.submit_review(
            serialized_engine, sid, priest, "APPROVED", quality_rating=4, events=events
        )

        voters = [
            Actor(user_id=5000 + i, role=UserRole.PUBLIC_USER, display_name=f"voter-{i}")
            for i in range(12)
        ]

        def vote(index: int) -> None:
            # Ten helpful, two unhelpful
            vote_service.cast_vote(serialized_engine, sid, voters[index], index < 10, events=events)

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(vote, range(len(voters))))
        events.shutdown(wait=True)

        stats = vote_service.get_statistics(serialized_engine, sid)
        assert stats.total_votes == 12
        assert stats.helpful_votes == 10
        with Session(serialized_engine) as session:
            assert session.get(ExplanationSubmission, sid).helpful_count == 10

        owner = community_service.get_profile(serialized_engine, catechist.user_id)
        assert owner.total_helpful_votes == 10
        assert _badge_count(serialized_engine, catechist.user_id, BADGE_HELPFUL_10) == 1
        for voter in voters:
            assert community_service.get_profile(serialized_engine, voter.user_id).total_votes_cast == 1


class TestThreadedHandlers:
    def test_pooled_approvals_for_one_user(self, serialized_engine):
        events = EventDispatcher(max_workers=4)
        register_handlers(events, serialized_engine)
        for submission_id in range(1, 13):
            events.publish(ExplanationApproved(submission_id=submission_id, submitter_id=42))
        events.shutdown(wait=True)

        profile = community_service.get_profile(serialized_engine, 42)
        assert profile.approved_submissions == 12
        assert community_service.get_total_points(serialized_engine, 42) == 12 * 15
        assert _badge_count(serialized_engine, 42, BADGE_APPROVAL_10) == 1
