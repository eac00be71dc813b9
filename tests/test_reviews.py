"""
tests/test_reviews.py — Review Ledger
=======================================
Covers moderator reviews driving the lifecycle, score validation,
duplicate protection, consensus/averages and the events a review emits.
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from catechesis.database.models import Review, SubmissionStatus
from catechesis.engine.events import (
    EventDispatcher,
    ExplanationApproved,
    ExplanationRejected,
    ExplanationReviewed,
)
from catechesis.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from catechesis.services import explanation_service, review_service


@pytest.fixture
def recorded():
    """Inline dispatcher that only records what was published."""
    events = EventDispatcher(inline=True)
    seen: list = []
    for event_type in (ExplanationReviewed, ExplanationApproved, ExplanationRejected):
        events.register(event_type, seen.append)
    return events, seen


class TestSubmitReview:
    def test_approval_sets_status_and_stamp(self, db_engine, submit, priest):
        sid = submit()
        review = review_service.submit_review(
            db_engine, sid, priest, "APPROVED",
            quality_rating=5, accuracy_score=4, clarity_score=5, theological_soundness_score=5,
            comments="Faithful to the Catechism",
        )
        assert review.status == "APPROVED"
        sub = explanation_service.get_submission(db_engine, sid)
        assert sub.status == SubmissionStatus.APPROVED
        assert sub.approved_at is not None
        assert sub.quality_score == 70

    def test_rejection(self, db_engine, submit, reviewer):
        sid = submit()
        review_service.submit_review(db_engine, sid, reviewer, "REJECTED", comments="Heterodox")
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.REJECTED

    def test_needs_revision_moves_to_under_review(self, db_engine, submit, reviewer):
        sid = submit()
        review_service.submit_review(db_engine, sid, reviewer, "NEEDS_REVISION")
        sub = explanation_service.get_submission(db_engine, sid)
        assert sub.status == SubmissionStatus.UNDER_REVIEW
        assert sub.reviewed_at is not None

    def test_rejected_can_be_approved_later(self, db_engine, submit, reviewer, priest):
        sid = submit()
        review_service.submit_review(db_engine, sid, reviewer, "REJECTED")
        review_service.submit_review(db_engine, sid, priest, "APPROVED")
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.APPROVED

    def test_public_user_cannot_review(self, db_engine, submit, reader):
        with pytest.raises(PermissionDenied):
            review_service.submit_review(db_engine, submit(), reader, "APPROVED")

    def test_one_review_per_reviewer(self, db_engine, submit, priest):
        sid = submit()
        review_service.submit_review(db_engine, sid, priest, "NEEDS_REVISION")
        with pytest.raises(ConflictError) as exc:
            review_service.submit_review(db_engine, sid, priest, "APPROVED")
        assert exc.value.code == "duplicate_review"
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.UNDER_REVIEW

    @pytest.mark.parametrize("field", [
        "quality_rating", "accuracy_score", "clarity_score", "theological_soundness_score",
    ])
    @pytest.mark.parametrize("value", [0, 6])
    def test_scores_must_be_one_to_five(self, db_engine, submit, priest, field, value):
        sid = submit()
        with pytest.raises(ValidationError):
            review_service.submit_review(db_engine, sid, priest, "APPROVED", **{field: value})
        with Session(db_engine) as session:
            assert session.query(Review).count() == 0
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.PENDING

    @pytest.mark.parametrize("value", [True, 3.5, "4"])
    def test_scores_must_be_whole_numbers(self, db_engine, submit, priest, value):
        sid = submit()
        with pytest.raises(ValidationError, match="whole number"):
            review_service.submit_review(db_engine, sid, priest, "APPROVED", quality_rating=value)
        with Session(db_engine) as session:
            assert session.query(Review).count() == 0

    def test_unknown_status(self, db_engine, submit, priest):
        with pytest.raises(ValidationError):
            review_service.submit_review(db_engine, submit(), priest, "MAYBE")

    def test_unknown_submission(self, db_engine, priest):
        with pytest.raises(NotFoundError):
            review_service.submit_review(db_engine, 404, priest, "APPROVED")


class TestReviewEvents:
    def test_approval_emits_reviewed_then_approved(self, db_engine, submit, priest, recorded):
        events, seen = recorded
        sid = submit()
        review_service.submit_review(db_engine, sid, priest, "APPROVED", events=events)
        assert [type(e) for e in seen] == [ExplanationReviewed, ExplanationApproved]
        assert seen[1].submission_id == sid

    def test_repeat_approval_emits_no_second_approved(self, db_engine, submit, priest, reviewer, recorded):
        events, seen = recorded
        sid = submit()
        review_service.submit_review(db_engine, sid, priest, "APPROVED", events=events)
        review_service.submit_review(db_engine, sid, reviewer, "APPROVED", events=events)
        assert [type(e) for e in seen].count(ExplanationApproved) == 1
        assert [type(e) for e in seen].count(ExplanationReviewed) == 2

    def test_rejection_emits_rejected(self, db_engine, submit, reviewer, recorded):
        events, seen = recorded
        review_service.submit_review(db_engine, submit(), reviewer, "REJECTED", events=events)
        assert isinstance(seen[-1], ExplanationRejected)

    def test_needs_revision_emits_only_reviewed(self, db_engine, submit, reviewer, recorded):
        events, seen = recorded
        review_service.submit_review(db_engine, submit(), reviewer, "NEEDS_REVISION", events=events)
        assert [type(e) for e in seen] == [ExplanationReviewed]


class TestReads:
    def test_consensus_and_averages(self, db_engine, submit, priest, reviewer, admin):
        sid = submit()
        review_service.submit_review(db_engine, sid, priest, "APPROVED", quality_rating=5, clarity_score=4)
        review_service.submit_review(db_engine, sid, reviewer, "APPROVED", quality_rating=3)
        review_service.submit_review(db_engine, sid, admin, "REJECTED")

        consensus = review_service.get_consensus(db_engine, sid)
        assert consensus.total_reviews == 3
        assert consensus.status == "APPROVED"

        averages = review_service.get_average_scores(db_engine, sid)
        assert averages.review_count == 3
        assert averages.quality_rating == 4.0
        assert averages.clarity_score == 4.0
        assert averages.accuracy_score is None

    def test_needs_more_reviews(self, db_engine, submit, priest, reviewer):
        sid = submit()
        assert review_service.needs_more_reviews(db_engine, sid)
        review_service.submit_review(db_engine, sid, priest, "APPROVED")
        assert review_service.needs_more_reviews(db_engine, sid)
        review_service.submit_review(db_engine, sid, reviewer, "APPROVED")
        assert not review_service.needs_more_reviews(db_engine, sid)

    def test_listing(self, db_engine, submit, priest, reviewer):
        first, second = submit(), submit()
        review_service.submit_review(db_engine, first, priest, "APPROVED")
        review_service.submit_review(db_engine, second, priest, "REJECTED")
        review_service.submit_review(db_engine, first, reviewer, "APPROVED")

        assert len(review_service.get_reviews_for_submission(db_engine, first)) == 2
        assert len(review_service.get_reviews_by_reviewer(db_engine, priest.user_id)) == 2
