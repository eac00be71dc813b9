"""
tests/test_flags.py — Flag Ledger
===================================
Covers raising and resolving flags, the APPROVED ⇄ FLAGGED edge, the
one-open-flag-per-flagger rule and the moderator read helpers.
"""

from __future__ import annotations

import pytest

from catechesis.database.models import FlagStatus, SubmissionStatus
from catechesis.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from catechesis.services import explanation_service, flag_service, review_service


class TestFlagSubmission:
    def test_flagging_approved_moves_to_flagged(self, db_engine, approved, reader):
        sid = approved(quality_rating=4)
        flag = flag_service.flag_submission(db_engine, sid, reader, "INACCURATE", "Wrong council date")

        assert flag.status == FlagStatus.OPEN
        assert flag.reason == "INACCURATE"
        sub = explanation_service.get_submission(db_engine, sid)
        assert sub.status == SubmissionStatus.FLAGGED
        # 62 before the flag, minus 10 for one open flag
        assert sub.quality_score == 52

    def test_flagging_pending_keeps_status(self, db_engine, submit, reader):
        sid = submit()
        flag_service.flag_submission(db_engine, sid, reader, "OFF_TOPIC")
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.PENDING

    def test_unknown_reason(self, db_engine, approved, reader):
        with pytest.raises(ValidationError):
            flag_service.flag_submission(db_engine, approved(), reader, "BORING")

    def test_one_open_flag_per_flagger(self, db_engine, approved, reader):
        sid = approved()
        flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        with pytest.raises(ConflictError) as exc:
            flag_service.flag_submission(db_engine, sid, reader, "MISLEADING")
        assert exc.value.code == "duplicate_flag"

    def test_reflag_after_resolution(self, db_engine, approved, reader, priest):
        sid = approved()
        first = flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        flag_service.resolve_flag(db_engine, first.id, priest, "DISMISSED")
        second = flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        assert second.id != first.id

    def test_unknown_submission(self, db_engine, reader):
        with pytest.raises(NotFoundError):
            flag_service.flag_submission(db_engine, 404, reader, "OTHER")


class TestResolveFlag:
    def test_last_resolution_restores_approved(self, db_engine, approved, reader, second_reader, priest):
        sid = approved()
        a = flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        b = flag_service.flag_submission(db_engine, sid, second_reader, "MISLEADING")

        flag_service.resolve_flag(db_engine, a.id, priest, "RESOLVED", "Fixed wording")
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.FLAGGED

        resolved = flag_service.resolve_flag(db_engine, b.id, priest, "DISMISSED")
        assert resolved.status == FlagStatus.DISMISSED
        assert resolved.moderator_id == priest.user_id
        assert resolved.resolved_at is not None
        sub = explanation_service.get_submission(db_engine, sid)
        assert sub.status == SubmissionStatus.APPROVED
        assert sub.quality_score == 62

    def test_notes_are_kept(self, db_engine, approved, reader, priest):
        flag = flag_service.flag_submission(db_engine, approved(), reader, "OTHER")
        resolved = flag_service.resolve_flag(db_engine, flag.id, priest, "RESOLVED", "Checked")
        assert resolved.moderator_notes == "Checked"

    def test_resolution_must_be_terminal(self, db_engine, approved, reader, priest):
        flag = flag_service.flag_submission(db_engine, approved(), reader, "OTHER")
        with pytest.raises(ValidationError):
            flag_service.resolve_flag(db_engine, flag.id, priest, "OPEN")
        with pytest.raises(ValidationError):
            flag_service.resolve_flag(db_engine, flag.id, priest, "MAYBE")

    def test_only_moderators(self, db_engine, approved, reader, second_reader):
        flag = flag_service.flag_submission(db_engine, approved(), reader, "OTHER")
        with pytest.raises(PermissionDenied):
            flag_service.resolve_flag(db_engine, flag.id, second_reader, "RESOLVED")

    def test_closes_exactly_once(self, db_engine, approved, reader, priest, reviewer):
        flag = flag_service.flag_submission(db_engine, approved(), reader, "OTHER")
        flag_service.resolve_flag(db_engine, flag.id, priest, "RESOLVED")
        with pytest.raises(ConflictError) as exc:
            flag_service.resolve_flag(db_engine, flag.id, reviewer, "DISMISSED")
        assert exc.value.code == "flag_closed"

    def test_unknown_flag(self, db_engine, priest):
        with pytest.raises(NotFoundError):
            flag_service.resolve_flag(db_engine, 404, priest, "RESOLVED")

    def test_validation_precedes_permission(self, db_engine, reader):
        with pytest.raises(ValidationError):
            flag_service.resolve_flag(db_engine, 404, reader, "OPEN")

    def test_resolving_on_rejected_submission_keeps_status(
        self, db_engine, approved, reader, reviewer, priest
    ):
        sid = approved()
        flag = flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        review_service.submit_review(db_engine, sid, reviewer, "REJECTED")
        flag_service.resolve_flag(db_engine, flag.id, priest, "RESOLVED")
        assert explanation_service.get_submission(db_engine, sid).status == SubmissionStatus.REJECTED


class TestReads:
    def test_listing_helpers(self, db_engine, approved, reader, second_reader, priest):
        first, second = approved(), approved()
        f1 = flag_service.flag_submission(db_engine, first, reader, "INACCURATE")
        flag_service.flag_submission(db_engine, first, second_reader, "DUPLICATE")
        flag_service.flag_submission(db_engine, second, reader, "OTHER")
        flag_service.resolve_flag(db_engine, f1.id, priest, "RESOLVED")

        assert len(flag_service.get_flags_for_submission(db_engine, first)) == 2
        assert len(flag_service.get_open_flags(db_engine, first)) == 1
        assert len(flag_service.get_flags_by_user(db_engine, reader.user_id)) == 2
        assert len(flag_service.get_all_open_flags(db_engine)) == 2
        assert [f.id for f in flag_service.get_flags_resolved_by(db_engine, priest.user_id)] == [f1.id]

    def test_statistics(self, db_engine, approved, reader, second_reader, priest):
        sid = approved()
        f1 = flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        flag_service.flag_submission(db_engine, sid, second_reader, "INACCURATE")
        flag_service.resolve_flag(db_engine, f1.id, priest, "DISMISSED")

        stats = flag_service.get_flag_statistics(db_engine)
        assert stats.total == 2
        assert stats.by_status == {"OPEN": 1, "DISMISSED": 1}
        assert stats.by_reason == {"INACCURATE": 2}

    def test_heavily_flagged_threshold(self, db_engine, approved, reader, second_reader, priest):
        sid = approved()
        flag_service.flag_submission(db_engine, sid, reader, "INACCURATE")
        flag_service.flag_submission(db_engine, sid, second_reader, "MISLEADING")
        assert not flag_service.is_heavily_flagged(db_engine, sid)
        flag_service.flag_submission(db_engine, sid, priest, "OTHER")
        assert flag_service.is_heavily_flagged(db_engine, sid)
        assert flag_service.is_heavily_flagged(db_engine, sid, threshold=4) is False
