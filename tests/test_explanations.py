"""
tests/test_explanations.py — Submission Intake, Lifecycle & Reads
===================================================================
Service-level tests for explanation_service against in-memory SQLite.
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from catechesis.collaborators import FileInfo
from catechesis.database.models import (
    ExplanationSubmission,
    Flag,
    SubmissionStatus,
    User,
    UserRole,
    Vote,
)
from catechesis.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from catechesis.services import explanation_service, flag_service, vote_service


class FakeCatalog:
    def __init__(self, questions: set[int]):
        self.questions = questions

    def question_exists(self, question_id: int) -> bool:
        return question_id in self.questions

    def count_questions(self) -> int:
        return len(self.questions)

    def count_booklets(self) -> int:
        return 2

    def count_acts(self) -> int:
        return 1


class FakeFiles:
    def __init__(self, *infos: FileInfo):
        self.files = {info.file_id: info for info in infos}

    def get_file(self, file_id: int) -> FileInfo | None:
        return self.files.get(file_id)


def _audio(file_id: int = 55, uploader_id: int = 1001, scan_status: str = "CLEAN",
           upload_type: str = "AUDIO") -> FileInfo:
    return FileInfo(
        file_id=file_id,
        uploader_id=uploader_id,
        upload_type=upload_type,
        url=f"https://files.example/{file_id}.mp3",
        size_bytes=123_456,
        mime_type="audio/mpeg",
        duration_seconds=95,
        scan_status=scan_status,
    )


# ===========================================================================
# Text intake
# ===========================================================================
class TestSubmitText:
    def test_creates_pending_submission(self, db_engine, catechist):
        sub = explanation_service.submit_text(db_engine, catechist, 7, "en", "  Grace is a gift.  ")
        assert sub.status == SubmissionStatus.PENDING
        assert sub.content_type == "TEXT"
        assert sub.text_content == "Grace is a gift."
        assert sub.helpful_count == 0
        assert sub.view_count == 0

        with Session(db_engine) as session:
            user = session.get(User, catechist.user_id)
            assert user is not None
            assert user.role == UserRole.CATECHIST

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_text_rejected(self, db_engine, catechist, text):
        with pytest.raises(ValidationError):
            explanation_service.submit_text(db_engine, catechist, 7, "en", text)

    def test_blank_language_rejected(self, db_engine, catechist):
        with pytest.raises(ValidationError):
            explanation_service.submit_text(db_engine, catechist, 7, " ", "text")

    def test_unknown_question_is_not_found(self, db_engine, catechist):
        with pytest.raises(NotFoundError):
            explanation_service.submit_text(
                db_engine, catechist, 99, "en", "text", catalog=FakeCatalog({7})
            )

    def test_known_question_accepted(self, db_engine, catechist):
        sub = explanation_service.submit_text(
            db_engine, catechist, 7, "pl", "Łaska", catalog=FakeCatalog({7})
        )
        assert sub.language_code == "pl"


# ===========================================================================
# File intake
# ===========================================================================
class TestSubmitFile:
    def test_audio_copies_file_metadata(self, db_engine, catechist):
        sub = explanation_service.submit_file(
            db_engine, catechist, 7, "en", "AUDIO", 55, files=FakeFiles(_audio())
        )
        assert sub.content_type == "AUDIO"
        assert sub.file_id == 55
        assert sub.file_url.endswith("55.mp3")
        assert sub.file_size_bytes == 123_456
        assert sub.duration_seconds == 95
        assert sub.text_content is None

    def test_text_is_not_a_file_type(self, db_engine, catechist):
        with pytest.raises(ValidationError):
            explanation_service.submit_file(
                db_engine, catechist, 7, "en", "TEXT", 55, files=FakeFiles(_audio())
            )

    def test_missing_file(self, db_engine, catechist):
        with pytest.raises(NotFoundError):
            explanation_service.submit_file(db_engine, catechist, 7, "en", "AUDIO", 1, files=FakeFiles())

    def test_someone_elses_file(self, db_engine, catechist):
        with pytest.raises(PermissionDenied):
            explanation_service.submit_file(
                db_engine, catechist, 7, "en", "AUDIO", 55, files=FakeFiles(_audio(uploader_id=42))
            )

    def test_unscanned_file(self, db_engine, catechist):
        with pytest.raises(ValidationError):
            explanation_service.submit_file(
                db_engine, catechist, 7, "en", "AUDIO", 55,
                files=FakeFiles(_audio(scan_status="PENDING")),
            )

    def test_type_mismatch(self, db_engine, catechist):
        with pytest.raises(ValidationError):
            explanation_service.submit_file(
                db_engine, catechist, 7, "en", "VIDEO", 55, files=FakeFiles(_audio())
            )

    def test_nothing_persisted_on_rejection(self, db_engine, catechist):
        with pytest.raises(ValidationError):
            explanation_service.submit_file(
                db_engine, catechist, 7, "en", "VIDEO", 55, files=FakeFiles(_audio())
            )
        with Session(db_engine) as session:
            assert session.query(ExplanationSubmission).count() == 0


# ===========================================================================
# Lifecycle operations
# ===========================================================================
class TestStartReview:
    def test_moderator_claims_pending(self, db_engine, submit, priest):
        sub = explanation_service.start_review(db_engine, submit(), priest)
        assert sub.status == SubmissionStatus.UNDER_REVIEW
        assert sub.reviewed_at is not None

    def test_public_user_cannot_claim(self, db_engine, submit, reader):
        with pytest.raises(PermissionDenied):
            explanation_service.start_review(db_engine, submit(), reader)

    def test_approved_cannot_be_claimed(self, db_engine, approved, reviewer):
        with pytest.raises(ConflictError) as exc:
            explanation_service.start_review(db_engine, approved(), reviewer)
        assert exc.value.code == "invalid_state"

    def test_unknown_submission(self, db_engine, priest):
        with pytest.raises(NotFoundError):
            explanation_service.start_review(db_engine, 404, priest)


class TestViewsAndDelete:
    def test_record_view_increments(self, db_engine, submit):
        sid = submit()
        assert explanation_service.record_view(db_engine, sid) is True
        assert explanation_service.record_view(db_engine, sid) is True
        assert explanation_service.get_submission(db_engine, sid).view_count == 2

    def test_record_view_unknown_is_false(self, db_engine):
        assert explanation_service.record_view(db_engine, 404) is False

    def test_admin_delete_cascades(self, db_engine, approved, reader, second_reader, admin):
        sid = approved()
        vote_service.cast_vote(db_engine, sid, reader, True)
        flag_service.flag_submission(db_engine, sid, second_reader, "INACCURATE")

        explanation_service.delete_submission(db_engine, sid, admin)

        with pytest.raises(NotFoundError):
            explanation_service.get_submission(db_engine, sid)
        with Session(db_engine) as session:
            assert session.query(Vote).count() == 0
            assert session.query(Flag).count() == 0

    def test_non_admin_cannot_delete(self, db_engine, submit, priest):
        with pytest.raises(PermissionDenied):
            explanation_service.delete_submission(db_engine, submit(), priest)


# ===========================================================================
# Reads
# ===========================================================================
class TestReads:
    def test_filters_by_status_and_language(self, db_engine, submit, approved, second_reader):
        approved()
        submit(question_id=7, language_code="es")
        submit(actor=second_reader, question_id=8)

        all_q7 = explanation_service.get_submissions_for_question(db_engine, 7)
        assert len(all_q7) == 2
        approved_q7 = explanation_service.get_submissions_for_question(db_engine, 7, status="APPROVED")
        assert [s.status for s in approved_q7] == ["APPROVED"]
        spanish = explanation_service.get_submissions_for_question(db_engine, 7, language_code="es")
        assert len(spanish) == 1
        assert len(explanation_service.get_approved_for_question(db_engine, 7)) == 1

    def test_unknown_status_filter(self, db_engine):
        with pytest.raises(ValidationError):
            explanation_service.get_submissions_for_question(db_engine, 7, status="DRAFT")

    def test_user_submissions(self, db_engine, submit, catechist, second_reader):
        submit()
        submit()
        submit(actor=second_reader)
        assert len(explanation_service.get_user_submissions(db_engine, catechist.user_id)) == 2

    def test_pending_excludes_under_review(self, db_engine, submit, priest):
        first = submit()
        second = submit()
        explanation_service.start_review(db_engine, first, priest)
        assert [s.id for s in explanation_service.get_pending(db_engine)] == [second]

    def test_moderation_queue_priority(self, db_engine, submit, approved, priest, reader):
        pending_id = submit()
        claimed_id = submit()
        explanation_service.start_review(db_engine, claimed_id, priest)
        flagged_id = approved()
        flag_service.flag_submission(db_engine, flagged_id, reader, "MISLEADING")
        approved()  # APPROVED is not queued

        queue = explanation_service.get_moderation_queue(db_engine)
        assert [s.id for s in queue] == [flagged_id, claimed_id, pending_id]
        assert [s.id for s in explanation_service.get_moderation_queue(db_engine, limit=1)] == [flagged_id]
