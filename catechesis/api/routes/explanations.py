"""
catechesis.api.routes.explanations — Submissions & votes
==========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, Field

from catechesis.api.deps import ActorDep, CatalogDep, DispatcherDep, EngineDep, FilesDep
from catechesis.database.models import ExplanationSubmission, Vote
from catechesis.services import explanation_service, vote_service

router = APIRouter(tags=["explanations"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class TextSubmission(BaseModel):
    question_id: int
    language_code: str = "en"
    text: str


class FileSubmission(BaseModel):
    question_id: int
    language_code: str = "en"
    content_type: str
    file_id: int


class VoteBody(BaseModel):
    is_helpful: bool
    comment: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def submission_dict(s: ExplanationSubmission) -> dict:
    return {
        "id": s.id,
        "question_id": s.question_id,
        "submitter_id": str(s.submitter_id),
        "language_code": s.language_code,
        "content_type": s.content_type,
        "text_content": s.text_content,
        "file_id": s.file_id,
        "file_url": s.file_url,
        "file_size_bytes": s.file_size_bytes,
        "file_mime_type": s.file_mime_type,
        "duration_seconds": s.duration_seconds,
        "status": s.status,
        "quality_score": s.quality_score,
        "view_count": s.view_count,
        "helpful_count": s.helpful_count,
        "submitted_at": s.submitted_at.isoformat() if s.submitted_at else None,
        "reviewed_at": s.reviewed_at.isoformat() if s.reviewed_at else None,
        "approved_at": s.approved_at.isoformat() if s.approved_at else None,
    }


def vote_dict(v: Vote) -> dict:
    return {
        "id": v.id,
        "submission_id": v.submission_id,
        "user_id": str(v.user_id),
        "is_helpful": v.is_helpful,
        "comment": v.comment,
        "created_at": v.created_at.isoformat() if v.created_at else None,
    }


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
@router.post("/explanations/text", status_code=status.HTTP_201_CREATED)
def submit_text(
    body: TextSubmission,
    actor: ActorDep,
    engine: EngineDep,
    catalog: CatalogDep,
    events: DispatcherDep,
):
    submission = explanation_service.submit_text(
        engine, actor, body.question_id, body.language_code, body.text,
        catalog=catalog, events=events,
    )
    return submission_dict(submission)


@router.post("/explanations/file", status_code=status.HTTP_201_CREATED)
def submit_file(
    body: FileSubmission,
    actor: ActorDep,
    engine: EngineDep,
    catalog: CatalogDep,
    files: FilesDep,
    events: DispatcherDep,
):
    submission = explanation_service.submit_file(
        engine, actor, body.question_id, body.language_code, body.content_type, body.file_id,
        catalog=catalog, files=files, events=events,
    )
    return submission_dict(submission)


@router.get("/explanations/{submission_id}")
def get_explanation(submission_id: int, engine: EngineDep):
    return submission_dict(explanation_service.get_submission(engine, submission_id))


@router.post("/explanations/{submission_id}/view")
def record_view(submission_id: int, engine: EngineDep):
    return {"recorded": explanation_service.record_view(engine, submission_id)}


@router.post("/explanations/{submission_id}/start-review")
def start_review(submission_id: int, actor: ActorDep, engine: EngineDep):
    return submission_dict(explanation_service.start_review(engine, submission_id, actor))


@router.delete("/explanations/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_explanation(
    submission_id: int, actor: ActorDep, engine: EngineDep, events: DispatcherDep
):
    explanation_service.delete_submission(engine, submission_id, actor, events=events)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/questions/{question_id}/explanations")
def list_for_question(
    question_id: int,
    engine: EngineDep,
    status_filter: str | None = Query(None, alias="status"),
    language: str | None = Query(None),
):
    rows = explanation_service.get_submissions_for_question(
        engine, question_id, status=status_filter, language_code=language
    )
    return {"explanations": [submission_dict(s) for s in rows]}


@router.get("/questions/{question_id}/explanations/approved")
def list_approved(question_id: int, engine: EngineDep, language: str | None = Query(None)):
    rows = explanation_service.get_approved_for_question(engine, question_id, language)
    return {"explanations": [submission_dict(s) for s in rows]}


@router.get("/questions/{question_id}/explanations/top")
def list_top_voted(
    question_id: int, engine: EngineDep, limit: int = Query(10, ge=1, le=100)
):
    rows = vote_service.get_top_voted(engine, question_id, limit)
    return {"explanations": [submission_dict(s) for s in rows]}


@router.get("/users/{user_id}/explanations")
def list_for_user(user_id: int, engine: EngineDep):
    rows = explanation_service.get_user_submissions(engine, user_id)
    return {"explanations": [submission_dict(s) for s in rows]}


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------
@router.post("/explanations/{submission_id}/votes", status_code=status.HTTP_201_CREATED)
def cast_vote(
    submission_id: int,
    body: VoteBody,
    actor: ActorDep,
    engine: EngineDep,
    events: DispatcherDep,
):
    vote = vote_service.cast_vote(
        engine, submission_id, actor, body.is_helpful, body.comment, events=events
    )
    return vote_dict(vote)


@router.put("/explanations/{submission_id}/votes")
def update_vote(submission_id: int, body: VoteBody, actor: ActorDep, engine: EngineDep):
    vote = vote_service.update_vote(engine, submission_id, actor, body.is_helpful, body.comment)
    return vote_dict(vote)


@router.delete("/explanations/{submission_id}/votes")
def remove_vote(submission_id: int, actor: ActorDep, engine: EngineDep):
    return {"removed": vote_service.remove_vote(engine, submission_id, actor)}


@router.get("/explanations/{submission_id}/votes")
def vote_statistics(submission_id: int, engine: EngineDep):
    stats = vote_service.get_statistics(engine, submission_id)
    return {
        "total_votes": stats.total_votes,
        "helpful_votes": stats.helpful_votes,
        "unhelpful_votes": stats.unhelpful_votes,
        "helpful_percentage": stats.helpful_percentage,
    }


@router.get("/explanations/{submission_id}/votes/me")
def my_vote(submission_id: int, actor: ActorDep, engine: EngineDep):
    vote = vote_service.get_user_vote(engine, submission_id, actor.user_id)
    return {"vote": vote_dict(vote) if vote else None}


@router.get("/users/{user_id}/votes")
def votes_by_user(user_id: int, engine: EngineDep):
    return {"votes": [vote_dict(v) for v in vote_service.get_votes_by_user(engine, user_id)]}
