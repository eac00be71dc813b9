"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the HTTP surface with the FastAPI TestClient against the in-memory
engine.  The lifespan is not entered, so no scheduler or pooled
dispatcher is started.

These tests verify:
- Bearer-token authentication
- Domain error → status code mapping (400 / 403 / 404 / 409)
- The happy path from submission through review, vote and flag
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from catechesis.api.deps import create_token, get_dispatcher, get_engine
from catechesis.api.main import app


@pytest.fixture
def client(db_engine, dispatcher):
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _auth(user_id: int, role: str) -> dict:
    return {"Authorization": f"Bearer {create_token(user_id, role, f'user-{user_id}')}"}


CATECHIST = _auth(1001, "CATECHIST")
READER = _auth(2001, "PUBLIC_USER")
PRIEST = _auth(3001, "PRIEST")
ADMIN = _auth(9001, "ADMIN")


def _submit(client, headers=CATECHIST, question_id: int = 7) -> int:
    resp = client.post(
        "/api/explanations/text",
        json={"question_id": question_id, "text": "Baptism washes away original sin."},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.json()["id"]


def _approve(client, submission_id: int) -> None:
    resp = client.post(
        f"/api/explanations/{submission_id}/reviews",
        json={"status": "APPROVED", "quality_rating": 4},
        headers=PRIEST,
    )
    assert resp.status_code == 201


# ===========================================================================
# Health & auth
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuth:
    def test_missing_token(self, client):
        resp = client.post("/api/explanations/text", json={"question_id": 7, "text": "x"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing token"

    def test_invalid_signature(self, client):
        resp = client.post(
            "/api/explanations/text",
            json={"question_id": 7, "text": "x"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert resp.status_code == 401

    def test_unknown_role_claim(self, client):
        resp = client.get("/api/moderation/queue", headers=_auth(1, "POPE"))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token claims"


# ===========================================================================
# Submissions & lifecycle
# ===========================================================================
class TestExplanations:
    def test_submit_and_read(self, client):
        sid = _submit(client)
        resp = client.get(f"/api/explanations/{sid}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "PENDING"
        assert body["submitter_id"] == "1001"
        assert body["content_type"] == "TEXT"

    def test_blank_text_is_400(self, client):
        resp = client.post(
            "/api/explanations/text", json={"question_id": 7, "text": "   "}, headers=CATECHIST
        )
        assert resp.status_code == 400

    def test_unknown_submission_is_404(self, client):
        assert client.get("/api/explanations/999").status_code == 404

    def test_view_counter(self, client):
        sid = _submit(client)
        client.post(f"/api/explanations/{sid}/view")
        assert client.get(f"/api/explanations/{sid}").json()["view_count"] == 1

    def test_review_approves(self, client):
        sid = _submit(client)
        _approve(client, sid)
        body = client.get(f"/api/explanations/{sid}").json()
        assert body["status"] == "APPROVED"
        assert body["quality_score"] == 62

        approved = client.get("/api/questions/7/explanations/approved").json()
        assert [e["id"] for e in approved["explanations"]] == [sid]

    def test_reader_cannot_review(self, client):
        sid = _submit(client)
        resp = client.post(
            f"/api/explanations/{sid}/reviews", json={"status": "APPROVED"}, headers=READER
        )
        assert resp.status_code == 403

    def test_delete_requires_admin(self, client):
        sid = _submit(client)
        assert client.delete(f"/api/explanations/{sid}", headers=PRIEST).status_code == 403
        assert client.delete(f"/api/explanations/{sid}", headers=ADMIN).status_code == 204
        assert client.get(f"/api/explanations/{sid}").status_code == 404


# ===========================================================================
# Votes & flags
# ===========================================================================
class TestVotesAndFlags:
    def test_vote_on_pending_is_conflict(self, client):
        sid = _submit(client)
        resp = client.post(
            f"/api/explanations/{sid}/votes", json={"is_helpful": True}, headers=READER
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "invalid_state"

    def test_duplicate_vote_is_conflict(self, client):
        sid = _submit(client)
        _approve(client, sid)
        first = client.post(f"/api/explanations/{sid}/votes", json={"is_helpful": True}, headers=READER)
        assert first.status_code == 201
        again = client.post(f"/api/explanations/{sid}/votes", json={"is_helpful": False}, headers=READER)
        assert again.status_code == 409
        assert again.json()["code"] == "duplicate_vote"

    def test_flag_and_resolve(self, client):
        sid = _submit(client)
        _approve(client, sid)

        flag = client.post(
            f"/api/explanations/{sid}/flags", json={"reason": "INACCURATE"}, headers=READER
        )
        assert flag.status_code == 201
        assert client.get(f"/api/explanations/{sid}").json()["status"] == "FLAGGED"

        queue = client.get("/api/moderation/queue", headers=PRIEST).json()
        assert [e["id"] for e in queue["explanations"]] == [sid]

        resp = client.post(
            f"/api/flags/{flag.json()['id']}/resolve",
            json={"resolution": "DISMISSED"},
            headers=PRIEST,
        )
        assert resp.status_code == 200
        assert client.get(f"/api/explanations/{sid}").json()["status"] == "APPROVED"

    def test_queue_is_moderator_only(self, client):
        assert client.get("/api/moderation/queue", headers=READER).status_code == 403


# ===========================================================================
# Community & analytics
# ===========================================================================
class TestCommunity:
    def test_profile_shows_points(self, client):
        sid = _submit(client)
        _approve(client, sid)
        resp = client.get("/api/users/1001/profile", headers=READER)
        assert resp.status_code == 200
        assert resp.json()["total_points"] == 20

    def test_private_profile(self, client):
        _submit(client)
        client.patch("/api/users/me/profile", json={"is_public": False}, headers=CATECHIST)
        assert client.get("/api/users/1001/profile", headers=READER).status_code == 403
        assert client.get("/api/users/1001/profile", headers=CATECHIST).status_code == 200

    def test_unknown_leaderboard_is_400(self, client):
        assert client.get("/api/leaderboards/daily").status_code == 400

    def test_rebuild_requires_admin(self, client):
        assert client.post("/api/leaderboards/rebuild", headers=PRIEST).status_code == 403
        assert client.post("/api/leaderboards/rebuild", headers=ADMIN).status_code == 200


class TestAnalytics:
    def test_reader_is_forbidden(self, client):
        assert client.get("/api/analytics/dashboard", headers=READER).status_code == 403

    def test_snapshot_then_dashboard(self, client):
        _submit(client)
        assert client.post("/api/analytics/snapshot", headers=ADMIN).status_code == 200

        resp = client.get("/api/analytics/dashboard", headers=PRIEST)
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_explanations"] == 1
        assert body["pending_explanations"] == 1
        assert body["snapshot_date"] is not None
