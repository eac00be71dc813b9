"""
tests/test_jwt_startup — JWT Secret Validation at Startup
===========================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default; a valid token round-trips into an Actor.
"""

from __future__ import annotations

import importlib
import os
from unittest.mock import patch

import jwt
import pytest
from fastapi import HTTPException

from catechesis.database.models import UserRole


def _reload_deps():
    import catechesis.api.deps as deps_mod
    importlib.reload(deps_mod)
    return deps_mod


class TestJWTSecretValidation:
    """_load_jwt_secret() rejects bad secrets and accepts good ones."""

    def _call_load(self) -> str:
        # Reloading re-runs the module-level validation
        return _reload_deps().JWT_SECRET

    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                self._call_load()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                self._call_load()

    @pytest.mark.parametrize("weak", ["catechesis-dev-secret-change-me", "change-me"])
    def test_rejects_known_weak_default(self, weak):
        with patch.dict(os.environ, {"JWT_SECRET": weak}):
            with pytest.raises(RuntimeError, match="known weak default"):
                self._call_load()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                self._call_load()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            assert self._call_load() == good_secret

    @pytest.fixture(autouse=True)
    def _restore_jwt_secret(self):
        """Restore JWT_SECRET after each test so other tests work."""
        original = os.environ.get("JWT_SECRET")
        yield
        if original is not None:
            os.environ["JWT_SECRET"] = original
        else:
            os.environ.pop("JWT_SECRET", None)
        try:
            _reload_deps()
        except RuntimeError:
            pass  # test env may not have a valid secret set yet


class TestActorFromToken:
    def test_round_trip(self):
        from catechesis.api.deps import create_token, get_actor

        token = create_token(3001, UserRole.PRIEST, "Fr. Tomas")
        actor = get_actor(f"Bearer {token}")
        assert actor.user_id == 3001
        assert actor.role == UserRole.PRIEST
        assert actor.is_moderator
        assert actor.display_name == "Fr. Tomas"

    def test_role_defaults_to_public_user(self):
        from catechesis.api.deps import JWT_ALGORITHM, JWT_SECRET, get_actor

        token = jwt.encode({"sub": "5"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        assert get_actor(f"Bearer {token}").role == UserRole.PUBLIC_USER

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer garbage"])
    def test_rejects_bad_headers(self, header):
        from catechesis.api.deps import get_actor

        with pytest.raises(HTTPException) as exc:
            get_actor(header)
        assert exc.value.status_code == 401

    def test_rejects_token_signed_with_other_secret(self):
        from catechesis.api.deps import JWT_ALGORITHM, get_actor

        token = jwt.encode({"sub": "5", "role": "ADMIN"}, "b" * 64, algorithm=JWT_ALGORITHM)
        with pytest.raises(HTTPException):
            get_actor(f"Bearer {token}")
