"""
catechesis.api.deps — FastAPI dependency injection
====================================================

Authentication is a signed bearer token (HS256) whose ``sub`` claim is the
user id and whose ``role`` claim is one of :class:`UserRole`.  Tokens are
issued by the surrounding platform; this service only verifies them.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from catechesis.collaborators import (
    Actor,
    ContentCatalog,
    FileCatalog,
    NullContentCatalog,
    NullFileCatalog,
)
from catechesis.config import CatechesisConfig, default_config, load_config
from catechesis.database.engine import create_db_engine
from catechesis.database.models import UserRole
from catechesis.engine.events import EventDispatcher
from catechesis.services.community_events import register_handlers

_WEAK_SECRETS = frozenset({
    "catechesis-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> CatechesisConfig:
    path = os.getenv("CATECHESIS_CONFIG", "config.yaml")
    if not os.path.exists(path):
        return default_config()
    return load_config(path)


@lru_cache(maxsize=1)
def get_dispatcher() -> EventDispatcher:
    """Process-wide dispatcher with the gamification handlers registered."""
    dispatcher = EventDispatcher(max_workers=get_config().event_workers)
    register_handlers(dispatcher, get_engine())
    return dispatcher


def get_catalog() -> ContentCatalog:
    return NullContentCatalog()


def get_files() -> FileCatalog:
    return NullFileCatalog()


def create_token(user_id: int, role: UserRole | str, display_name: str = "") -> str:
    """Sign a bearer token for *user_id* (used by tests and local tooling)."""
    payload = {"sub": str(user_id), "role": str(role), "name": display_name}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def get_actor(
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    """Validate the bearer token and return the acting user. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    try:
        user_id = int(payload["sub"])
        role = UserRole(payload.get("role", UserRole.PUBLIC_USER))
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token claims")
    return Actor(user_id=user_id, role=role, display_name=payload.get("name") or "")


EngineDep = Annotated[Engine, Depends(get_engine)]
ActorDep = Annotated[Actor, Depends(get_actor)]
DispatcherDep = Annotated[EventDispatcher, Depends(get_dispatcher)]
CatalogDep = Annotated[ContentCatalog, Depends(get_catalog)]
FilesDep = Annotated[FileCatalog, Depends(get_files)]
ConfigDep = Annotated[CatechesisConfig, Depends(get_config)]
