"""
catechesis.services.user_service — User mirror & profile rows
===============================================================

Identity lives in the external auth service.  Every operation receives an
explicit :class:`~catechesis.collaborators.Actor`; the first time an actor
touches the store a mirror row is created so foreign keys, role buckets
and registration counts have something to point at.
"""

from __future__ import annotations

import logging
from typing import TypeVar

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catechesis.collaborators import Actor
from catechesis.database.models import User, UserProfile, UserRole

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _insert_or_get(session: Session, model: type[T], key: int, row: T) -> tuple[T, bool]:
    """Insert *row* under a SAVEPOINT; if a concurrent writer got there first,
    return their row instead.  The second element is True when *row* was
    inserted."""
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        existing = session.get(model, key)
        if existing is None:
            raise
        return existing, False
    return row, True


def get_or_create_user(session: Session, actor: Actor) -> User:
    """Fetch or insert the mirror row for *actor*, refreshing its role."""
    user = session.get(User, actor.user_id)
    if user is None:
        user, created = _insert_or_get(session, User, actor.user_id, User(
            id=actor.user_id,
            display_name=actor.display_name,
            role=UserRole(actor.role),
        ))
        if created:
            logger.info("Registered user %s (%s)", actor.user_id, actor.role)
            return user
    user.role = UserRole(actor.role)
    if actor.display_name:
        user.display_name = actor.display_name
    return user


def get_or_create_profile(session: Session, user_id: int) -> UserProfile:
    """Fetch or create the profile row, and the user row it hangs off."""
    profile = session.get(UserProfile, user_id)
    if profile is None:
        if session.get(User, user_id) is None:
            _insert_or_get(session, User, user_id, User(id=user_id))
        profile, _ = _insert_or_get(session, UserProfile, user_id, UserProfile(user_id=user_id))
    return profile


def upsert_user(
    engine: Engine,
    user_id: int,
    role: UserRole | str,
    display_name: str = "",
    email: str | None = None,
) -> User:
    """Sync one user from the identity provider (login hook, admin import)."""
    with Session(engine, expire_on_commit=False) as session:
        user = get_or_create_user(
            session, Actor(user_id=user_id, role=UserRole(role), display_name=display_name)
        )
        if email is not None:
            user.email = email
        session.commit()
        return user
