"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of catechesis.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("CATECHESIS_DISABLE_SCHEDULER", "1")

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, event  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from catechesis.collaborators import Actor  # noqa: E402
from catechesis.database.models import Base, UserRole  # noqa: E402
from catechesis.database.seed import seed_catalog  # noqa: E402
from catechesis.engine.events import EventDispatcher  # noqa: E402
from catechesis.services import explanation_service, review_service  # noqa: E402
from catechesis.services.community_events import register_handlers  # noqa: E402


# BigInteger → INTEGER so primary keys autoincrement on SQLite
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every table and the seeded badge catalog.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in the scheduler and by the
    dispatcher's worker threads).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    seed_catalog(engine)
    return engine


def _file_engine(path, *, serialized: bool = False) -> Engine:
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    if serialized:
        # Hand transaction control to SQLAlchemy and open every transaction
        # with BEGIN IMMEDIATE: one writer at a time, like a row lock held
        # for the whole transaction.
        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    seed_catalog(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine; separate sessions get separate connections."""
    engine = _file_engine(tmp_path / "catechesis.db")
    yield engine
    engine.dispose()


@pytest.fixture
def serialized_engine(tmp_path):
    """File-backed SQLite engine that is safe to hammer from many threads."""
    engine = _file_engine(tmp_path / "catechesis-threads.db", serialized=True)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def dispatcher(db_engine: Engine) -> EventDispatcher:
    """Inline dispatcher with the gamification handlers wired in."""
    events = EventDispatcher(inline=True)
    register_handlers(events, db_engine)
    return events


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture
def catechist() -> Actor:
    return Actor(user_id=1001, role=UserRole.CATECHIST, display_name="Anna")


@pytest.fixture
def reader() -> Actor:
    return Actor(user_id=2001, role=UserRole.PUBLIC_USER, display_name="Reader")


@pytest.fixture
def second_reader() -> Actor:
    return Actor(user_id=2002, role=UserRole.PUBLIC_USER, display_name="Reader Two")


@pytest.fixture
def priest() -> Actor:
    return Actor(user_id=3001, role=UserRole.PRIEST, display_name="Fr. Tomas")


@pytest.fixture
def reviewer() -> Actor:
    return Actor(user_id=3002, role=UserRole.THEOLOGY_REVIEWER, display_name="Dr. Ines")


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=9001, role=UserRole.ADMIN, display_name="Admin")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture
def submit(db_engine, catechist, dispatcher):
    """Factory: create a PENDING text submission and return its id."""

    def _submit(actor: Actor | None = None, question_id: int = 7, text: str = "Grace is a gift.",
                language_code: str = "en") -> int:
        submission = explanation_service.submit_text(
            db_engine, actor or catechist, question_id, language_code, text, events=dispatcher,
        )
        return submission.id

    return _submit


@pytest.fixture
def approved(db_engine, submit, priest, dispatcher):
    """Factory: create a submission and approve it with one priest review."""

    def _approved(actor: Actor | None = None, question_id: int = 7, quality_rating: int = 4) -> int:
        submission_id = submit(actor, question_id)
        review_service.submit_review(
            db_engine, submission_id, priest, "APPROVED",
            quality_rating=quality_rating, events=dispatcher,
        )
        return submission_id

    return _approved
