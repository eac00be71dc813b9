"""
catechesis.engine.events — Domain events & dispatcher
=======================================================

Every lifecycle change is announced, **after its transaction commits**, as
a small frozen event.  Consumers (the gamification handlers, a search
indexer) register explicitly on an :class:`EventDispatcher`.

Delivery is fire-and-forget and at-most-once: handlers run on a thread
pool, and a handler that raises is logged and discarded.  Nothing a
handler does can roll back or fail the request that published the event.

Usage::

    dispatcher = EventDispatcher(max_workers=4)
    dispatcher.register(ExplanationApproved, reindex)
    dispatcher.publish(ExplanationApproved(submission_id=7, submitter_id=42))
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime

from catechesis.database.models import utcnow

__all__ = [
    "DomainEvent",
    "EventDispatcher",
    "ExplanationApproved",
    "ExplanationDeleted",
    "ExplanationRejected",
    "ExplanationReviewed",
    "ExplanationSubmitted",
    "ExplanationVoted",
    "FlagResolved",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ExplanationSubmitted:
    submission_id: int
    submitter_id: int
    question_id: int
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"submission:{self.submission_id}"


@dataclass(frozen=True, slots=True)
class ExplanationApproved:
    submission_id: int
    submitter_id: int
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"approval:{self.submission_id}"


@dataclass(frozen=True, slots=True)
class ExplanationRejected:
    submission_id: int
    submitter_id: int
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"rejection:{self.submission_id}"


@dataclass(frozen=True, slots=True)
class ExplanationDeleted:
    submission_id: int
    submitter_id: int
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"deletion:{self.submission_id}"


@dataclass(frozen=True, slots=True)
class ExplanationVoted:
    """A *new* vote.  Vote updates and removals are not announced."""

    submission_id: int
    voter_id: int
    owner_id: int
    is_helpful: bool
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"vote:{self.submission_id}:{self.voter_id}"


@dataclass(frozen=True, slots=True)
class FlagResolved:
    flag_id: int
    submission_id: int
    moderator_id: int
    resolution: str
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"flag:{self.flag_id}"


@dataclass(frozen=True, slots=True)
class ExplanationReviewed:
    review_id: int
    submission_id: int
    reviewer_id: int
    status: str
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def source_key(self) -> str:
        return f"review:{self.review_id}"


DomainEvent = (
    ExplanationSubmitted
    | ExplanationApproved
    | ExplanationRejected
    | ExplanationDeleted
    | ExplanationVoted
    | FlagResolved
    | ExplanationReviewed
)

Handler = Callable[[DomainEvent], None]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class EventDispatcher:
    """Typed, explicitly-registered event fan-out.

    Parameters
    ----------
    max_workers:
        Size of the handler thread pool.
    inline:
        Run handlers synchronously in ``publish`` (tests, CLI backfills).
        Failures are still logged and swallowed.
    """

    def __init__(self, max_workers: int = 4, *, inline: bool = False) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._inline = inline
        self._executor: ThreadPoolExecutor | None = None
        if not inline:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="catechesis-events"
            )

    def register(self, event_type: type, handler: Handler) -> None:
        """Subscribe *handler* to every published event of *event_type*."""
        with self._lock:
            self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: type) -> list[Handler]:
        with self._lock:
            return list(self._handlers.get(event_type, ()))

    def publish(self, event: DomainEvent) -> None:
        """Hand *event* to its handlers.  Never raises."""
        for handler in self.handlers_for(type(event)):
            if self._executor is None:
                self._run(handler, event)
                continue
            try:
                self._executor.submit(self._run, handler, event)
            except RuntimeError:
                logger.warning(
                    "Dispatcher shut down; dropped %s for %s",
                    type(event).__name__, getattr(handler, "__name__", handler),
                )

    @staticmethod
    def _run(handler: Handler, event: DomainEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Event handler %s failed for %s",
                getattr(handler, "__name__", handler), event,
            )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events; optionally wait for queued handlers."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
