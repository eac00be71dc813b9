"""
catechesis.errors — Error Taxonomy
====================================

Every failure the core raises on purpose derives from
:class:`CatechesisError`.  The HTTP layer maps each subclass to a status
code; anything else is treated as an internal error.
"""

from __future__ import annotations


class CatechesisError(Exception):
    """Base exception for moderation / community operations."""


class ValidationError(CatechesisError):
    """Malformed input: out-of-range score, blank text, unknown enum value."""


class NotFoundError(CatechesisError):
    """A referenced submission, user, vote or flag does not exist."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class PermissionDenied(CatechesisError):
    """The acting user's role does not allow the operation."""


class ConflictError(CatechesisError):
    """Duplicate ledger entry or a transition the current state forbids.

    ``code`` is one of the ``CONFLICT_*`` constants below and is surfaced
    to API callers verbatim.
    """

    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__(message)


CONFLICT_DUPLICATE_VOTE = "duplicate_vote"
CONFLICT_DUPLICATE_FLAG = "duplicate_flag"
CONFLICT_DUPLICATE_REVIEW = "duplicate_review"
CONFLICT_INVALID_STATE = "invalid_state"
CONFLICT_INVALID_TRANSITION = "invalid_transition"
CONFLICT_FLAG_CLOSED = "flag_closed"
