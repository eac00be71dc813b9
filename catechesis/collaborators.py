"""
catechesis.collaborators — External interfaces
================================================

The moderation core does not own the catechism content tree, file storage
or authentication.  It reaches them through the narrow interfaces below:

* :class:`ContentCatalog` — does a question exist; catalog sizes for analytics.
* :class:`FileCatalog` — metadata of uploaded files, incl. virus-scan verdict.
* :class:`Actor` — who is acting, passed explicitly into every operation.

``Null*`` implementations are used when nothing is wired in (tests, CLI).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from catechesis.constants import is_moderator
from catechesis.database.models import UserRole


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated user performing an operation."""

    user_id: int
    role: UserRole = UserRole.PUBLIC_USER
    display_name: str = ""

    @property
    def is_moderator(self) -> bool:
        return is_moderator(self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ---------------------------------------------------------------------------
# Content catalog
# ---------------------------------------------------------------------------
class ContentCatalog(Protocol):
    def question_exists(self, question_id: int) -> bool: ...

    def count_questions(self) -> int: ...

    def count_booklets(self) -> int: ...

    def count_acts(self) -> int: ...


class NullContentCatalog:
    """Accepts every question id and reports an empty catalog."""

    def question_exists(self, question_id: int) -> bool:
        return True

    def count_questions(self) -> int:
        return 0

    def count_booklets(self) -> int:
        return 0

    def count_acts(self) -> int:
        return 0


# ---------------------------------------------------------------------------
# File catalog
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FileInfo:
    """Uploaded file metadata as reported by the storage service."""

    file_id: int
    uploader_id: int
    upload_type: str  # AUDIO | VIDEO
    url: str
    size_bytes: int
    mime_type: str
    duration_seconds: int | None = None
    scan_status: str = "PENDING"  # PENDING | CLEAN | INFECTED

    def is_safe(self) -> bool:
        return self.scan_status == "CLEAN"


class FileCatalog(Protocol):
    def get_file(self, file_id: int) -> FileInfo | None: ...


class NullFileCatalog:
    """Knows no files; every file submission is rejected as not found."""

    def get_file(self, file_id: int) -> FileInfo | None:
        return None
