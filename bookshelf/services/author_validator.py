"""AuthorValidator — pre-persistence checks for the author lifecycle.

Every operation runs the same fixed pipeline and stops at the first
violation by raising a :class:`~bookshelf.services.ServiceError` subclass::

    parse -> required fields -> uniqueness -> file slots -> result

Nothing is written here. The validator only reads through
:class:`AuthorDAO` and hands back what the caller needs to persist.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.core.storage import FileMap, StoredFile
from bookshelf.dao.author_dao import AuthorDAO
from bookshelf.models.author import Author
from bookshelf.services import (
    DuplicateFullNameError,
    EmptyFilesError,
    EmptyPayloadError,
    InvalidIdentifierError,
    InvalidPayloadError,
    MissingFieldError,
    MissingFileSlotError,
    NoChangesRequestedError,
    NotFoundError,
)

# ---------------------------------------------------------------------------
# File slots
# ---------------------------------------------------------------------------

BOOK_IMAGE_SLOT = "book-image"
BOOK_FILE_SLOT = "book-file"
AUTHOR_IMAGE_SLOT = "author-image"

# slot -> required; iteration order is the order missing slots are reported
CREATE_FILE_SLOTS: dict[str, bool] = {
    BOOK_IMAGE_SLOT: True,
    BOOK_FILE_SLOT: True,
    AUTHOR_IMAGE_SLOT: True,
}
UPDATE_FILE_SLOTS: dict[str, bool] = {
    AUTHOR_IMAGE_SLOT: False,
}


def resolve_file_slots(
    files: FileMap | None, slots: Mapping[str, bool]
) -> dict[str, StoredFile | None]:
    """Pick the first stored file of each slot.

    Raises :class:`MissingFileSlotError` for the first required slot with
    no file.
    """
    resolved: dict[str, StoredFile | None] = {}
    for slot, required in slots.items():
        candidates = files.get(slot) if files is not None else None
        stored = candidates[0] if candidates else None
        if stored is None and required:
            raise MissingFileSlotError(slot)
        resolved[slot] = stored
    return resolved


# ---------------------------------------------------------------------------
# Identifiers and payloads
# ---------------------------------------------------------------------------

_ID_RE = re.compile(r"[+-]?\d+")

# Primary keys are signed 64-bit on every supported backend
_ID_MIN = -(2**63)
_ID_MAX = 2**63 - 1


def parse_id(raw_id: Any) -> int:
    """Parse a path/query identifier as a decimal integer.

    Empty, non-numeric, floating-point and out-of-range input raise
    :class:`InvalidIdentifierError`.
    """
    if isinstance(raw_id, bool):
        raise InvalidIdentifierError(raw_id)
    if isinstance(raw_id, int):
        value = raw_id
    elif isinstance(raw_id, str) and _ID_RE.fullmatch(raw_id.strip()):
        value = int(raw_id.strip())
    else:
        raise InvalidIdentifierError(raw_id)
    if not _ID_MIN <= value <= _ID_MAX:
        raise InvalidIdentifierError(raw_id)
    return value


def is_absent(value: Any) -> bool:
    """Loosely-typed bodies send ``None`` or ``""`` for a missing field."""
    return value is None or value == ""


def _require_text(field: str, value: Any) -> None:
    if not isinstance(value, str):
        raise InvalidPayloadError(f"{field} must be a string")


@dataclass(frozen=True)
class BookDraft:
    title: Any = None
    genre_ids: Any = None
    description: Any = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> BookDraft | None:
        if data is None:
            return None
        return cls(
            title=data.get("title"),
            genre_ids=data.get("genreIds"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class AuthorDraft:
    """Body of an author creation request; every field may be absent."""

    full_name: Any = None
    born_at: Any = None
    died_at: Any = None
    info: Any = None
    book: BookDraft | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> AuthorDraft | None:
        if data is None:
            return None
        book = data.get("book")
        if is_absent(book):
            book_draft = None
        elif isinstance(book, Mapping):
            book_draft = BookDraft.from_mapping(book)
        else:
            # A scalar book carries none of the book fields
            book_draft = BookDraft()
        return cls(
            full_name=data.get("fullName"),
            born_at=data.get("bornAt"),
            died_at=data.get("diedAt"),
            info=data.get("info"),
            book=book_draft,
        )


@dataclass(frozen=True)
class AuthorChanges:
    """Body of an author update request; every field may be absent."""

    full_name: Any = None
    born_at: Any = None
    died_at: Any = None
    info: Any = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> AuthorChanges | None:
        if data is None:
            return None
        return cls(
            full_name=data.get("fullName"),
            born_at=data.get("bornAt"),
            died_at=data.get("diedAt"),
            info=data.get("info"),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateAuthorFiles:
    author_image_filename: str
    book_image_file: StoredFile
    book_file: StoredFile


@dataclass(frozen=True)
class AuthorUpdateTarget:
    author: Author
    image_file: str | None = None


# ---------------------------------------------------------------------------
# AuthorValidator
# ---------------------------------------------------------------------------


class AuthorValidator:
    """Stateless validator; one coroutine per lifecycle operation."""

    def __init__(self, author_dao: AuthorDAO) -> None:
        self._author_dao = author_dao

    async def _fetch(self, session: AsyncSession, author_id: int) -> Author:
        author = await self._author_dao.get_by_id(session, author_id)
        if author is None:
            raise NotFoundError(f"author with id {author_id} does not exist")
        return author

    async def _ensure_unique_full_name(
        self, session: AsyncSession, full_name: str, exclude_id: int | None = None
    ) -> None:
        if await self._author_dao.exists_by_full_name(session, full_name, exclude_id=exclude_id):
            raise DuplicateFullNameError(full_name)

    async def validate_getting(self, session: AsyncSession, raw_id: Any) -> Author:
        """Return the author behind *raw_id*.

        Raises :class:`InvalidIdentifierError` or :class:`NotFoundError`.
        """
        return await self._fetch(session, parse_id(raw_id))

    async def validate_deleting(self, session: AsyncSession, raw_id: Any) -> Author:
        """Same contract as :meth:`validate_getting`; existence means deletable."""
        return await self._fetch(session, parse_id(raw_id))

    async def validate_creating(
        self,
        session: AsyncSession,
        payload: AuthorDraft | None,
        files: FileMap | None,
    ) -> CreateAuthorFiles:
        """Check a creation payload and its three attachments.

        Field order: fullName, uniqueness, bornAt, info, book, book.title,
        book.genreIds, book.description. Then the file map, then the
        slots book-image, book-file, author-image.
        """
        if payload is None:
            raise EmptyPayloadError()

        if is_absent(payload.full_name):
            raise MissingFieldError("fullName")
        _require_text("fullName", payload.full_name)
        await self._ensure_unique_full_name(session, payload.full_name)

        if is_absent(payload.born_at):
            raise MissingFieldError("bornAt")
        if is_absent(payload.info):
            raise MissingFieldError("info")
        _require_text("info", payload.info)

        book = payload.book
        if book is None:
            raise MissingFieldError("book")
        if is_absent(book.title):
            raise MissingFieldError("title")
        _require_text("title", book.title)
        if book.genre_ids is None:
            raise MissingFieldError("genreIds")
        if is_absent(book.description):
            raise MissingFieldError("description")
        _require_text("description", book.description)

        if files is None:
            raise EmptyFilesError()

        slots = resolve_file_slots(files, CREATE_FILE_SLOTS)
        return CreateAuthorFiles(
            author_image_filename=slots[AUTHOR_IMAGE_SLOT].filename,
            book_image_file=slots[BOOK_IMAGE_SLOT],
            book_file=slots[BOOK_FILE_SLOT],
        )

    async def validate_updating(
        self,
        session: AsyncSession,
        raw_id: Any,
        payload: AuthorChanges | None,
        files: FileMap | None,
    ) -> AuthorUpdateTarget:
        """Check an update request; at least one attribute must change.

        A new ``full_name`` is checked against every *other* author, so
        resubmitting an author's current name is accepted.
        """
        author_id = parse_id(raw_id)
        if payload is None:
            raise EmptyPayloadError()

        author = await self._fetch(session, author_id)

        image = resolve_file_slots(files, UPDATE_FILE_SLOTS)[AUTHOR_IMAGE_SLOT]
        image_file = image.filename if image is not None else None

        requested = (payload.full_name, payload.born_at, payload.died_at, payload.info, image_file)
        if all(is_absent(value) for value in requested):
            raise NoChangesRequestedError()

        for field, value in (("fullName", payload.full_name), ("info", payload.info)):
            if not is_absent(value):
                _require_text(field, value)

        if not is_absent(payload.full_name):
            await self._ensure_unique_full_name(session, payload.full_name, exclude_id=author.id)

        return AuthorUpdateTarget(author=author, image_file=image_file)
