"""AuthorService — author lifecycle on top of AuthorValidator."""

from __future__ import annotations

from datetime import date
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.core.storage import FileMap
from bookshelf.dao.author_dao import AuthorDAO
from bookshelf.dao.genre_dao import GenreDAO
from bookshelf.models.author import Author
from bookshelf.models.book import Book
from bookshelf.services import DuplicateFullNameError, NotFoundError, ValidationError
from bookshelf.services.author_validator import (
    AuthorChanges,
    AuthorDraft,
    AuthorValidator,
    is_absent,
    parse_id,
)

log = structlog.get_logger(__name__)


def _parse_date(field: str, value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} is not a valid ISO date: {value!r}")


class AuthorService:
    """Stateless service; the validator decides, this persists."""

    def __init__(
        self,
        author_dao: AuthorDAO,
        genre_dao: GenreDAO,
        validator: AuthorValidator,
    ) -> None:
        self._author_dao = author_dao
        self._genre_dao = genre_dao
        self._validator = validator

    async def get(self, session: AsyncSession, raw_id: Any) -> Author:
        return await self._validator.validate_getting(session, raw_id)

    async def list(self, session: AsyncSession) -> list[Author]:
        return await self._author_dao.get_all(session)

    async def create(
        self,
        session: AsyncSession,
        payload: AuthorDraft | None,
        files: FileMap | None,
    ) -> Author:
        """Create an author and its first book in the current transaction.

        Raises :class:`NotFoundError` when a genre id does not exist and
        :class:`DuplicateFullNameError` when the unique index rejects a name
        that passed the early check concurrently.
        """
        resolved = await self._validator.validate_creating(session, payload, files)
        book_draft = payload.book

        if not isinstance(book_draft.genre_ids, (list, tuple)):
            raise ValidationError("genreIds must be a list")
        genre_ids = [parse_id(gid) for gid in book_draft.genre_ids]
        genres = await self._genre_dao.get_by_ids(session, genre_ids)
        missing = sorted(set(genre_ids) - {g.id for g in genres})
        if missing:
            raise NotFoundError(f"genres with ids {missing} do not exist")

        author = Author(
            full_name=payload.full_name,
            born_at=_parse_date("bornAt", payload.born_at),
            died_at=None if is_absent(payload.died_at) else _parse_date("diedAt", payload.died_at),
            info=payload.info,
            image_file=resolved.author_image_filename,
        )
        book = Book(
            title=book_draft.title,
            description=book_draft.description,
            image_file=resolved.book_image_file.filename,
            book_file=resolved.book_file.filename,
            genres=genres,
        )
        try:
            author = await self._author_dao.create_with_book(session, author, book)
        except IntegrityError as exc:
            raise DuplicateFullNameError(payload.full_name) from exc

        log.info("author.created", author_id=author.id, book_id=book.id)
        return author

    async def update(
        self,
        session: AsyncSession,
        raw_id: Any,
        payload: AuthorChanges | None,
        files: FileMap | None,
    ) -> tuple[Author, str | None]:
        """Apply the requested changes.

        Returns the updated author and the image file it replaced, if any,
        so the caller can remove the stale upload.
        """
        target = await self._validator.validate_updating(session, raw_id, payload, files)
        author = target.author

        values: dict[str, Any] = {}
        if not is_absent(payload.full_name):
            values["full_name"] = payload.full_name
        if not is_absent(payload.born_at):
            values["born_at"] = _parse_date("bornAt", payload.born_at)
        if not is_absent(payload.died_at):
            values["died_at"] = _parse_date("diedAt", payload.died_at)
        if not is_absent(payload.info):
            values["info"] = payload.info

        replaced = None
        if target.image_file is not None:
            replaced = author.image_file
            values["image_file"] = target.image_file

        try:
            await self._author_dao.update(session, author.id, **values)
        except IntegrityError as exc:
            raise DuplicateFullNameError(payload.full_name) from exc

        log.info("author.updated", author_id=author.id, fields=sorted(values))
        return await self._author_dao.get_with_books(session, author.id), replaced

    async def delete(self, session: AsyncSession, raw_id: Any) -> list[str]:
        """Delete the author and its books.

        Returns the stored file names the deleted rows referenced.
        """
        author = await self._validator.validate_deleting(session, raw_id)
        author_id = author.id
        stored = [author.image_file] if author.image_file else []
        for book in author.books:
            stored.extend([book.image_file, book.book_file])

        await self._author_dao.delete(session, author_id)
        log.info("author.deleted", author_id=author_id, files=len(stored))
        return stored
