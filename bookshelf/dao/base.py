"""Generic base DAO — CRUD on integer-keyed ORM models.

DAOs hold no state: every method takes the caller's ``AsyncSession`` and
only flushes, so the request's transaction decides what is committed.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)

_IMMUTABLE_COLUMNS = frozenset({"id", "created_at", "updated_at"})


class BaseDAO(Generic[ModelT]):
    """Subclasses set ``model``."""

    model: type[ModelT]

    async def _load(self, session: AsyncSession, pk: int) -> ModelT | None:
        if pk is None:
            raise ValueError(f"{self.model.__name__} id must not be None")
        return await session.get(self.model, pk)

    def _check_writable(self, values: dict[str, Any]) -> None:
        columns = self.model.__mapper__.column_attrs.keys()
        for key in values:
            if key in _IMMUTABLE_COLUMNS:
                raise AttributeError(f"'{key}' is immutable and cannot be updated")
            if key not in columns:
                raise AttributeError(f"{self.model.__name__} has no column '{key}'")

    async def get_by_id(self, session: AsyncSession, pk: int) -> ModelT | None:
        return await self._load(session, pk)

    async def get_all(self, session: AsyncSession) -> list[ModelT]:
        """Every row, ordered by id."""
        result = await session.scalars(select(self.model).order_by(self.model.id))
        return list(result.all())

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        """Insert a row and return it with server defaults loaded."""
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def update(self, session: AsyncSession, pk: int, **values: Any) -> ModelT | None:
        """Set *values* on the row; None when it does not exist.

        Raises ``AttributeError`` for unknown or immutable columns before
        touching the row.
        """
        self._check_writable(values)
        obj = await self._load(session, pk)
        if obj is None:
            return None
        for key, val in values.items():
            setattr(obj, key, val)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def delete(self, session: AsyncSession, pk: int) -> bool:
        obj = await self._load(session, pk)
        if obj is None:
            return False
        await session.delete(obj)
        await session.flush()
        return True

    async def get_by_field(self, session: AsyncSession, **filters: Any) -> ModelT | None:
        """First row whose columns equal *filters*; ``ValueError`` without filters."""
        if not filters:
            raise ValueError("get_by_field() requires at least one filter")
        return await session.scalar(select(self.model).filter_by(**filters).limit(1))
