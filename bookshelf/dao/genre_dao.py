"""GenreDAO — genres table operations."""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.dao.base import BaseDAO
from bookshelf.models.genre import Genre


class GenreDAO(BaseDAO[Genre]):
    model = Genre

    async def get_by_ids(self, session: AsyncSession, ids: Iterable[int]) -> list[Genre]:
        """Return the genres whose id is in *ids* (missing ids are skipped)."""
        wanted = set(ids)
        if not wanted:
            return []
        result = await session.execute(
            select(Genre).where(Genre.id.in_(wanted)).order_by(Genre.id)
        )
        return list(result.scalars().all())

    async def get_or_create(self, session: AsyncSession, name: str) -> Genre:
        """Return the genre called *name*, inserting it first if needed."""
        genre = await self.get_by_field(session, name=name)
        if genre is None:
            genre = await self.create(session, name=name)
        return genre
