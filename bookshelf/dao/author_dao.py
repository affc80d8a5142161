"""AuthorDAO — authors table operations."""

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookshelf.dao.base import BaseDAO
from bookshelf.models.author import Author
from bookshelf.models.book import Book


class AuthorDAO(BaseDAO[Author]):
    model = Author

    async def exists_by_full_name(
        self,
        session: AsyncSession,
        full_name: str,
        exclude_id: int | None = None,
    ) -> bool:
        """Return True if an author other than *exclude_id* holds *full_name*.

        Exact string equality, no case folding. Backed by the unique index
        on ``authors.full_name``.
        """
        condition = Author.full_name == full_name
        if exclude_id is not None:
            condition = condition & (Author.id != exclude_id)
        result = await session.execute(select(exists().where(condition)))
        return result.scalar_one()

    async def get_with_books(self, session: AsyncSession, pk: int) -> Author | None:
        """Load an author with books and genres, overwriting stale state."""
        stmt = (
            select(Author)
            .where(Author.id == pk)
            .options(selectinload(Author.books).selectinload(Book.genres))
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def create_with_book(
        self,
        session: AsyncSession,
        author: Author,
        book: Book,
    ) -> Author:
        """Insert *author* together with its first *book* in one flush."""
        author.books.append(book)
        session.add(author)
        await session.flush()
        return await self.get_with_books(session, author.id)
