"""UserDAO — users table operations."""

from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.dao.base import BaseDAO
from bookshelf.models.user import User


class UserDAO(BaseDAO[User]):
    model = User

    async def get_by_username(self, session: AsyncSession, username: str) -> User | None:
        """Look up a user by username (login and registration flows).

        Exact, case-sensitive match.
        """
        return await self.get_by_field(session, username=username)
