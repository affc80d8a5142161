"""Dependency injection — session, auth, roles and service singletons."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from bookshelf.dao.author_dao import AuthorDAO
from bookshelf.dao.genre_dao import GenreDAO
from bookshelf.dao.user_dao import UserDAO
from bookshelf.models.user import Role, User
from bookshelf.services import AuthenticationError, AuthorizationError
from bookshelf.services.auth_service import AuthService
from bookshelf.services.author_service import AuthorService
from bookshelf.services.author_validator import AuthorValidator

_ENV_DATABASE_URL = "BOOKSHELF_DATABASE_URL"

# ---------------------------------------------------------------------------
# DAO singletons
# ---------------------------------------------------------------------------
_user_dao = UserDAO()
_author_dao = AuthorDAO()
_genre_dao = GenreDAO()

# ---------------------------------------------------------------------------
# Service singletons
# ---------------------------------------------------------------------------
_auth_service = AuthService(_user_dao)
_author_validator = AuthorValidator(_author_dao)
_author_service = AuthorService(_author_dao, _genre_dao, _author_validator)

# ---------------------------------------------------------------------------
# Engine / session factory (initialised by app lifespan)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory. Called once at startup."""
    global _engine, _session_factory  # noqa: PLW0603
    url = database_url or os.environ.get(
        _ENV_DATABASE_URL, "postgresql+asyncpg://localhost/bookshelf"
    )
    _engine = create_async_engine(url, pool_pre_ping=True)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the async engine, closing all pooled connections."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def set_session_factory(factory: async_sessionmaker[AsyncSession]) -> None:
    """Override session factory (for testing)."""
    global _session_factory  # noqa: PLW0603
    _session_factory = factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    if _session_factory is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    async with _session_factory() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Auth dependencies
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> User:
    """Extract and validate Bearer token, return the authenticated User."""
    if credentials is None:
        raise AuthenticationError("missing authorization header")
    return await _auth_service.get_current_user(session, credentials.credentials)


def require_roles(*roles: Role) -> Callable[..., Awaitable[User]]:
    """Build a dependency admitting only users whose stored role is in *roles*."""
    allowed = {Role(r).value for r in roles}

    async def _require(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise AuthorizationError(f"role {user.role!r} may not access this resource")
        return user

    return _require


require_admin = require_roles(Role.ADMIN)
require_editor = require_roles(Role.MODERATOR, Role.ADMIN)


# ---------------------------------------------------------------------------
# Service getters (for Depends())
# ---------------------------------------------------------------------------


def get_auth_service() -> AuthService:
    return _auth_service


def get_author_service() -> AuthorService:
    return _author_service
