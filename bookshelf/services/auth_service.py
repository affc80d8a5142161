"""AuthService — role-scoped registration, login and token checks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import structlog
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.dao.user_dao import UserDAO
from bookshelf.models.user import Role, User
from bookshelf.services import (
    AuthenticationError,
    DuplicateIdentifierError,
    InvalidCredentialsError,
    InvalidPayloadError,
    NotFoundError,
)

log = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def _verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), password_hash.encode())


# ---------------------------------------------------------------------------
# JWT configuration
# ---------------------------------------------------------------------------

# Pre-computed bcrypt hash for timing-safe login (user-not-found path)
_DUMMY_HASH = bcrypt.hashpw(b"dummy", bcrypt.gensalt()).decode()

_ALGORITHM = "HS256"
_DEFAULT_TOKEN_EXPIRE_MINUTES = 60

# Environment variable keys
_ENV_JWT_SECRET = "BOOKSHELF_JWT_SECRET"
_ENV_TOKEN_EXPIRE_MINUTES = "BOOKSHELF_TOKEN_EXPIRE_MINUTES"
_ENV_ADMIN_USERNAME = "BOOKSHELF_ADMIN_USERNAME"
_ENV_ADMIN_PASSWORD = "BOOKSHELF_ADMIN_PASSWORD"


def _get_secret() -> str:
    """Read JWT secret from environment. Raises if not set."""
    secret = os.environ.get(_ENV_JWT_SECRET)
    if not secret:
        raise RuntimeError(f"{_ENV_JWT_SECRET} environment variable is required")
    return secret


def _token_expire() -> timedelta:
    minutes = os.environ.get(_ENV_TOKEN_EXPIRE_MINUTES)
    return timedelta(minutes=int(minutes) if minutes else _DEFAULT_TOKEN_EXPIRE_MINUTES)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credentials:
    """Username + plaintext password as supplied by the client."""

    username: str | None
    password: str | None


@dataclass(frozen=True)
class TokenClaims:
    """Decoded token payload."""

    user_id: int
    role: Role


def issue_token(user_id: int, role: Role | str) -> str:
    """Sign a token embedding the subject id and role."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": str(user_id),
            "role": Role(role).value,
            "exp": now + _token_expire(),
        },
        _get_secret(),
        algorithm=_ALGORITHM,
    )


# ---------------------------------------------------------------------------
# AuthService
# ---------------------------------------------------------------------------


class AuthService:
    """Stateless authentication service.

    The role of a new account is bound by which ``register_*`` entry point
    the route calls, never by anything in the request body.
    """

    def __init__(self, user_dao: UserDAO) -> None:
        self._user_dao = user_dao

    # -- Registration -------------------------------------------------------

    async def register(self, session: AsyncSession, credentials: Credentials, role: Role) -> str:
        """Create a user with *role* and return a signed token.

        Raises :class:`InvalidPayloadError` when username or password is
        missing and :class:`DuplicateIdentifierError` when the username is
        taken. The early lookup and the insert are separate awaits, so the
        ``users.username`` unique constraint is what finally rejects a
        concurrent duplicate; that violation surfaces as the same error.
        """
        if not credentials.username:
            raise InvalidPayloadError("username is undefined")
        if not credentials.password:
            raise InvalidPayloadError("password is undefined")

        role = Role(role)
        existing = await self._user_dao.get_by_username(session, credentials.username)
        if existing is not None:
            raise DuplicateIdentifierError(credentials.username)

        try:
            user = await self._user_dao.create(
                session,
                username=credentials.username,
                password_hash=_hash_password(credentials.password),
                role=role.value,
            )
        except IntegrityError as exc:
            raise DuplicateIdentifierError(credentials.username) from exc

        log.info("auth.registered", user_id=user.id, role=role.value)
        return issue_token(user.id, user.role)

    async def register_user(self, session: AsyncSession, credentials: Credentials) -> str:
        return await self.register(session, credentials, Role.USER)

    async def register_moderator(self, session: AsyncSession, credentials: Credentials) -> str:
        return await self.register(session, credentials, Role.MODERATOR)

    async def register_admin(self, session: AsyncSession, credentials: Credentials) -> str:
        return await self.register(session, credentials, Role.ADMIN)

    async def ensure_admin_exists(self, session: AsyncSession) -> None:
        """Create the initial admin user from environment variables.

        Reads ``BOOKSHELF_ADMIN_USERNAME`` and ``BOOKSHELF_ADMIN_PASSWORD``.
        Silently skips if either is missing or the user already exists.
        """
        username = os.environ.get(_ENV_ADMIN_USERNAME)
        password = os.environ.get(_ENV_ADMIN_PASSWORD)

        if not all([username, password]):
            return

        if await self._user_dao.get_by_username(session, username) is not None:
            return

        user = await self._user_dao.create(
            session,
            username=username,
            password_hash=_hash_password(password),
            role=Role.ADMIN.value,
        )
        log.info("auth.admin_bootstrapped", user_id=user.id)

    # -- Login / Token -----------------------------------------------------

    async def login(self, session: AsyncSession, credentials: Credentials) -> str:
        """Verify credentials and return a token carrying the stored role.

        Raises :class:`NotFoundError` for an unknown username and
        :class:`InvalidCredentialsError` for a wrong password.
        """
        if not credentials.username or not credentials.password:
            raise InvalidPayloadError("username and password are required")

        user = await self._user_dao.get_by_username(session, credentials.username)
        if user is None:
            # Constant-time: run bcrypt even when user doesn't exist
            _verify_password(credentials.password, _DUMMY_HASH)
            raise NotFoundError(f"user {credentials.username} does not exist")
        if not _verify_password(credentials.password, user.password_hash):
            raise InvalidCredentialsError("invalid credentials")

        log.info("auth.login", user_id=user.id)
        return issue_token(user.id, user.role)

    def decode_token(self, token: str) -> TokenClaims:
        """Validate *token* and return its claims.

        Raises :class:`AuthenticationError` on invalid or expired token.
        """
        try:
            payload = jwt.decode(token, _get_secret(), algorithms=[_ALGORITHM])
        except JWTError:
            raise AuthenticationError("invalid access token")

        try:
            return TokenClaims(user_id=int(payload["sub"]), role=Role(payload["role"]))
        except (KeyError, ValueError):
            raise AuthenticationError("invalid token payload")

    async def get_current_user(self, session: AsyncSession, token: str) -> User:
        """Decode a token and return the corresponding user.

        Intended for use as a FastAPI dependency.

        Raises :class:`AuthenticationError` on invalid token or unknown user.
        """
        claims = self.decode_token(token)
        user = await self._user_dao.get_by_id(session, claims.user_id)
        if user is None:
            raise AuthenticationError("user not found")
        return user
