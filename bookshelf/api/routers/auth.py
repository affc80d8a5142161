"""Auth router — one registration route per role, login, me.

Each registration route calls the service entry point for its own role;
the request body has no way to choose a role.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.api.deps import get_auth_service, get_current_user, get_session, require_admin
from bookshelf.api.schemas.auth import CredentialsRequest, TokenResponse, UserResponse
from bookshelf.models.user import User
from bookshelf.services.auth_service import AuthService, Credentials

router = APIRouter()


def _credentials(body: CredentialsRequest) -> Credentials:
    return Credentials(username=body.username, password=body.password)


@router.post("/users", response_model=TokenResponse, status_code=201)
async def create_user(
    body: CredentialsRequest,
    session: AsyncSession = Depends(get_session),
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    token = await auth.register_user(session, _credentials(body))
    return TokenResponse(access_token=token)


@router.post("/moderators", response_model=TokenResponse, status_code=201)
async def create_moderator(
    body: CredentialsRequest,
    session: AsyncSession = Depends(get_session),
    _admin: User = Depends(require_admin),
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    token = await auth.register_moderator(session, _credentials(body))
    return TokenResponse(access_token=token)


@router.post("/admins", response_model=TokenResponse, status_code=201)
async def create_admin(
    body: CredentialsRequest,
    session: AsyncSession = Depends(get_session),
    _admin: User = Depends(require_admin),
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    token = await auth.register_admin(session, _credentials(body))
    return TokenResponse(access_token=token)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: CredentialsRequest,
    session: AsyncSession = Depends(get_session),
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    token = await auth.login(session, _credentials(body))
    return TokenResponse(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return UserResponse.model_validate(current_user)
