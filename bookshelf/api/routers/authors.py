"""Authors router — multipart create/update, get, list, delete.

Create and update take the author as a JSON document in the ``author``
form field plus the file slots ``book-image``, ``book-file`` and
``author-image``. Uploads are stored before validation and discarded
again when the request is rejected.

Handlers that touch files commit explicitly: new uploads are discarded if
the commit fails, and files the rows stopped referencing are removed only
after it succeeds.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.api.deps import (
    get_author_service,
    get_current_user,
    get_session,
    require_admin,
    require_editor,
)
from bookshelf.api.schemas.author import AuthorDetail, AuthorResponse
from bookshelf.core.storage import discard, remove_stored, save_uploads
from bookshelf.models.user import User
from bookshelf.services import InvalidPayloadError
from bookshelf.services.author_service import AuthorService
from bookshelf.services.author_validator import (
    AUTHOR_IMAGE_SLOT,
    BOOK_FILE_SLOT,
    BOOK_IMAGE_SLOT,
    AuthorChanges,
    AuthorDraft,
)

router = APIRouter()


def _parse_author_field(raw: str | None) -> dict[str, Any] | None:
    """Decode the ``author`` form field; None when the field was not sent."""
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidPayloadError("author field is not valid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidPayloadError("author field must be a JSON object")
    return data


@router.get("/", response_model=list[AuthorResponse])
async def list_authors(
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(get_current_user),
    svc: AuthorService = Depends(get_author_service),
) -> list[AuthorResponse]:
    authors = await svc.list(session)
    return [AuthorResponse.model_validate(a) for a in authors]


@router.get("/{author_id}", response_model=AuthorDetail)
async def get_author(
    author_id: str,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(get_current_user),
    svc: AuthorService = Depends(get_author_service),
) -> AuthorDetail:
    author = await svc.get(session, author_id)
    return AuthorDetail.model_validate(author)


@router.post("/", response_model=AuthorDetail, status_code=201)
async def create_author(
    author: str | None = Form(None),
    book_image: list[UploadFile] | None = File(None, alias=BOOK_IMAGE_SLOT),
    book_file: list[UploadFile] | None = File(None, alias=BOOK_FILE_SLOT),
    author_image: list[UploadFile] | None = File(None, alias=AUTHOR_IMAGE_SLOT),
    session: AsyncSession = Depends(get_session),
    _editor: User = Depends(require_editor),
    svc: AuthorService = Depends(get_author_service),
) -> AuthorDetail:
    payload = AuthorDraft.from_mapping(_parse_author_field(author))
    files = await save_uploads(
        {
            BOOK_IMAGE_SLOT: book_image,
            BOOK_FILE_SLOT: book_file,
            AUTHOR_IMAGE_SLOT: author_image,
        }
    )
    try:
        created = await svc.create(session, payload, files)
        await session.commit()
    except Exception:
        discard(files)
        raise
    return AuthorDetail.model_validate(created)


@router.patch("/{author_id}", response_model=AuthorDetail)
async def update_author(
    author_id: str,
    author: str | None = Form(None),
    author_image: list[UploadFile] | None = File(None, alias=AUTHOR_IMAGE_SLOT),
    session: AsyncSession = Depends(get_session),
    _editor: User = Depends(require_editor),
    svc: AuthorService = Depends(get_author_service),
) -> AuthorDetail:
    # A multipart body with only files still has an (empty) set of fields
    payload = AuthorChanges.from_mapping(_parse_author_field(author) or {})
    files = await save_uploads({AUTHOR_IMAGE_SLOT: author_image})
    try:
        updated, replaced = await svc.update(session, author_id, payload, files)
        await session.commit()
    except Exception:
        discard(files)
        raise
    remove_stored(replaced)
    return AuthorDetail.model_validate(updated)


@router.delete("/{author_id}", status_code=204, response_class=Response)
async def delete_author(
    author_id: str,
    session: AsyncSession = Depends(get_session),
    _admin: User = Depends(require_admin),
    svc: AuthorService = Depends(get_author_service),
) -> Response:
    stored = await svc.delete(session, author_id)
    await session.commit()
    for filename in stored:
        remove_stored(filename)
    return Response(status_code=204)
