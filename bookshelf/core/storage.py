"""Upload storage: persists multipart files before validation.

Files are written under ``BOOKSHELF_UPLOAD_DIR`` with a generated name that
keeps the original extension. The resulting ``{field: [StoredFile]}`` map is
what the author validator consumes; when a request is rejected the caller
hands the same map to :func:`discard`.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog
from fastapi import UploadFile

from bookshelf.services import ValidationError

log = structlog.get_logger(__name__)

_ENV_UPLOAD_DIR = "BOOKSHELF_UPLOAD_DIR"
_ENV_MAX_UPLOAD_BYTES = "BOOKSHELF_MAX_UPLOAD_BYTES"

_DEFAULT_UPLOAD_DIR = "uploads"
_DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024
_CHUNK_SIZE = 64 * 1024

FileMap = Mapping[str, Sequence["StoredFile"]]


@dataclass(frozen=True)
class StoredFile:
    """An upload already written to disk."""

    field_name: str
    original_name: str
    filename: str
    path: Path
    content_type: str | None
    size: int


class UploadTooLargeError(ValidationError):
    def __init__(self, field_name: str, limit: int) -> None:
        super().__init__(f"{field_name} exceeds {limit} bytes")
        self.field_name = field_name
        self.limit = limit


def get_upload_dir() -> Path:
    return Path(os.environ.get(_ENV_UPLOAD_DIR, _DEFAULT_UPLOAD_DIR))


def get_max_upload_bytes() -> int:
    return int(os.environ.get(_ENV_MAX_UPLOAD_BYTES, _DEFAULT_MAX_UPLOAD_BYTES))


def _generated_name(original: str) -> str:
    suffix = Path(original).suffix.lower()
    return f"{uuid.uuid4().hex}{suffix}"


async def _save_one(field_name: str, upload: UploadFile, upload_dir: Path, limit: int) -> StoredFile:
    original = upload.filename or ""
    filename = _generated_name(original)
    path = upload_dir / filename
    size = 0
    try:
        with path.open("wb") as fh:
            while chunk := await upload.read(_CHUNK_SIZE):
                size += len(chunk)
                if size > limit:
                    raise UploadTooLargeError(field_name, limit)
                fh.write(chunk)
    except BaseException:
        # Not in the stored map yet, so discard() would miss it
        path.unlink(missing_ok=True)
        raise
    return StoredFile(
        field_name=field_name,
        original_name=original,
        filename=filename,
        path=path,
        content_type=upload.content_type,
        size=size,
    )


async def save_uploads(
    uploads: Mapping[str, Sequence[UploadFile] | None],
    upload_dir: Path | None = None,
) -> dict[str, list[StoredFile]] | None:
    """Write every upload to disk and return the stored-file map.

    Fields with no uploads are left out of the map. Returns None when no
    field carried a file, mirroring a multipart request without attachments.
    On failure everything written so far is removed before re-raising.
    """
    target = upload_dir or get_upload_dir()
    target.mkdir(parents=True, exist_ok=True)
    limit = get_max_upload_bytes()

    stored: dict[str, list[StoredFile]] = {}
    try:
        for field_name, files in uploads.items():
            for upload in files or ():
                saved = await _save_one(field_name, upload, target, limit)
                stored.setdefault(field_name, []).append(saved)
    except Exception:
        discard(stored)
        raise

    if not stored:
        return None
    log.debug(
        "storage.saved",
        fields=sorted(stored),
        files=sum(len(v) for v in stored.values()),
    )
    return stored


def discard(file_map: FileMap | None) -> None:
    """Delete the stored files in *file_map* (missing files are ignored)."""
    if not file_map:
        return
    for files in file_map.values():
        for stored in files:
            stored.path.unlink(missing_ok=True)
    log.debug("storage.discarded", fields=sorted(file_map))


def remove_stored(filename: str | None, upload_dir: Path | None = None) -> None:
    """Delete a previously stored file by its generated name."""
    if not filename:
        return
    ((upload_dir or get_upload_dir()) / Path(filename).name).unlink(missing_ok=True)
