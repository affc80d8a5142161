"""Tests for the API layer.

Uses httpx.AsyncClient over ASGITransport. Services are mocked to isolate
the routers, role gates and error mapping from the database.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from bookshelf.dao.author_dao import AuthorDAO
from bookshelf.dao.genre_dao import GenreDAO
from bookshelf.models.author import Author
from bookshelf.models.book import Book
from bookshelf.models.genre import Genre
from bookshelf.models.user import User
from bookshelf.services import (
    DuplicateFullNameError,
    InvalidCredentialsError,
    MissingFileSlotError,
    NotFoundError,
)
from bookshelf.services.author_service import AuthorService
from bookshelf.services.author_validator import AuthorValidator

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _user(role: str = "admin") -> User:
    return User(
        id=1,
        username="alice",
        password_hash="xxx",
        role=role,
        created_at=NOW,
        updated_at=NOW,
    )


def _author(author_id: int = 7, with_book: bool = True) -> Author:
    author = Author(
        id=author_id,
        full_name="Jane Doe",
        born_at=date(1950, 3, 1),
        died_at=None,
        info="Novelist.",
        image_file="portrait.jpg",
    )
    author.books = []
    if with_book:
        author.books.append(
            Book(
                id=3,
                title="Verses",
                description="Poems.",
                image_file="cover.png",
                book_file="book.pdf",
                genres=[Genre(id=1, name="Poetry")],
            )
        )
    return author


def _author_form(**overrides) -> dict[str, str]:
    body = {
        "fullName": "Jane Doe",
        "bornAt": "1950-03-01",
        "info": "Novelist.",
        "book": {"title": "Verses", "genreIds": [1], "description": "Poems."},
    }
    body.update(overrides)
    return {"author": json.dumps(body)}


def _all_uploads() -> list[tuple[str, tuple[str, bytes, str]]]:
    return [
        ("book-image", ("cover.png", b"png", "image/png")),
        ("book-file", ("book.pdf", b"%PDF", "application/pdf")),
        ("author-image", ("portrait.jpg", b"jpg", "image/jpeg")),
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("BOOKSHELF_UPLOAD_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.begin = MagicMock(return_value=session)
    return session


@pytest.fixture
def app(upload_dir, mock_session):
    """Routers with the session and current user overridden (no real DB)."""
    from fastapi import FastAPI

    from bookshelf.api import deps
    from bookshelf.api.errors import register_error_handlers
    from bookshelf.api.routers import auth, authors

    application = FastAPI()
    register_error_handlers(application)
    application.include_router(auth.router, prefix="/api/v1/auth")
    application.include_router(authors.router, prefix="/api/v1/authors")

    async def _mock_session():
        yield mock_session

    application.dependency_overrides[deps.get_session] = _mock_session
    application.dependency_overrides[deps.get_current_user] = lambda: _user()
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _as(app, role: str) -> None:
    from bookshelf.api import deps

    app.dependency_overrides[deps.get_current_user] = lambda: _user(role)


def _with_auth_service(app, svc) -> None:
    from bookshelf.api import deps

    app.dependency_overrides[deps.get_auth_service] = lambda: svc


def _with_author_service(app, svc) -> None:
    from bookshelf.api import deps

    app.dependency_overrides[deps.get_author_service] = lambda: svc


def _commit_failure() -> OperationalError:
    return OperationalError("COMMIT", {}, Exception("disk I/O error"))


def _lenient_client(app) -> AsyncClient:
    """Client that turns unhandled app errors into 500 responses."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://test")


# ---------------------------------------------------------------------------
# Auth tests
# ---------------------------------------------------------------------------


class TestAuthRouter:
    async def test_register_user_is_public(self, app, client):
        from bookshelf.api import deps

        del app.dependency_overrides[deps.get_current_user]
        svc = AsyncMock()
        svc.register_user = AsyncMock(return_value="tok")
        _with_auth_service(app, svc)

        resp = await client.post(
            "/api/v1/auth/users", json={"username": "bob", "password": "pw"}
        )

        assert resp.status_code == 201
        assert resp.json() == {"access_token": "tok", "token_type": "bearer"}
        credentials = svc.register_user.call_args.args[1]
        assert (credentials.username, credentials.password) == ("bob", "pw")

    async def test_role_in_body_is_ignored(self, app, client):
        svc = AsyncMock()
        svc.register_user = AsyncMock(return_value="tok")
        _with_auth_service(app, svc)

        resp = await client.post(
            "/api/v1/auth/users",
            json={"username": "bob", "password": "pw", "role": "admin"},
        )

        assert resp.status_code == 201
        svc.register_user.assert_awaited_once()
        svc.register_admin.assert_not_called()

    async def test_admin_registers_moderator(self, app, client):
        svc = AsyncMock()
        svc.register_moderator = AsyncMock(return_value="mod-tok")
        _with_auth_service(app, svc)

        resp = await client.post(
            "/api/v1/auth/moderators", json={"username": "mod", "password": "pw"}
        )

        assert resp.status_code == 201
        assert resp.json()["access_token"] == "mod-tok"

    async def test_admin_registers_admin(self, app, client):
        svc = AsyncMock()
        svc.register_admin = AsyncMock(return_value="adm-tok")
        _with_auth_service(app, svc)

        resp = await client.post(
            "/api/v1/auth/admins", json={"username": "root2", "password": "pw"}
        )

        assert resp.status_code == 201
        svc.register_admin.assert_awaited_once()

    @pytest.mark.parametrize("role", ["user", "moderator"])
    async def test_non_admin_cannot_register_privileged(self, app, client, role):
        _as(app, role)
        svc = AsyncMock()
        _with_auth_service(app, svc)

        resp = await client.post(
            "/api/v1/auth/moderators", json={"username": "mod", "password": "pw"}
        )

        assert resp.status_code == 403
        assert resp.json() == {"detail": "forbidden"}
        svc.register_moderator.assert_not_called()

    async def test_login_success(self, app, client):
        svc = AsyncMock()
        svc.login = AsyncMock(return_value="access_tok")
        _with_auth_service(app, svc)

        resp = await client.post(
            "/api/v1/auth/login", json={"username": "alice", "password": "secret"}
        )

        assert resp.status_code == 200
        assert resp.json()["access_token"] == "access_tok"

    async def test_login_failures_share_a_generic_body(self, app, client):
        svc = AsyncMock()
        _with_auth_service(app, svc)

        svc.login = AsyncMock(side_effect=InvalidCredentialsError("invalid credentials"))
        wrong_password = await client.post(
            "/api/v1/auth/login", json={"username": "alice", "password": "wrong"}
        )
        svc.login = AsyncMock(side_effect=NotFoundError("user ghost does not exist"))
        unknown_user = await client.post(
            "/api/v1/auth/login", json={"username": "ghost", "password": "pw"}
        )

        assert wrong_password.status_code == unknown_user.status_code == 400
        assert wrong_password.json() == unknown_user.json() == {"detail": "bad request"}

    async def test_me(self, app, client):
        _as(app, "moderator")
        resp = await client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["username"] == "alice"
        assert resp.json()["role"] == "moderator"

    async def test_missing_token_is_unauthorized(self, app, client):
        from bookshelf.api import deps

        del app.dependency_overrides[deps.get_current_user]
        resp = await client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "unauthorized"}

    async def test_malformed_body_is_bad_request(self, client):
        resp = await client.post("/api/v1/auth/login", content=b"not json")
        assert resp.status_code == 400
        assert resp.json() == {"detail": "bad request"}


# ---------------------------------------------------------------------------
# Authors tests
# ---------------------------------------------------------------------------


class TestAuthorsRead:
    async def test_list(self, app, client):
        svc = AsyncMock()
        svc.list = AsyncMock(return_value=[_author(1), _author(2)])
        _with_author_service(app, svc)

        resp = await client.get("/api/v1/authors/")

        assert resp.status_code == 200
        assert [a["id"] for a in resp.json()] == [1, 2]

    async def test_get_includes_books(self, app, client):
        _as(app, "user")
        svc = AsyncMock()
        svc.get = AsyncMock(return_value=_author(7))
        _with_author_service(app, svc)

        resp = await client.get("/api/v1/authors/7")

        assert resp.status_code == 200
        data = resp.json()
        assert data["full_name"] == "Jane Doe"
        assert data["born_at"] == "1950-03-01"
        assert data["books"][0]["genres"] == [{"id": 1, "name": "Poetry"}]
        assert svc.get.call_args.args[1] == "7"

    async def test_get_passes_raw_id_through(self, app, client):
        svc = AsyncMock()
        svc.get = AsyncMock(side_effect=NotFoundError("author with id 99 does not exist"))
        _with_author_service(app, svc)

        resp = await client.get("/api/v1/authors/99")

        assert resp.status_code == 400
        assert resp.json() == {"detail": "bad request"}


class TestAuthorsCreate:
    async def test_create_stores_files_and_returns_author(
        self, app, client, upload_dir, mock_session
    ):
        _as(app, "moderator")
        svc = AsyncMock()
        svc.create = AsyncMock(return_value=_author(7))
        _with_author_service(app, svc)

        resp = await client.post(
            "/api/v1/authors/", data=_author_form(), files=_all_uploads()
        )

        assert resp.status_code == 201
        assert resp.json()["id"] == 7
        mock_session.commit.assert_awaited_once()
        _, payload, files = svc.create.call_args.args
        assert payload.full_name == "Jane Doe"
        assert payload.book.genre_ids == [1]
        assert sorted(files) == ["author-image", "book-file", "book-image"]
        assert files["book-file"][0].path.read_bytes() == b"%PDF"
        assert len(list(upload_dir.iterdir())) == 3

    async def test_rejected_create_discards_uploads(self, app, client, upload_dir):
        svc = AsyncMock()
        svc.create = AsyncMock(side_effect=DuplicateFullNameError("Jane Doe"))
        _with_author_service(app, svc)

        resp = await client.post(
            "/api/v1/authors/", data=_author_form(), files=_all_uploads()
        )

        assert resp.status_code == 400
        assert list(upload_dir.iterdir()) == []

    async def test_failed_commit_discards_uploads(self, app, upload_dir, mock_session):
        svc = AsyncMock()
        svc.create = AsyncMock(return_value=_author(7))
        _with_author_service(app, svc)
        mock_session.commit = AsyncMock(side_effect=_commit_failure())

        async with _lenient_client(app) as c:
            resp = await c.post(
                "/api/v1/authors/", data=_author_form(), files=_all_uploads()
            )

        assert resp.status_code == 500
        svc.create.assert_awaited_once()
        assert list(upload_dir.iterdir()) == []

    async def test_missing_slot_reported_generically(self, app, client, upload_dir):
        svc = AsyncMock()
        svc.create = AsyncMock(side_effect=MissingFileSlotError("book-file"))
        _with_author_service(app, svc)

        resp = await client.post(
            "/api/v1/authors/", data=_author_form(), files=_all_uploads()[:1]
        )

        assert resp.status_code == 400
        assert resp.json() == {"detail": "bad request"}

    async def test_no_author_field_passes_none(self, app, client):
        svc = AsyncMock()
        svc.create = AsyncMock(return_value=_author(7))
        _with_author_service(app, svc)

        await client.post("/api/v1/authors/", files=_all_uploads())

        assert svc.create.call_args.args[1] is None

    async def test_no_files_passes_none(self, app, client):
        svc = AsyncMock()
        svc.create = AsyncMock(return_value=_author(7))
        _with_author_service(app, svc)

        await client.post("/api/v1/authors/", data=_author_form())

        assert svc.create.call_args.args[2] is None

    async def test_invalid_json_is_bad_request(self, app, client):
        svc = AsyncMock()
        _with_author_service(app, svc)

        resp = await client.post("/api/v1/authors/", data={"author": "{not json"})

        assert resp.status_code == 400
        svc.create.assert_not_called()

    async def test_user_role_cannot_create(self, app, client, upload_dir):
        _as(app, "user")
        svc = AsyncMock()
        _with_author_service(app, svc)

        resp = await client.post(
            "/api/v1/authors/", data=_author_form(), files=_all_uploads()
        )

        assert resp.status_code == 403
        svc.create.assert_not_called()
        assert list(upload_dir.iterdir()) == []


class TestAuthorsUpdate:
    async def test_update_replaces_image(self, app, client, upload_dir):
        old = upload_dir / "old.png"
        old.write_bytes(b"old")
        svc = AsyncMock()
        svc.update = AsyncMock(return_value=(_author(7), "old.png"))
        _with_author_service(app, svc)

        resp = await client.patch(
            "/api/v1/authors/7",
            data={"author": json.dumps({"info": "Updated."})},
            files=[("author-image", ("new.png", b"new", "image/png"))],
        )

        assert resp.status_code == 200
        _, raw_id, changes, files = svc.update.call_args.args
        assert raw_id == "7"
        assert changes.info == "Updated."
        assert changes.full_name is None
        assert list(files) == ["author-image"]
        assert not old.exists()
        assert len(list(upload_dir.iterdir())) == 1

    async def test_update_ignores_book_slots(self, app, client):
        svc = AsyncMock()
        svc.update = AsyncMock(return_value=(_author(7), None))
        _with_author_service(app, svc)

        await client.patch(
            "/api/v1/authors/7",
            data={"author": json.dumps({"info": "Updated."})},
            files=[("book-file", ("book.pdf", b"%PDF", "application/pdf"))],
        )

        assert svc.update.call_args.args[3] is None

    async def test_image_only_update(self, app, client, upload_dir, mock_session):
        """A files-only multipart PATCH runs through the real validator."""
        (upload_dir / "portrait.jpg").write_bytes(b"old")
        author = _author(7, with_book=False)
        author_dao = AuthorDAO()
        author_dao.get_by_id = AsyncMock(return_value=author)
        author_dao.exists_by_full_name = AsyncMock(return_value=False)
        author_dao.update = AsyncMock(return_value=author)
        author_dao.get_with_books = AsyncMock(return_value=author)
        _with_author_service(
            app, AuthorService(author_dao, GenreDAO(), AuthorValidator(author_dao))
        )

        resp = await client.patch(
            "/api/v1/authors/7",
            files=[("author-image", ("new.png", b"new", "image/png"))],
        )

        assert resp.status_code == 200
        new_name = author_dao.update.call_args.kwargs["image_file"]
        assert (upload_dir / new_name).read_bytes() == b"new"
        assert not (upload_dir / "portrait.jpg").exists()
        mock_session.commit.assert_awaited_once()

    async def test_failed_commit_keeps_old_image(self, app, upload_dir, mock_session):
        old = upload_dir / "old.png"
        old.write_bytes(b"old")
        svc = AsyncMock()
        svc.update = AsyncMock(return_value=(_author(7), "old.png"))
        _with_author_service(app, svc)
        mock_session.commit = AsyncMock(side_effect=_commit_failure())

        async with _lenient_client(app) as c:
            resp = await c.patch(
                "/api/v1/authors/7",
                data={"author": json.dumps({"info": "Updated."})},
                files=[("author-image", ("new.png", b"new", "image/png"))],
            )

        assert resp.status_code == 500
        assert list(upload_dir.iterdir()) == [old]


class TestAuthorsDelete:
    async def test_admin_deletes_and_files_are_removed(self, app, client, upload_dir):
        for name in ("portrait.jpg", "cover.png"):
            (upload_dir / name).write_bytes(b"x")
        svc = AsyncMock()
        svc.delete = AsyncMock(return_value=["portrait.jpg", "cover.png"])
        _with_author_service(app, svc)

        resp = await client.delete("/api/v1/authors/7")

        assert resp.status_code == 204
        assert list(upload_dir.iterdir()) == []

    async def test_failed_commit_keeps_files(self, app, upload_dir, mock_session):
        (upload_dir / "portrait.jpg").write_bytes(b"x")
        svc = AsyncMock()
        svc.delete = AsyncMock(return_value=["portrait.jpg"])
        _with_author_service(app, svc)
        mock_session.commit = AsyncMock(side_effect=_commit_failure())

        async with _lenient_client(app) as c:
            resp = await c.delete("/api/v1/authors/7")

        assert resp.status_code == 500
        assert (upload_dir / "portrait.jpg").exists()

    async def test_moderator_cannot_delete(self, app, client):
        _as(app, "moderator")
        svc = AsyncMock()
        _with_author_service(app, svc)

        resp = await client.delete("/api/v1/authors/7")

        assert resp.status_code == 403
        svc.delete.assert_not_called()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


class TestCreateApp:
    @pytest.fixture
    async def app_client(self):
        from bookshelf.api import create_app

        transport = ASGITransport(app=create_app())
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c

    async def test_health(self, app_client):
        resp = await app_client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_request_id_generated(self, app_client):
        resp = await app_client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 32

    async def test_request_id_echoed_when_well_formed(self, app_client):
        resp = await app_client.get("/health", headers={"X-Request-ID": "client-req-0001"})
        assert resp.headers["X-Request-ID"] == "client-req-0001"

    async def test_request_id_replaced_when_unsafe(self, app_client):
        resp = await app_client.get("/health", headers={"X-Request-ID": "bad id; with junk"})
        assert resp.headers["X-Request-ID"] != "bad id; with junk"
