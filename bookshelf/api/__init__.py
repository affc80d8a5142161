"""Bookshelf REST API — FastAPI application factory.

    uvicorn bookshelf.api:create_app --factory
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookshelf.api.deps import dispose_engine, get_auth_service, init_session_factory
from bookshelf.api.errors import register_error_handlers
from bookshelf.api.middleware.request_id import RequestIDMiddleware
from bookshelf.api.routers import auth, authors
from bookshelf.core.logging import setup_logging

log = structlog.get_logger(__name__)

_ENV_CORS_ORIGINS = "BOOKSHELF_CORS_ORIGINS"
_DEFAULT_CORS_ORIGINS = "http://localhost:3000"

API_PREFIX = "/api/v1"


def _cors_origins() -> list[str]:
    raw = os.environ.get(_ENV_CORS_ORIGINS, _DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database, bootstrap the admin account, close on shutdown."""
    factory = init_session_factory()
    async with factory() as session, session.begin():
        await get_auth_service().ensure_admin_exists(session)
    log.info("app.started")
    try:
        yield
    finally:
        await dispose_engine()
        log.info("app.stopped")


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Bookshelf",
        version="1.0.1",
        docs_url=f"{API_PREFIX}/docs",
        openapi_url=f"{API_PREFIX}/openapi.json",
        lifespan=_lifespan,
    )
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["auth"])
    app.include_router(authors.router, prefix=f"{API_PREFIX}/authors", tags=["authors"])
    return app
