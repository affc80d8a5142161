"""Unified error handling — ServiceError + RequestValidationError → JSON.

Clients get a status code and a generic reason phrase only; the failure
detail goes to the server log.
"""

from __future__ import annotations

from http import HTTPStatus

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bookshelf.services import AuthenticationError, AuthorizationError, ServiceError

log = structlog.get_logger(__name__)

_STATUS_MAP: dict[type[ServiceError], int] = {
    AuthenticationError: 401,
    AuthorizationError: 403,
}
_DEFAULT_STATUS = 400


def _status_for(exc: ServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            return _STATUS_MAP[cls]
    return _DEFAULT_STATUS


def _generic_response(status: int) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"detail": HTTPStatus(status).phrase.lower()},
    )


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status = _status_for(exc)
    log.warning(
        "request.rejected",
        error=type(exc).__name__,
        detail=str(exc),
        status_code=status,
        path=request.url.path,
    )
    return _generic_response(status)


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    log.warning(
        "request.rejected",
        error="RequestValidationError",
        detail="; ".join(messages),
        status_code=_DEFAULT_STATUS,
        path=request.url.path,
    )
    return _generic_response(_DEFAULT_STATUS)


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
