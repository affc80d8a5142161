"""Request ID middleware — tags every request's log lines with an id."""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Accept client-supplied ids that are short and log-safe
_CLIENT_ID_RE = re.compile(r"[A-Za-z0-9._-]{8,64}")


def resolve_request_id(raw: str | None) -> str:
    """Return *raw* if it is a usable request id, otherwise a fresh one."""
    if raw and _CLIENT_ID_RE.fullmatch(raw):
        return raw
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind request_id/method/path to structlog contextvars per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("request.failed", elapsed_ms=_elapsed_ms(start))
            raise
        log.info(
            "request.completed",
            status_code=response.status_code,
            elapsed_ms=_elapsed_ms(start),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)
