"""Request ID middleware — one correlation id per request in every log line.

GitHub stamps each webhook delivery with ``X-GitHub-Delivery`` (a UUID shown
in the repository's webhook log). When present it becomes the request id, so
a delivery can be traced from GitHub's UI straight into our logs. Otherwise
a valid ``X-Request-ID`` is honoured, or a fresh one generated.
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("ontrackr.api")


def _is_valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError):
        return False


def resolve_request_id(request: Request) -> str:
    for header in ("x-github-delivery", "x-request-id"):
        candidate = request.headers.get(header, "")
        if _is_valid_uuid(candidate):
            return candidate
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind request_id / method / path into structlog contextvars."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request)
        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            log.info("request completed", status_code=response.status_code, duration_ms=duration_ms)
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            log.exception("request failed", duration_ms=duration_ms)
            raise
        finally:
            structlog.contextvars.reset_contextvars(**tokens)
