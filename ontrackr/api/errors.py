"""Exception → JSON mapping for the REST API.

Two envelopes are in use:

- REST endpoints: ``{"detail": "..."}`` with 404 / 409 / 422 / 401.
- The webhook endpoint: ``{"error": "...", "message"?: "...", ...}`` with the
  status carried by the :class:`WebhookError` itself.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from ontrackr.services import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ServiceError,
    ValidationError,
    WebhookError,
)

log = structlog.get_logger("ontrackr.api")

_STATUS_MAP: dict[type[ServiceError], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    ValidationError: 422,
    AuthenticationError: 401,
}


def status_for(exc: ServiceError) -> int:
    if isinstance(exc, WebhookError):
        return exc.status_code
    return next((_STATUS_MAP[cls] for cls in type(exc).__mro__ if cls in _STATUS_MAP), 500)


def webhook_error_content(exc: WebhookError) -> dict:
    content: dict = {"error": exc.error, **exc.extra}
    if str(exc):
        content["message"] = str(exc)
    return content


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, WebhookError):
        content = webhook_error_content(exc)
    else:
        content = {"detail": str(exc)}
    return JSONResponse(status_code=status_for(exc), content=content)


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    # a uniqueness race lost between a service's check and its insert
    log.warning("api.integrity_error", constraint=getattr(exc.orig, "constraint_name", None))
    return JSONResponse(status_code=409, content={"detail": "conflicting record already exists"})


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = [
        f"{' → '.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": "; ".join(messages)})


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
