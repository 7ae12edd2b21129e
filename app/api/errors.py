"""Map domain errors onto HTTP responses.

Every handled error uses one envelope:

  {"status": "error", "message": "...", "errors": {...}?, "timestamp": "..."}

  NotFoundError                              404
  ValidationError, RequestValidationError    422  (field-level "errors")
  ConflictError and subclasses               409

Auth failures are not handled here; they stay FastAPI HTTPExceptions
(401/403) raised by app/api/dependencies.py.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def error_response(
    status_code: int, message: str, errors: dict[str, Any] | None = None
) -> JSONResponse:
    body: dict[str, Any] = {"status": "error", "message": message}
    if errors:
        body["errors"] = errors
    body["timestamp"] = _timestamp()
    return JSONResponse(status_code=status_code, content=body)


async def _not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
    return error_response(status.HTTP_404_NOT_FOUND, str(exc))


async def _validation(_request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(422, exc.message, exc.errors)


async def _request_validation(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors: dict[str, str] = {}
    for err in exc.errors():
        # drop the leading "body"/"query"/"path" segment
        loc = [str(p) for p in err.get("loc", ())[1:]]
        errors[".".join(loc) or "body"] = err.get("msg", "invalid")
    return error_response(422, "Invalid request", errors)


async def _conflict(request: Request, exc: ConflictError) -> JSONResponse:
    logger.info("Conflict on %s %s: %s", request.method, request.url.path, exc)
    return error_response(status.HTTP_409_CONFLICT, str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ValidationError, _validation)
    app.add_exception_handler(RequestValidationError, _request_validation)
    app.add_exception_handler(ConflictError, _conflict)
