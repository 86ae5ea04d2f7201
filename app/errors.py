"""API error taxonomy and the uniform error response body."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that maps directly to an HTTP error response."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthorized(ApiError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(ApiError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidId(ApiError):
    code = "INVALID_ID"
    status_code = 400


class NotFound(ApiError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(ApiError):
    code = "CONFLICT"
    status_code = 409


class ValidationFailed(ApiError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidTransition(ApiError):
    code = "INVALID_TRANSITION"
    status_code = 400


class InvalidStatus(ApiError):
    code = "INVALID_STATUS"
    status_code = 400


class DatabaseError(ApiError):
    code = "DATABASE_ERROR"
    status_code = 500


def error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    error["timestamp"] = datetime.now(timezone.utc).isoformat()
    error["request_id"] = str(uuid.uuid4())
    return {"error": error}


def error_response(exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
    )


def _validation_details(exc: RequestValidationError) -> dict[str, list[str]]:
    """Group pydantic errors by dotted field path, dropping the 'body' prefix."""
    details: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        path = ".".join(loc) or "body"
        details.setdefault(path, []).append(err.get("msg", "Invalid value"))
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_body("VALIDATION_ERROR", "Invalid request data", _validation_details(exc)),
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception(f"Unexpected error in {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )
