"""Error envelope shared by every non-2xx API response.

Every error body is `{"detail": str, "error_code": str}`, optionally with
extra keys (validation errors, the transcoder exit code).
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

logger = logging.getLogger(__name__)


class APIErrorCode(StrEnum):
    """Stable machine-readable error codes."""

    APP_NOT_INITIALIZED = "APP_NOT_INITIALIZED"
    DB_UNAVAILABLE = "DB_UNAVAILABLE"
    CAMERA_NOT_FOUND = "CAMERA_NOT_FOUND"
    CAPTURE_START_FAILED = "CAPTURE_START_FAILED"
    RECORDING_NOT_FOUND = "RECORDING_NOT_FOUND"
    RECORDING_DELETE_FAILED = "RECORDING_DELETE_FAILED"
    RECORDING_ACTIVE = "RECORDING_ACTIVE"
    EXPORT_RANGE_INVALID = "EXPORT_RANGE_INVALID"
    EXPORT_RANGE_NOT_FOUND = "EXPORT_RANGE_NOT_FOUND"
    EXPORT_FAILED = "EXPORT_FAILED"
    EXPORT_NOT_FOUND = "EXPORT_NOT_FOUND"
    SETTINGS_INVALID = "SETTINGS_INVALID"
    REQUEST_VALIDATION_FAILED = "REQUEST_VALIDATION_FAILED"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    HTTP_ERROR = "HTTP_ERROR"


# Codes for errors raised by the framework itself (unknown route, wrong verb).
_FRAMEWORK_CODES: dict[int, APIErrorCode] = {
    status.HTTP_400_BAD_REQUEST: APIErrorCode.BAD_REQUEST,
    status.HTTP_404_NOT_FOUND: APIErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: APIErrorCode.METHOD_NOT_ALLOWED,
    status.HTTP_503_SERVICE_UNAVAILABLE: APIErrorCode.SERVICE_UNAVAILABLE,
}


class APIErrorResponse(BaseModel):
    detail: str
    error_code: str


class APIError(RuntimeError):
    """Raised by routes; rendered as the error envelope with `status_code`."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: int,
        error_code: str | APIErrorCode,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.error_code = str(error_code)
        self.extra = extra or {}


def error_response(
    status_code: int,
    detail: str,
    error_code: str,
    *,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = APIErrorResponse(detail=detail, error_code=str(error_code)).model_dump()
    body.update(extra or {})
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Validation errors with `ctx` values stringified (they may hold exceptions)."""
    errors: list[dict[str, Any]] = []
    for err in exc.errors():
        item = dict(err)
        if "ctx" in item:
            item["ctx"] = {key: str(value) for key, value in item["ctx"].items()}
        errors.append(item)
    return errors


async def _on_api_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, APIError)
    return error_response(exc.status_code, str(exc), exc.error_code, extra=exc.extra)


async def _on_validation_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    return error_response(
        status.HTTP_422_UNPROCESSABLE_CONTENT,
        "Request validation failed",
        APIErrorCode.REQUEST_VALIDATION_FAILED,
        extra={"validation_errors": jsonable_errors(exc)},
    )


async def _on_http_exception(request: Request, exc: Exception) -> JSONResponse:
    # FastAPI's HTTPException subclasses Starlette's, so this covers both.
    assert isinstance(exc, StarletteHTTPException)
    code = _FRAMEWORK_CODES.get(exc.status_code, APIErrorCode.HTTP_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(
        exc.status_code, detail, code, headers=dict(exc.headers) if exc.headers else None
    )


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        APIErrorCode.INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, _on_api_error)
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(StarletteHTTPException, _on_http_exception)
    app.add_exception_handler(Exception, _on_unhandled)
