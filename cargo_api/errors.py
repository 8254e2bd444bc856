"""
Error taxonomy and the JSON envelope for failures.

Every error the service raises on purpose is an ``HTTPException`` subclass, so
services, security dependencies and routers raise them the same way and
FastAPI routes them to a single handler:

    ValidationError       400  malformed or missing input
    ConflictError         400  duplicate registration (phone, code, username)
    AuthenticationError   401  no or invalid session
    AuthorizationError    403  role or tenant-hint failures (never per-record)
    NotFoundError         404  absent *or* hidden by tenant/branch scope
    DependencyFailure     500  SMS / email / signing channel failed

Per-record visibility failures must always surface as ``NotFoundError`` so a
caller cannot tell "exists elsewhere" from "does not exist".
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default: str = "Request failed"

    def __init__(self, message: str | None = None, *, errors: list[Any] | None = None) -> None:
        super().__init__(status_code=self.status_code_default, detail=message or self.message_default)
        self.errors = errors


class ValidationError(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Validation failed"


class ConflictError(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Resource already exists"


class AuthenticationError(AppError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message_default = "Authentication required"


class AuthorizationError(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "Insufficient permissions"


class NotFoundError(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "Not found"


class DependencyFailure(AppError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default = "Downstream service unavailable"


def _envelope(message: str, errors: list[Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message}
    if errors:
        body["errors"] = errors
    return body


def install_error_handlers(app: FastAPI, *, expose_internal_errors: bool = False) -> None:
    """Render every failure with the `{success: false, error: ...}` envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        errors = getattr(exc, "errors", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(str(exc.detail), errors),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": str(err.get("msg", ""))}
            for err in exc.errors()
        ]
        logger.info("Request validation failed path=%s errors=%d", request.url.path, len(errors))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_envelope("Validation failed", errors),
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error path=%s method=%s", request.url.path, request.method)
        message = f"{type(exc).__name__}: {exc}" if expose_internal_errors else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_envelope(message),
        )
