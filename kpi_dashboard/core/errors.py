"""Error taxonomy and the JSON envelope every failure is rendered into."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base class for errors that map onto an HTTP status and a user-facing message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, error: str | None = None, extra: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error
        self.extra = extra or {}


class ValidationFailed(DashboardError):
    """A required field is missing or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(DashboardError):
    """A unique key or referential rule would be violated."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(DashboardError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamError(DashboardError):
    """The store or another collaborator failed underneath us."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_envelope(message: str, error: str | None = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        payload["error"] = error
    payload.update(extra)
    return payload


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or "request"
    detail = first.get("msg", "is invalid")
    ctx_error = (first.get("ctx") or {}).get("error")
    if ctx_error is not None:
        detail = str(ctx_error)
    return f"{field}: {detail}"


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"success": false, "message", "error"?}``."""

    @app.exception_handler(DashboardError)
    async def _dashboard_error(request: Request, exc: DashboardError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.message, exc.error, **exc.extra),
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_envelope(_describe_validation_error(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_envelope(str(exc.detail)))

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_envelope("Database error", str(exc)),
        )

    # Exceptions without a handler bubble past the exception middleware; catch them here
    @app.middleware("http")
    async def _unhandled(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_envelope("Internal server error", str(exc)),
            )


__all__ = [
    "Conflict",
    "DashboardError",
    "NotFound",
    "UpstreamError",
    "ValidationFailed",
    "error_envelope",
    "register_exception_handlers",
]
