"""
FastAPI exception handlers.

WHY: A blocked restore or a denied delete is an expected outcome, not a
crash. Clients receive the same JSON envelope for every failure (the
AppException payload), so they can branch on ``code`` and read the
blocking ancestor or dependency from ``details``.

HOW: Framework errors (request validation, routing) are converted into
the matching AppException and rendered through ``to_dict()``; anything
unexpected becomes a generic InternalError with the traceback logged.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from worktrack.core.exceptions import AppException, InternalError, ValidationError

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying a conflicting transaction
RETRY_AFTER_SECONDS = 1


def _render(exc: AppException) -> JSONResponse:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render an AppException (and subclasses) as its JSON envelope.

    Server-side failures are logged at error level; client errors are
    already logged where they are raised.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message
        )
    return _render(exc)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Report malformed request payloads as a 400 ValidationError.

    Each pydantic error becomes ``{"field", "message", "type"}`` with the
    location joined by dots (e.g. ``body.assignee_ids``).
    """
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _render(ValidationError("Request validation failed", errors=errors))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing errors (404/405) raised before a route is reached."""
    return _render(
        AppException(message=str(exc.detail), status_code=exc.status_code, code="HTTP_ERROR")
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for unexpected exceptions.

    The client only sees a generic InternalError; the traceback goes to
    the log.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _render(InternalError())


def register_exception_handlers(app: FastAPI) -> None:
    """Install every handler on an application."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
