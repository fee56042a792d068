# HTTP errors and FastAPI exception handlers
# resource_api/core/errors.py

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)


class HttpError(Exception):
    """An error that maps directly onto an HTTP response."""

    def __init__(self, status_code: int, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"HttpError({self.status_code}, {self.message!r})"


class DatabaseError(Exception):
    """Raised by the model layer when the database rejects an operation."""
    pass


class CastError(DatabaseError):
    """Raised when a value cannot be cast to a model's id type."""
    pass


def error_body(status_code: int, message: str, details: Optional[Any] = None) -> dict:
    errors = {"code": status_code, "message": message}
    if details is not None:
        errors["details"] = details
    return {"errors": errors}


async def http_error_handler(request: Request, exc: HttpError) -> Response:
    if exc.status_code == status.HTTP_304_NOT_MODIFIED:
        # 304 responses must not carry a body; keep headers set by the action.
        headers = getattr(request.state, "response_headers", None) or {}
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.message, exc.details),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error"),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HttpError, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
