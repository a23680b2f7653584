"""
Application error taxonomy and FastAPI exception handlers.

Business code raises these errors; the REST layer turns them into
`{"error": message}` responses and the realtime layer reports them back to
the originating connection only.
"""
import logging
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(AppError):
    """Missing, malformed, expired or forged credential."""
    status_code = status.HTTP_401_UNAUTHORIZED


class BadRequest(AppError):
    """Missing required field or invalid identifier shape."""
    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(AppError):
    """
    Caller is authenticated but does not own the resource.

    Reported as 400 like the other client errors; the message tells them apart.
    """
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(AppError):
    """Referenced message or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation failures are reported as 400 like any other bad input."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )
