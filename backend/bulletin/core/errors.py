"""
Forum error taxonomy and FastAPI exception handlers.

Every error carries the HTTP status it maps to and a human-readable
message. Responses never expose more than `{"error": message}`.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from loguru import logger


class ForumError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ForumError):
    """Missing, invalid or inactive session."""

    status_code = 401
    default_message = "Not authenticated"


class Forbidden(ForumError):
    """Permission or forum-state refusal."""

    status_code = 403
    default_message = "Forbidden"


class NotFound(ForumError):
    """Thread, forum or post missing."""

    status_code = 404
    default_message = "Not found"


class ValidationFailed(ForumError):
    """Length, link-count or content-filter rejection."""

    status_code = 400
    default_message = "Validation failed"


class Fatal(ForumError):
    """Transaction or database failure."""

    status_code = 500
    default_message = "Internal server error"


async def forum_error_handler(request: Request, exc: ForumError) -> ORJSONResponse:
    """Render a ForumError as a JSON error body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return ORJSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> ORJSONResponse:
    """Render malformed request bodies as 400 instead of 422."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return ORJSONResponse(status_code=400, content={"error": message})


def register_error_handlers(app: FastAPI) -> None:
    """Attach forum exception handlers to the application."""
    app.add_exception_handler(ForumError, forum_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
