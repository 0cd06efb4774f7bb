"""Business error taxonomy and its HTTP mapping.

Services raise these; routers let them propagate and the handlers registered
in ``main.py`` render them as ``{"detail": ..., "code": ...}``. Store and
transport failures are never wrapped in one of these.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to a user-facing message."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(AppError):
    """Missing or malformed input."""

    code = "VALIDATION_ERROR"


class BadRequestError(AppError):
    code = "BAD_REQUEST"


class AuthorizationError(AppError):
    """Caller is not allowed to perform this action."""

    status_code = 403
    code = "FORBIDDEN"


class ForbiddenError(AuthorizationError):
    pass


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTokenError(AppError):
    """A confirmation token or guest token does not resolve."""

    code = "INVALID_TOKEN"


class AlreadyVerifiedError(BadRequestError):
    code = "ACCOUNT_ALREADY_VERIFIED"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class AlreadyConfirmedError(ConflictError):
    """A confirmed account exists for this email; the caller must sign in."""

    code = "ACCOUNT_ALREADY_EXISTS"


class RateLimitExceededError(AppError):
    status_code = 429
    code = "RATE_LIMITED"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a business error with its status code."""
    logger.info(
        "Request failed with %s",
        exc.code,
        extra={"route": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Opaque 500 for store/transport failures (never leak internals)."""
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
