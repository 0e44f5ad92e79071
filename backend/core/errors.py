# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Error taxonomy and the FastAPI handlers that render it.

Every business-rule failure is raised as an :class:`AuthServiceError`
subclass and turned into the JSON envelope
``{"success": false, "message": ..., "errors": [...]}`` at the boundary.
Anything else is logged with its traceback and answered with a generic 500
so internals never leak to the client.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from core.logger import logger

GENERIC_SERVER_ERROR = "Server error. Please try again later"


class AuthServiceError(Exception):
    """Base class for errors mapped to an HTTP status and JSON envelope."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "bad_request"

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[list[str]] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.extra = extra or {}


class ValidationError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"


class AuthenticationError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthorized"


class AuthorizationError(AuthServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"


class NotFoundError(AuthServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class DuplicateError(AuthServiceError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"


class LockedError(AuthServiceError):
    status_code = status.HTTP_423_LOCKED
    error_code = "locked"


class RateLimitedError(AuthServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "rate_limited"


class ServiceUnavailable(AuthServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "server_error"


# -- Token codec errors -------------------------------------------------------
# Raised by core.security.verify_token; callers decide which HTTP error they
# become (401 for the access guard, 400 for the email flows).


class TokenError(Exception):
    pass


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


# ---------------------------------------------------------------------------
# Envelope + handlers
# ---------------------------------------------------------------------------


def error_payload(message: str, errors: Optional[list[str]] = None, **extra: Any) -> dict:
    payload: dict[str, Any] = {"success": False, "message": message}
    if errors:
        payload["errors"] = errors
    payload.update(extra)
    return payload


async def auth_error_handler(request: Request, exc: AuthServiceError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "%s %s -> %d %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.error_code,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.message, exc.errors, **exc.extra),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", []) if part != "body")
        errors.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload("Invalid data", errors),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(GENERIC_SERVER_ERROR),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthServiceError, auth_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)
