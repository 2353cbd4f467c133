"""Error taxonomy and handlers for upstream Twitch failures.

Request-level errors are ``HTTPException`` subclasses so FastAPI renders them
as ``{"detail": ...}``. Upstream errors are plain exceptions raised by the
Twitch client and translated at the endpoint boundary by the handlers
registered in ``register_exception_handlers``.
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================
# Request errors
# ============================================


class AuthenticationError(HTTPException):
    """No session, or no usable Twitch token for it."""

    def __init__(self, detail: str = "Not logged in"):
        super().__init__(status_code=401, detail=detail)


class BadRequestError(HTTPException):
    """Missing or malformed query parameter."""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


# ============================================
# Upstream errors
# ============================================


class TwitchAPIError(Exception):
    """Non-2xx response or transport failure from Twitch."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TwitchUnauthorizedError(TwitchAPIError):
    """HTTP 401: the access token is expired or revoked."""


class TwitchRateLimitError(TwitchAPIError):
    """HTTP 429."""


class TwitchDecodeError(TwitchAPIError):
    """Twitch answered 2xx but the payload did not match the expected schema."""


# ============================================
# Handlers
# ============================================


async def _rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(f"Twitch rate limit hit on {request.url.path}")
    return JSONResponse(status_code=503, content={"detail": "Twitch rate limit reached"})


async def _unauthorized_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(f"Twitch rejected token on {request.url.path}")
    return JSONResponse(status_code=401, content={"detail": "Twitch session expired"})


async def _upstream_handler(request: Request, exc: Exception) -> JSONResponse:
    status = exc.status_code if isinstance(exc, TwitchAPIError) else None
    logger.error(
        f"Twitch API failure on {request.url.path}: {type(exc).__name__} (status={status})"
    )
    return JSONResponse(status_code=502, content={"detail": "Failed to fetch data from Twitch"})


async def _request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(errors)})


def register_exception_handlers(app: FastAPI) -> None:
    """Map malformed parameters to 400 and upstream failures to opaque JSON responses."""
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(TwitchRateLimitError, _rate_limit_handler)
    app.add_exception_handler(TwitchUnauthorizedError, _unauthorized_handler)
    app.add_exception_handler(TwitchAPIError, _upstream_handler)
