"""Map session errors onto HTTP responses."""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from profiling_sessions.domain.errors import (
    ArtifactStoreError,
    DurationExceedsPolicy,
    EngineStopFailed,
    EngineUnavailable,
    InvalidState,
    RateLimited,
    SessionError,
    SessionNotFound,
    TooManyConcurrentSessions,
    Unauthorized,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases.
_STATUS_CODES: list[tuple[type[SessionError], int, str]] = [
    (Unauthorized, status.HTTP_403_FORBIDDEN, "unauthorized"),
    (SessionNotFound, status.HTTP_404_NOT_FOUND, "not_found"),
    (InvalidState, status.HTTP_409_CONFLICT, "invalid_state"),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited"),
    (TooManyConcurrentSessions, status.HTTP_429_TOO_MANY_REQUESTS, "too_many_sessions"),
    (DurationExceedsPolicy, 422, "duration_exceeds_policy"),
    (EngineUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "engine_unavailable"),
    (EngineStopFailed, status.HTTP_502_BAD_GATEWAY, "engine_stop_failed"),
    (ArtifactStoreError, status.HTTP_502_BAD_GATEWAY, "artifact_store_error"),
]


async def session_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return the status code and body for a SessionError."""
    status_code, error = status.HTTP_400_BAD_REQUEST, "session_error"
    for error_type, code, name in _STATUS_CODES:
        if isinstance(exc, error_type):
            status_code, error = code, name
            break
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": str(exc)},
        headers=headers,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled errors and return a generic 500 body."""
    logger.exception("Unhandled exception for %s %s", request.method, request.url)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionError, session_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
