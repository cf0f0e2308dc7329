"""Error handling: domain exceptions to HTTP responses, plus a catch-all."""

from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from networth.config import settings
from networth.core.exceptions import (
    PersistFailure,
    SnapshotError,
    StoreUnavailable,
    Unauthenticated,
    UnsupportedCurrency,
)
from networth.core.logging_config import get_logger

logger = get_logger(__name__)

_STATUS_BY_ERROR = {
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
    UnsupportedCurrency: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


async def snapshot_error_handler(request: Request, exc: SnapshotError) -> JSONResponse:
    """Render a SnapshotError with its kind so clients can tell retryable errors apart."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    logger.warning(
        "request_failed",
        method=request.method,
        path=request.url.path,
        kind=exc.kind,
        status_code=status_code,
    )

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    if exc.retryable:
        headers = {"Retry-After": "30"}

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "kind": exc.kind, "retryable": exc.retryable},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SnapshotError, snapshot_error_handler)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware for uncaught exceptions.

    - Logs the error with request context
    - Returns a generic message in production, details only in DEBUG
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            logger.error(
                "unhandled_exception",
                method=request.method,
                path=request.url.path,
                error_type=type(exc).__name__,
                exc_info=exc,
            )

            if settings.DEBUG:
                error_detail = {
                    "error": str(exc),
                    "type": type(exc).__name__,
                    "detail": "An error occurred processing your request",
                }
            else:
                error_detail = {
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred. Please try again later.",
                }

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_detail
            )
