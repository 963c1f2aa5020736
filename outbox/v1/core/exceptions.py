"""
API error types and the response envelope.

Every response is `{ok, data|error, request_id, timestamp}`. Errors carry a
stable string `code` so operators and the CLI can branch on it without
parsing messages.
"""

import time
import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from outbox.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class OutboxException(Exception):
    """Base class for errors the API turns into an error envelope."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(OutboxException):
    """The job (or other resource) does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(OutboxException):
    """The job is not in a state that allows the action, e.g. retrying a pending job."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class UnauthorizedError(OutboxException):
    """Missing or wrong operator token or cron secret."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(
        self, message: str = "Unauthorized", details: dict[str, Any] | None = None
    ):
        super().__init__(message, details)


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {"message": message, "code": code, "details": details or {}},
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(code, message, details, _request_id(request)),
    )


async def outbox_exception_handler(
    request: Request, exc: OutboxException
) -> JSONResponse:
    logger.warning(
        "Request rejected",
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )
    return _error(request, exc.status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    return _error(request, exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and query parameters, e.g. an unknown status filter."""
    errors = jsonable_encoder(exc.errors())
    logger.info("Request validation failed", error_count=len(errors))
    return _error(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        exc_info=True,
    )
    return _error(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        OutboxException.code,
        "Internal server error",
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id (incoming X-Request-ID or a new one) to logs and the response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        add_request_context(
            request_id=request_id, method=request.method, path=request.url.path
        )

        started = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return response
