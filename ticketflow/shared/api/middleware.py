"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ticketflow.core import (
    ApplicationException,
    CloneException,
    ConfigurationException,
    LockedException,
    ReferentialException,
    ResourceNotFoundException,
    StructuralException,
    ValidationException,
)
from ticketflow.shared.infrastructure.logging import bind_correlation_id, get_logger

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    The ID is bound to the logging context so every log line written
    while handling the request carries it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Get existing correlation ID or generate new one
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state for access in endpoints
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)

        try:
            response = await call_next(request)
        finally:
            bind_correlation_id(None)

        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs all requests and responses.

    Provides audit trail and debugging information.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "url": str(request.url),
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "url": str(request.url),
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


# ========== Exception Handlers ==========

# Most specific first; first match wins
_STATUS_BY_EXCEPTION = [
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StructuralException, status.HTTP_409_CONFLICT),
    (ReferentialException, status.HTTP_409_CONFLICT),
    (LockedException, status.HTTP_403_FORBIDDEN),
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (CloneException, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (ConfigurationException, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: ApplicationException) -> int:
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map application exceptions to HTTP responses.

    The body carries the machine-readable error code next to the message.
    """
    correlation_id = getattr(request.state, "correlation_id", None)
    status_code = status_code_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request rejected",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_code": exc.code,
            "status_code": status_code,
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "code": exc.code,
            "detail": exc.message,
            "details": exc.details,
            "correlation_id": correlation_id,
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        },
        exc_info=exc
    )

    # Don't expose internal details in production
    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
