"""
Shared API Middleware
======================

Middleware, exception handlers and request helpers shared by every router.

All error bodies follow the widget contract: `{"ok": false, ...}`.
"""

import time
import uuid
from typing import Callable, Optional
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from supportdesk.core import (
    ApplicationException,
    AuthorizationException,
    ContactRequiredException,
    DuplicateSubmissionException,
    EventDroppedException,
    RateLimitedException,
    ResourceNotFoundException,
    ServiceUnavailableException,
)
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds a correlation ID to every request and echoes it in the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Tracks request count and response time.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.request_count = 0
        self.total_response_time = 0.0

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        self.request_count += 1

        response = await call_next(request)

        response_time = time.perf_counter() - start_time
        self.total_response_time += response_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs request start and completion with the correlation ID.

    Only the path is logged; query strings may carry search text.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


# ========== Request helpers ==========

def extract_client_ip(request: Request) -> Optional[str]:
    """
    Client IP from proxy headers.

    Order: first X-Forwarded-For entry, CF-Connecting-IP, X-Real-IP.
    The socket peer is not used; behind a proxy it is the proxy.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    for header in ("cf-connecting-ip", "x-real-ip"):
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    return None


def extract_user_agent(request: Request) -> Optional[str]:
    """User-Agent header, or None when absent."""
    return request.headers.get("user-agent") or None


def extract_referer(request: Request) -> Optional[str]:
    """Referer header, or None when absent."""
    return request.headers.get("referer") or None


def require_bearer_token(request: Request, expected: Optional[str], required: bool = False) -> None:
    """
    Check `Authorization: Bearer <expected>`.

    Args:
        request: Incoming request
        expected: Configured token; None disables the check unless `required`
        required: When True an unset token makes the endpoint unavailable

    Raises:
        ServiceUnavailableException: token required but not configured
        AuthorizationException: header missing or wrong
    """
    if not expected:
        if required:
            raise ServiceUnavailableException("Operator token not configured")
        return

    if request.headers.get("authorization", "") != f"Bearer {expected}":
        raise AuthorizationException()


# ========== Exception handlers ==========

def _error_body(exc: ApplicationException) -> dict:
    if isinstance(exc, RateLimitedException):
        return {"ok": False, "message": "rate_limited", "retry_after": exc.retry_after}
    if isinstance(exc, DuplicateSubmissionException):
        return {"ok": False, "error": "duplicate", "message": exc.message}
    if isinstance(exc, EventDroppedException):
        return {"ok": False, "message": exc.reason, "dropped": True}
    if isinstance(exc, ContactRequiredException):
        return {"ok": False, "needs_contact": True, "message": exc.message}
    if isinstance(exc, ResourceNotFoundException):
        return {"ok": False, "error": "not_found", "message": exc.message}
    body = {"ok": False, "error": exc.message}
    if exc.details:
        body["details"] = exc.details
    return body


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """Map an ApplicationException to its status code and widget error body."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = exc.status_code

    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request rejected",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code,
        }
    )

    headers = None
    if isinstance(exc, RateLimitedException):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(status_code=status_code, content=_error_body(exc), headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures are 400s, not 422s."""
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"loc": [], "msg": "Invalid request"}
    field = first["loc"][-1] if first["loc"] else "body"

    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": f"{field}: {first['msg']}", "details": errors},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for unhandled exceptions.

    Internal details are only exposed in development.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers above on an application."""
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
