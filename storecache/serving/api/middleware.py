"""
API Middleware

Per-request id and timing. The id is bound into structlog's context so the
sync engines' log lines carry it too, and it is echoed in ``X-Request-ID``.
"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

# Orchestrator probes are logged at debug
QUIET_PATHS = ("/api/v1/health/live", "/api/v1/health/ready")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request's method, path, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Request crashed", method=request.method, path=request.url.path)
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000

        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        log(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
            client=request.client.host if request.client else None,
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response
