"""Request / response logging middleware using structlog.

Logs each request with method, path, caller, status code and timing.
The request id is bound into structlog's context variables so every log
line emitted while handling the request carries it.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from smartbrowser.utils.logging import get_logger

logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request with timing and response status."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        user_id = request.headers.get("x-user-id", "anonymous")

        structlog.contextvars.bind_contextvars(request_id=request_id)
        logger.info(
            "request_started",
            method=method,
            path=path,
            query=str(request.url.query) if request.url.query else "",
            user_id=user_id,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_failed",
                method=method,
                path=path,
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        log_fn = logger.info if response.status_code < 400 else logger.warning
        log_fn(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
            request_id=request_id,
        )
        response.headers["X-Request-Id"] = request_id
        return response
