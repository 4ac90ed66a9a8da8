"""Fixed-window rate limiting per client address.

Every response carries ``X-RateLimit-Limit``, ``X-RateLimit-Remaining``
and ``X-RateLimit-Reset``.  Requests past the limit get a 429 envelope.
``/health`` is never limited.
"""

from __future__ import annotations

import math
import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from smartbrowser.api.middleware.error_handler import error_response
from smartbrowser.utils.exceptions import RateLimitError
from smartbrowser.utils.logging import get_logger

logger = get_logger(__name__)

_EXEMPT_PATHS = frozenset({"/health"})


class FixedWindowLimiter:
    """Count hits per key inside windows of *window* seconds."""

    def __init__(self, limit: int, window: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> tuple[bool, int, float]:
        """Record one hit; return ``(allowed, remaining, seconds_to_reset)``."""
        now = self.clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        self._prune(now)
        reset_in = max(self.window - (now - started), 0.0)
        return count <= self.limit, max(self.limit - count, 0), reset_in

    def _prune(self, now: float) -> None:
        expired = [k for k, (s, _) in self._windows.items() if now - s >= self.window]
        for key in expired:
            del self._windows[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limit: int = 100, window: float = 900.0, limiter: FixedWindowLimiter | None = None):
        super().__init__(app)
        self.limiter = limiter or FixedWindowLimiter(limit, window)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        allowed, remaining, reset_in = self.limiter.hit(client)
        headers = {
            "X-RateLimit-Limit": str(self.limiter.limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(math.ceil(reset_in)),
        }

        if not allowed:
            logger.warning("rate_limit_exceeded", client=client, path=request.url.path)
            response = error_response(RateLimitError(math.ceil(reset_in)))
        else:
            response = await call_next(request)
        response.headers.update(headers)
        return response
