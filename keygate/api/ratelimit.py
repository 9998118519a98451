"""Per-client request limiter — fixed window counters kept in process memory."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from keygate.core.logging import get_logger

log = get_logger(__name__)


class FixedWindowLimiter:
    """At most ``max_requests`` per client in each ``window_seconds`` window."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, client: str) -> tuple[bool, float]:
        """Count one request. Returns ``(allowed, seconds_until_reset)``."""
        with self._lock:
            now = self._clock()
            started, hits = self._windows.get(client, (now, 0))
            if now - started >= self.window:
                started, hits = now, 0
            if len(self._windows) > 10_000:
                self._prune(now)

            reset_in = self.window - (now - started)
            if hits >= self.max_requests:
                self._windows[client] = (started, hits)
                return False, reset_in
            self._windows[client] = (started, hits + 1)
            return True, reset_in

    def _prune(self, now: float) -> None:
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window]
        for k in expired:
            del self._windows[k]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients over their window budget with 429 before routing."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: FixedWindowLimiter,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self._limiter = limiter
        self._exempt = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        allowed, reset_in = self._limiter.hit(client)
        if not allowed:
            log.info("rate_limited", client=client, path=request.url.path)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "too many requests"},
                headers={"Retry-After": str(max(1, math.ceil(reset_in)))},
            )
        return await call_next(request)
