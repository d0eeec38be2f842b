"""Per-client sliding-window rate limiting for the HTTP API.

Each client IP may make ``max_requests`` requests in any
``window_seconds`` long window. Requests beyond that are answered with
429 and are not counted. WebSocket traffic never passes through here.
"""
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests. Please try again later."


class SlidingWindowLimiter:
    """Request timestamps per key, pruned to the current window."""

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = 0.0

    def allow(self, key: str, now: Optional[float] = None) -> bool:
        """Record a request for *key* unless the window is already full."""
        now = self._clock() if now is None else now
        if now - self._last_sweep >= self.window_seconds:
            self.sweep(now)
        hits = self._hits.get(key)
        if hits is None:
            hits = self._hits[key] = deque()
        self._prune(hits, now)
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def sweep(self, now: Optional[float] = None) -> None:
        """Forget clients with no request inside the current window."""
        now = self._clock() if now is None else now
        for key in list(self._hits):
            hits = self._hits[key]
            self._prune(hits, now)
            if not hits:
                del self._hits[key]
        self._last_sweep = now

    def tracked(self) -> int:
        return len(self._hits)

    def _prune(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject HTTP requests over the per-IP limit with 429."""

    def __init__(self, app, limiter: SlidingWindowLimiter) -> None:
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        client = request.client.host if request.client else "unknown"
        if not self.limiter.allow(client):
            logger.warning(f"[RateLimit] {client} exceeded {self.limiter.max_requests} requests")
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": TOO_MANY_REQUESTS},
            )
        return await call_next(request)
