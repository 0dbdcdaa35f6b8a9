import time
from collections import deque
from typing import Callable, Deque, Dict

import structlog
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from learnmap.domain.errors import ErrorCode, default_message

EXEMPT_PATHS = {"/", "/health", "/openapi.json"}
FORWARDED_HEADER = "X-Forwarded-For"

logger = structlog.get_logger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window request limiter keyed by client address.
    Process-local; a no-op unless ``enabled``. ``X-Forwarded-For`` is only
    read when ``trust_forwarded`` is set, i.e. behind a known proxy.
    """

    def __init__(
        self,
        app,
        enabled: bool = False,
        window_seconds: int = 60,
        max_requests: int = 100,
        trust_forwarded: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.enabled = bool(enabled)
        self.window_seconds = max(1, int(window_seconds))
        self.max_requests = max(1, int(max_requests))
        self.trust_forwarded = bool(trust_forwarded)
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _client_key(self, request: Request) -> str:
        if self.trust_forwarded:
            forwarded = str(request.headers.get(FORWARDED_HEADER) or "").split(",")[0].strip()
            if forwarded:
                return forwarded
        return request.client.host if request.client else "anonymous"

    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Drop clients whose whole window has expired."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._expire(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not self.enabled or path in EXEMPT_PATHS or path.startswith("/docs"):
            return await call_next(request)

        now = self._clock()
        self._sweep(now)
        key = self._client_key(request)
        hits = self._hits.setdefault(key, deque())
        self._expire(hits, now)

        if len(hits) >= self.max_requests:
            retry_after = max(1, int(self.window_seconds - (now - hits[0])))
            logger.warning("rate_limit_exceeded", client=key, path=path, retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": default_message(ErrorCode.TOO_MANY_REQUESTS)},
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)
        return await call_next(request)
