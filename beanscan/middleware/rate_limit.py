"""
BeanScan Backend - Rate Limiting Middleware
=============================================

What:  Per-IP fixed-window rate limiter.
How:   Each client IP maps to (count, reset_at). The first request after
       reset_at opens a new window with count=1; once count reaches the
       limit, requests are rejected with 429 and Retry-After (seconds until
       reset_at, rounded up) until the window expires.

In-memory and single-process. Windows of idle IPs are pruned lazily.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from beanscan.config import settings
from beanscan.exceptions import RateLimitExceededError
from beanscan.middleware.logging import client_ip
from beanscan.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

PRUNE_EVERY = 1000


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests if max_requests is not None else settings.rate_limit_requests
        self.window_seconds = window_seconds if window_seconds is not None else settings.rate_limit_window
        self._clock = clock
        self._store: Dict[str, RateLimitEntry] = {}
        self._seen = 0

    def check(self, key: str) -> None:
        """
        Count one request for `key`.

        Raises:
            RateLimitExceededError: the current window is exhausted.
        """
        now = self._clock()
        entry = self._store.get(key)

        if entry is None or entry.reset_at <= now:
            self._store[key] = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
            self._maybe_prune(now)
            return

        if entry.count >= self.max_requests:
            raise RateLimitExceededError(retry_after=max(1, math.ceil(entry.reset_at - now)))

        entry.count += 1

    def _maybe_prune(self, now: float) -> None:
        self._seen += 1
        if self._seen % PRUNE_EVERY:
            return
        expired = [key for key, entry in self._store.items() if entry.reset_at <= now]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("Pruned %d expired rate limit windows", len(expired))

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        ip = client_ip(request)
        try:
            self.check(ip)
        except RateLimitExceededError as exc:
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests per %ds",
                ip,
                self.max_requests,
                self.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": {"retry_after": exc.retry_after},
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        return await call_next(request)
