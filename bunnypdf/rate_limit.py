"""
Rate Limiter - fixed window per client address.

In-memory, single process. Each client address gets a budget of requests per
60 second window; the window starts with the first request and resets once it
expires. Responses carry the standard RateLimit-* headers.

Usage:
    limiter = FixedWindowRateLimiter(limit=30)
    status = limiter.hit("203.0.113.7")
    if not status.allowed:
        ...  # respond 429
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


@dataclass
class _Window:
    started_at: float
    count: int = 0


@dataclass
class RateLimitStatus:
    """Outcome of one hit against the limiter."""
    allowed: bool
    limit: int
    remaining: int
    reset_in: float

    def headers(self) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(math.ceil(self.reset_in)),
        }


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows."""

    def __init__(
        self,
        limit: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def hit(self, key: str) -> RateLimitStatus:
        """Record a request for key and report whether it is allowed."""
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            if window is None and len(self._windows) >= 10000:
                self._prune(now)
            window = _Window(started_at=now)
            self._windows[key] = window

        window.count += 1
        reset_in = max(0.0, window.started_at + self.window_seconds - now)
        allowed = window.count <= self.limit
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}: {window.count}/{self.limit}")

        return RateLimitStatus(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - window.count),
            reset_in=reset_in,
        )

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when none is given."""
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def _prune(self, now: float) -> None:
        expired = [
            key for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]


def client_address(request: Request, trust_proxy: bool) -> str:
    """Best guess at the caller's address, honouring X-Forwarded-For when trusted."""
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    if request.client:
        return request.client.host
    return "unknown"


def rate_limit_middleware(limiter: FixedWindowRateLimiter, trust_proxy: bool, exempt_paths=()):
    """Build an HTTP middleware enforcing limiter on every non-exempt path."""

    async def middleware(request: Request, call_next):
        if request.url.path in exempt_paths:
            return await call_next(request)

        status = limiter.hit(client_address(request, trust_proxy))
        if not status.allowed:
            headers = status.headers()
            headers["Retry-After"] = str(math.ceil(status.reset_in))
            return JSONResponse(
                status_code=429,
                content={"error": RATE_LIMIT_MESSAGE},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(status.headers())
        return response

    return middleware
