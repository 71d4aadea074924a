import logging
import time
from threading import Lock
from typing import Any, Dict, FrozenSet, Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.core.exceptions import RateLimitExceeded
from app.core.schemas import error_body

logger = logging.getLogger(__name__)


def client_ip(request: Request, trusted_proxies: FrozenSet[str] = frozenset()) -> str:
    """
    Address the limiter counts a request against.

    X-Forwarded-For is only honoured when the connecting peer is a trusted
    proxy; the client is then the nearest hop that is not one of them.
    """
    peer = request.client.host if request.client else "unknown"
    forwarded_for = request.headers.get("X-Forwarded-For")
    if not forwarded_for or peer not in trusted_proxies:
        return peer
    hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted_proxies:
            return hop
    return peer


class RateLimiter:
    """
    Fixed-window request limiter keyed by client IP and a per-use prefix.

    Args:
        max_requests: Requests allowed per window
        time_window: Window length in seconds
        cleanup_interval: How often expired buckets are purged (seconds)
        trusted_proxies: Peer addresses whose X-Forwarded-For header is believed
    """

    def __init__(
        self,
        max_requests: int = 100,
        time_window: int = 60,
        cleanup_interval: int = 300,
        trusted_proxies: Iterable[str] = (),
    ):
        if max_requests <= 0 or time_window <= 0:
            raise ValueError("max_requests and time_window must be positive")

        self.max_requests = max_requests
        self.time_window = time_window
        self._buckets: Dict[str, Dict[str, Any]] = {}
        self._last_cleanup = time.monotonic()
        self._cleanup_interval = cleanup_interval
        self._lock = Lock()
        self.trusted_proxies = frozenset(trusted_proxies)

    def _key(self, request: Request, key_prefix: str) -> str:
        return f"{key_prefix}:{client_ip(request, self.trusted_proxies)}"

    def _cleanup_expired(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        expired = [key for key, bucket in self._buckets.items() if bucket["reset_time"] <= now]
        for key in expired:
            del self._buckets[key]
        self._last_cleanup = now

    def hit(self, request: Request, key_prefix: str) -> bool:
        """Count one request; False when the window's budget is already spent."""
        key = self._key(request, key_prefix)
        now = time.monotonic()
        with self._lock:
            self._cleanup_expired(now)
            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket["reset_time"]:
                bucket = {"count": 0, "reset_time": now + self.time_window}
                self._buckets[key] = bucket
            if bucket["count"] >= self.max_requests:
                logger.warning("Rate limit exceeded for %s", key)
                return False
            bucket["count"] += 1
            return True

    def limit_headers(self, request: Request, key_prefix: str) -> Dict[str, str]:
        key = self._key(request, key_prefix)
        now = time.monotonic()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket["reset_time"]:
                remaining, reset_in = self.max_requests, self.time_window
            else:
                remaining = max(0, self.max_requests - bucket["count"])
                reset_in = max(0, int(bucket["reset_time"] - now))
        return {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset_in),
        }

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the global limiter to every request."""

    def __init__(self, app, limiter: RateLimiter, key_prefix: str = "global"):
        super().__init__(app)
        self.limiter = limiter
        self.key_prefix = key_prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        if request.method == "OPTIONS":
            return await call_next(request)
        if not self.limiter.hit(request, self.key_prefix):
            return JSONResponse(
                status_code=429,
                content=error_body(429, "Too many requests"),
                headers=self.limiter.limit_headers(request, self.key_prefix),
            )
        response = await call_next(request)
        response.headers.update(self.limiter.limit_headers(request, self.key_prefix))
        return response


def login_rate_limit(request: Request) -> None:
    """Dependency guarding the login route with the app's login limiter."""
    limiter: RateLimiter = request.app.state.login_limiter
    if not limiter.hit(request, "login"):
        raise RateLimitExceeded("Too many login attempts")
