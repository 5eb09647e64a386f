from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import Callable, Dict

from fastapi import Request

from app.platform.config import settings
from app.platform.exceptions import RateLimitError
from app.platform.security_logger import security_logger


@dataclass
class RateLimitCounter:
    window_start: float
    count: int


class RateLimiter:
    """
    Fixed-window counter per client key, held in process memory.

    Counters are lost on restart and are not shared between instances.
    """

    def __init__(
        self,
        window_seconds: float,
        max_requests: int,
        clock: Callable[[], float] = monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._counters: Dict[str, RateLimitCounter] = {}
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or now - counter.window_start > self.window_seconds:
                self._counters[key] = RateLimitCounter(window_start=now, count=1)
                return True
            if counter.count < self.max_requests:
                counter.count += 1
                return True
            return False

    def retry_after(self, key: str) -> int:
        """Whole seconds until the key's current window resets."""
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                return 0
            remaining = counter.window_start + self.window_seconds - self._clock()
        return max(0, int(remaining) + 1)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()


audit_rate_limiter = RateLimiter(
    window_seconds=settings.AUDIT_RATE_LIMIT_WINDOW_SECONDS,
    max_requests=settings.AUDIT_RATE_LIMIT_MAX,
)
email_rate_limiter = RateLimiter(
    window_seconds=settings.EMAIL_RATE_LIMIT_WINDOW_SECONDS,
    max_requests=settings.EMAIL_RATE_LIMIT_MAX,
)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def rate_limit(limiter: RateLimiter, message: str = "Too many requests. Please slow down."):
    """Builds a FastAPI dependency enforcing `limiter` on the client IP."""

    async def dependency(request: Request) -> None:
        client_ip = get_client_ip(request)
        if not limiter.allow(client_ip):
            security_logger.log_rate_limit_exceeded(
                client_ip, request.headers.get("user-agent"), request.url.path
            )
            raise RateLimitError(message, retry_after=limiter.retry_after(client_ip))

    return dependency
