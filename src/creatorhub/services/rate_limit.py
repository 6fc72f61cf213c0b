"""Fixed-window rate limiting keyed by caller identity."""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

import redis

from creatorhub.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimiter(ABC):
    def __init__(self, window_seconds: int, max_requests: int) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests

    @abstractmethod
    def hit(self, identity: str) -> RateLimitDecision:
        """Count one request for ``identity`` and decide whether it may proceed."""


class InMemoryRateLimiter(RateLimiter):
    def __init__(
        self,
        window_seconds: int,
        max_requests: int,
        *,
        sweep_threshold: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(window_seconds, max_requests)
        self._sweep_threshold = sweep_threshold
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def hit(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(identity)
            if window is None or now > window.reset_at:
                window = RateLimitWindow(count=0, reset_at=now + self.window_seconds)
                self._windows[identity] = window
            window.count += 1
            count, reset_at = window.count, window.reset_at
            should_sweep = len(self._windows) > self._sweep_threshold
        if should_sweep:
            self.cleanup()

        retry_after = max(1, math.ceil(reset_at - now))
        if count > self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitDecision(
            allowed=True,
            remaining=self.max_requests - count,
            retry_after=retry_after,
        )

    def cleanup(self) -> int:
        """Forget windows that have already closed."""
        now = self._clock()
        with self._lock:
            stale = [key for key, window in self._windows.items() if now > window.reset_at]
            for key in stale:
                del self._windows[key]
        if stale:
            logger.debug("Dropped %d closed rate-limit windows", len(stale))
        return len(stale)


class RedisRateLimiter(RateLimiter):
    """Counter per identity using INCR with an expiry set on first hit."""

    def __init__(
        self,
        client: redis.Redis,
        window_seconds: int,
        max_requests: int,
        *,
        prefix: str = "x402:rl:",
    ) -> None:
        super().__init__(window_seconds, max_requests)
        self._redis = client
        self._prefix = prefix

    def hit(self, identity: str) -> RateLimitDecision:
        key = f"{self._prefix}{identity}"
        pipe = self._redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window_seconds, nx=True)
        pipe.ttl(key)
        count, _, ttl = pipe.execute()

        retry_after = int(ttl) if ttl and int(ttl) > 0 else self.window_seconds
        if int(count) > self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitDecision(
            allowed=True,
            remaining=self.max_requests - int(count),
            retry_after=retry_after,
        )


_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter."""
    global _limiter
    if _limiter is None:
        if settings.redis_url:
            client = redis.from_url(settings.redis_url)  # type: ignore[no-untyped-call]
            _limiter = RedisRateLimiter(
                client,
                settings.rate_limit_window_seconds,
                settings.rate_limit_max_requests,
            )
        else:
            _limiter = InMemoryRateLimiter(
                settings.rate_limit_window_seconds,
                settings.rate_limit_max_requests,
            )
    return _limiter
