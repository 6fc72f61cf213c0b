"""Idempotency caching for payment settlement.

A settlement result is stored under the client's idempotency key so that a
retried request returns the exact same body without touching the chain
again. Two backends exist: Redis when ``REDIS_URL`` is configured, and an
in-process dictionary otherwise.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any

import redis

from creatorhub.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class IdempotencyRecord:
    timestamp: float
    result: dict[str, Any]


class IdempotencyStore(ABC):
    """Key -> settled result cache with a fixed time-to-live."""

    def __init__(self, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached result for ``key`` if it has not expired."""

    @abstractmethod
    def set_if_absent(self, key: str, result: dict[str, Any]) -> dict[str, Any]:
        """Store ``result`` unless a live entry exists; return the stored result.

        When two settlements race on the same key the first writer wins and
        both callers receive its result.
        """

    @abstractmethod
    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local store. Entries are lost on restart."""

    def __init__(
        self,
        ttl_seconds: int,
        *,
        sweep_threshold: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(ttl_seconds)
        self._sweep_threshold = sweep_threshold
        self._clock = clock
        self._records: dict[str, IdempotencyRecord] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._records)

    def _is_live(self, record: IdempotencyRecord, now: float) -> bool:
        return now - record.timestamp < self.ttl_seconds

    def get(self, key: str) -> dict[str, Any] | None:
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            if not self._is_live(record, now):
                del self._records[key]
                return None
            return record.result

    def set_if_absent(self, key: str, result: dict[str, Any]) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            existing = self._records.get(key)
            if existing is not None and self._is_live(existing, now):
                return existing.result
            self._records[key] = IdempotencyRecord(timestamp=now, result=result)
            should_sweep = len(self._records) > self._sweep_threshold
        if should_sweep:
            self.sweep()
        return result

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, record in self._records.items() if not self._is_live(record, now)]
            for key in expired:
                del self._records[key]
        if expired:
            logger.debug("Swept %d expired idempotency entries", len(expired))
        return len(expired)


class RedisIdempotencyStore(IdempotencyStore):
    """Shared store for multi-instance deployments; Redis enforces the TTL."""

    def __init__(self, client: redis.Redis, ttl_seconds: int, *, prefix: str = "x402:idem:") -> None:
        super().__init__(ttl_seconds)
        self._redis = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> dict[str, Any] | None:
        raw = self._redis.get(self._key(key))
        if raw is None:
            return None
        record = json.loads(raw)
        return record["result"]

    def set_if_absent(self, key: str, result: dict[str, Any]) -> dict[str, Any]:
        payload = json.dumps({"timestamp": time.time(), "result": result})
        stored = self._redis.set(self._key(key), payload, nx=True, ex=self.ttl_seconds)
        if stored:
            return result
        existing = self.get(key)
        return existing if existing is not None else result

    def sweep(self) -> int:
        return 0


_store: IdempotencyStore | None = None


def get_idempotency_store() -> IdempotencyStore:
    """Return the process-wide idempotency store."""
    global _store
    if _store is None:
        if settings.redis_url:
            client = redis.from_url(settings.redis_url)  # type: ignore[no-untyped-call]
            _store = RedisIdempotencyStore(client, settings.idempotency_ttl_seconds)
        else:
            _store = InMemoryIdempotencyStore(
                settings.idempotency_ttl_seconds,
                sweep_threshold=settings.idempotency_sweep_threshold,
            )
    return _store
