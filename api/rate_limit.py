"""Fixed-window per-client rate limiting with pluggable backends."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

import redis
from redis.exceptions import RedisError

from ingestion.settings import Settings
from ingestion.utils.logging import get_logger

UNKNOWN_CLIENT = "unknown"

Clock = Callable[[], int]


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitStore(Protocol):
    def hit(self, key: str) -> bool: ...  # noqa: D401


@dataclass
class RateLimitRecord:
    count: int
    window_reset_at: int


class InMemoryRateLimitStore:
    """Process-local window table.

    Not shared between processes or instances; use ``RedisRateLimitStore``
    when the API runs behind more than one worker.
    """

    def __init__(
        self,
        *,
        max_requests: int = 30,
        window_ms: int = 60_000,
        max_entries: int = 1000,
        clock: Clock = _now_ms,
    ) -> None:
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_entries = max_entries
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _prune(self, now: int) -> None:
        expired = [key for key, record in self._records.items() if now > record.window_reset_at]
        for key in expired:
            del self._records[key]

    def hit(self, key: str) -> bool:
        now = self._clock()
        if len(self._records) > self.max_entries:
            self._prune(now)

        record = self._records.get(key)
        if record is None or now > record.window_reset_at:
            self._records[key] = RateLimitRecord(count=1, window_reset_at=now + self.window_ms)
            return True
        if record.count >= self.max_requests:
            return False
        record.count += 1
        return True


class _RedisLikeClient(Protocol):
    def incr(self, name: str) -> int: ...
    def pexpire(self, name: str, time: int) -> bool: ...


class RedisRateLimitStore:
    """Redis fixed-window counter: ``INCR key`` then ``PEXPIRE`` on the first hit.

    Redis errors fail open so a cache outage never takes the endpoint down.
    """

    def __init__(
        self,
        client: _RedisLikeClient,
        *,
        max_requests: int = 30,
        window_ms: int = 60_000,
        prefix: str = "ratelimit:news",
    ) -> None:
        self._client = client
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._prefix = prefix
        self.logger = get_logger(__name__)

    def _format(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def hit(self, key: str) -> bool:
        name = self._format(key)
        try:
            count = int(self._client.incr(name))
            if count == 1:
                self._client.pexpire(name, self.window_ms)
        except RedisError as exc:
            self.logger.warning("ratelimit.redis.unavailable", extra={"reason": str(exc)})
            return True
        return count <= self.max_requests


class RateLimiter:
    """Admission check keyed by client identifier."""

    def __init__(self, store: RateLimitStore, *, retry_after_seconds: int = 60) -> None:
        self.store = store
        self.retry_after_seconds = retry_after_seconds

    def check(self, key: str) -> bool:
        # clients we cannot identify (no proxy headers, no socket) are admitted
        if not key or key == UNKNOWN_CLIENT:
            return True
        return self.store.hit(key)


def build_rate_limiter(settings: Settings, *, redis_client: Optional[_RedisLikeClient] = None) -> RateLimiter:
    window_ms = int(settings.rate_limit_window_seconds) * 1000
    store: RateLimitStore
    if redis_client is None and settings.rate_limit_redis_url:
        redis_client = redis.Redis.from_url(settings.rate_limit_redis_url, socket_connect_timeout=0.2)
    if redis_client is not None:
        store = RedisRateLimitStore(
            redis_client,
            max_requests=int(settings.rate_limit_max_requests),
            window_ms=window_ms,
        )
    else:
        store = InMemoryRateLimitStore(
            max_requests=int(settings.rate_limit_max_requests),
            window_ms=window_ms,
            max_entries=int(settings.rate_limit_max_entries),
        )
    return RateLimiter(store, retry_after_seconds=int(settings.rate_limit_window_seconds))
