"""
Fixed-window rate limiter with an injected counter store.

Each client identifier gets one record {count, reset_time}. The first
request of a window sets count=1 and reset_time=now+window; a request is
rejected once the window's count passes `max_requests`, until the window
has elapsed, after which the counter starts again at 1.

Stores count a request with one atomic `hit`, so concurrent requests for
the same identifier cannot both read the same count:
  MemoryRateLimitStore — per-process dict under a lock (single instance / fallback);
                         expired records are pruned at most once per window
  RedisRateLimitStore  — Redis hash per client `ratelimit:{id}` updated in a
                         WATCH/MULTI transaction, shared across instances,
                         expires with its window
"""

import logging
import threading
import time
from typing import Mapping, NamedTuple, Optional, Protocol

from redis.exceptions import WatchError

from . import config

logger = logging.getLogger(__name__)


class RateLimitRecord(NamedTuple):
    count: int
    reset_time: int  # epoch milliseconds


class RateLimitResult(NamedTuple):
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[RateLimitRecord]:
        ...

    def hit(self, key: str, window_ms: int, now_ms: int) -> RateLimitRecord:
        """Count one request and return the record it landed in."""
        ...


def _next_record(record: Optional[RateLimitRecord], window_ms: int, now_ms: int) -> RateLimitRecord:
    if record is None or now_ms > record.reset_time:
        return RateLimitRecord(count=1, reset_time=now_ms + window_ms)
    return record._replace(count=record.count + 1)


# ── Stores ───────────────────────────────────────────────────────────────────

class MemoryRateLimitStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, RateLimitRecord] = {}
        self._last_prune = 0

    def get(self, key: str) -> Optional[RateLimitRecord]:
        with self._lock:
            return self._records.get(key)

    def hit(self, key: str, window_ms: int, now_ms: int) -> RateLimitRecord:
        with self._lock:
            record = _next_record(self._records.get(key), window_ms, now_ms)
            self._records[key] = record
            if record.count == 1 and now_ms - self._last_prune >= window_ms:
                self._last_prune = now_ms
                self._prune(now_ms)
            return record

    def _prune(self, now_ms: int) -> int:
        expired = [k for k, r in self._records.items() if r.reset_time < now_ms]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired rate-limit records")
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class RedisRateLimitStore:
    def __init__(self, redis_client, prefix: str = "ratelimit:"):
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _decode(data) -> Optional[RateLimitRecord]:
        if not data:
            return None
        fields = {
            (k.decode("utf-8") if isinstance(k, bytes) else k): int(v)
            for k, v in data.items()
        }
        return RateLimitRecord(count=fields.get("count", 0), reset_time=fields.get("reset_time", 0))

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._decode(self.redis.hgetall(self._key(key)))

    def hit(self, key: str, window_ms: int, now_ms: int) -> RateLimitRecord:
        name = self._key(key)
        with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    pipe.watch(name)
                    record = _next_record(self._decode(pipe.hgetall(name)), window_ms, now_ms)
                    pipe.multi()
                    pipe.hset(name, mapping={"count": record.count, "reset_time": record.reset_time})
                    pipe.pexpire(name, record.reset_time - now_ms + 60000)  # TTL slightly beyond window
                    pipe.execute()
                    return record
                except WatchError:
                    logger.debug(f"Rate-limit record {name} changed concurrently, retrying")


# ── Limiter ──────────────────────────────────────────────────────────────────

def check_rate_limit(
    store: RateLimitStore,
    identifier: str,
    max_requests: int,
    window_ms: int,
    now_ms: Optional[int] = None,
) -> RateLimitResult:
    """Count one request for `identifier` and decide whether it is allowed."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    record = store.hit(identifier, window_ms, now_ms)

    if record.count > max_requests:
        logger.warning(f"Rate limit exceeded for {identifier}: {record.count}/{max_requests}")
        return RateLimitResult(False, 0, record.reset_time)

    return RateLimitResult(True, max_requests - record.count, record.reset_time)


class RateLimiter:
    def __init__(self, store: RateLimitStore, window_ms: Optional[int] = None):
        self.store = store
        self.window_ms = config.RATE_LIMIT_WINDOW_MS if window_ms is None else window_ms

    def check(self, identifier: str, max_requests: int, now_ms: Optional[int] = None) -> RateLimitResult:
        return check_rate_limit(self.store, identifier, max_requests, self.window_ms, now_ms)


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """First X-Forwarded-For hop, or 'unknown'."""
    forwarded = headers.get("x-forwarded-for")
    if not forwarded:
        return "unknown"
    return forwarded.split(",")[0].strip() or "unknown"
