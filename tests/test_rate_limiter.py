"""Fixed-window rate limiting."""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from redis.exceptions import WatchError

from studio.rate_limiter import (
    MemoryRateLimitStore,
    RateLimiter,
    RateLimitRecord,
    RedisRateLimitStore,
    check_rate_limit,
    get_client_identifier,
)

NOW = 1_767_225_600_000  # epoch ms
WINDOW = 60_000


@pytest.fixture
def limiter():
    return RateLimiter(MemoryRateLimitStore(), window_ms=WINDOW)


class TestFixedWindow:
    def test_sixth_request_in_window_is_rejected(self, limiter):
        results = [limiter.check("203.0.113.7", 5, now_ms=NOW + i) for i in range(6)]

        assert [r.allowed for r in results] == [True, True, True, True, True, False]
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]
        assert results[5].reset_time == NOW + WINDOW
        assert results[5].reset_time > NOW + 5

    def test_window_boundary_still_counts_as_current_window(self, limiter):
        for i in range(5):
            limiter.check("client", 5, now_ms=NOW + i)
        assert limiter.check("client", 5, now_ms=NOW + WINDOW).allowed is False

    def test_counter_restarts_at_one_after_window(self, limiter):
        for i in range(6):
            limiter.check("client", 5, now_ms=NOW + i)

        later = NOW + WINDOW + 1
        result = limiter.check("client", 5, now_ms=later)

        assert result.allowed is True
        assert result.remaining == 4
        assert result.reset_time == later + WINDOW
        assert limiter.store.get("client") == RateLimitRecord(count=1, reset_time=later + WINDOW)

    def test_identifiers_are_counted_separately(self, limiter):
        for i in range(5):
            limiter.check("client", 5, now_ms=NOW + i)
        assert limiter.check("client:status", 60, now_ms=NOW + 10).allowed is True
        assert limiter.check("client", 5, now_ms=NOW + 10).allowed is False


class TestMemoryStore:
    def test_expired_records_pruned_when_a_window_opens(self):
        store = MemoryRateLimitStore()
        for i in range(50):
            store.hit(f"198.51.100.{i}", WINDOW, NOW)
        assert len(store) == 50

        later = NOW + WINDOW + 1
        store.hit("203.0.113.7", WINDOW, later)

        assert len(store) == 1
        assert store.get("198.51.100.0") is None
        assert store.get("203.0.113.7") == RateLimitRecord(count=1, reset_time=later + WINDOW)

    def test_concurrent_checks_never_exceed_the_limit(self):
        limiter = RateLimiter(MemoryRateLimitStore(), window_ms=WINDOW)
        limiter.check("client", 5, now_ms=NOW)
        barrier = threading.Barrier(10)

        def check(_):
            barrier.wait()
            return limiter.check("client", 5, now_ms=NOW + 1)

        with ThreadPoolExecutor(max_workers=10) as pool:
            results = list(pool.map(check, range(10)))

        assert sum(r.allowed for r in results) == 4
        assert limiter.store.get("client").count == 11


class TestRedisStore:
    @staticmethod
    def redis_with(data):
        redis_client = MagicMock()
        pipe = redis_client.pipeline.return_value.__enter__.return_value
        pipe.hgetall.return_value = data
        return redis_client, pipe

    def test_get_decodes_hash(self):
        redis_client = MagicMock()
        redis_client.hgetall.return_value = {b"count": b"3", b"reset_time": str(NOW).encode()}

        record = RedisRateLimitStore(redis_client).get("client")

        redis_client.hgetall.assert_called_once_with("ratelimit:client")
        assert record == RateLimitRecord(count=3, reset_time=NOW)

    def test_missing_key_is_a_new_window(self):
        redis_client, pipe = self.redis_with({})

        result = check_rate_limit(RedisRateLimitStore(redis_client), "client", 5, WINDOW, now_ms=NOW)

        assert result.allowed is True
        assert result.remaining == 4
        redis_client.pipeline.assert_called_once_with(transaction=True)
        pipe.watch.assert_called_once_with("ratelimit:client")
        pipe.multi.assert_called_once()
        pipe.hset.assert_called_once_with(
            "ratelimit:client", mapping={"count": 1, "reset_time": NOW + WINDOW}
        )
        pipe.pexpire.assert_called_once_with("ratelimit:client", WINDOW + 60_000)
        pipe.execute.assert_called_once()

    def test_increment_within_window(self):
        redis_client, pipe = self.redis_with({b"count": b"2", b"reset_time": str(NOW + WINDOW).encode()})

        result = check_rate_limit(RedisRateLimitStore(redis_client), "client", 5, WINDOW, now_ms=NOW)

        pipe.hset.assert_called_once_with(
            "ratelimit:client", mapping={"count": 3, "reset_time": NOW + WINDOW}
        )
        assert result.allowed is True
        assert result.remaining == 2

    def test_over_limit_is_rejected(self):
        redis_client, _ = self.redis_with({b"count": b"5", b"reset_time": str(NOW + WINDOW).encode()})

        result = check_rate_limit(RedisRateLimitStore(redis_client), "client", 5, WINDOW, now_ms=NOW)

        assert result.allowed is False
        assert result.reset_time == NOW + WINDOW

    def test_concurrent_write_retries_transaction(self):
        redis_client, pipe = self.redis_with({})
        pipe.hgetall.side_effect = [{}, {b"count": b"1", b"reset_time": str(NOW + WINDOW).encode()}]
        pipe.execute.side_effect = [WatchError(), [1, 1]]

        record = RedisRateLimitStore(redis_client).hit("client", WINDOW, NOW)

        assert record == RateLimitRecord(count=2, reset_time=NOW + WINDOW)
        assert pipe.watch.call_count == 2


class TestClientIdentifier:
    def test_first_forwarded_hop(self):
        assert get_client_identifier({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}) == "203.0.113.7"

    def test_unknown_without_header(self):
        assert get_client_identifier({}) == "unknown"
