"""Unit tests for the in-memory rate limiter.

Tests validate:
- Per-client limit within a window and reset after the window elapses
- Global daily cap resetting at local midnight
- Atomic check-and-increment under concurrent callers
- Throttled sweeping of expired client buckets
"""

import threading
from datetime import datetime

from src.common.config import GuardrailConfig
from src.common.testing import FakeClock
from src.guardrails.rate_limit import (
    GLOBAL_DAILY_KEY,
    InMemoryBucketStore,
    RateLimiter,
    next_local_midnight,
)


def _config(per_ip: int = 3, window_ms: int = 60_000, daily: int = 100) -> GuardrailConfig:
    return GuardrailConfig(
        generation_enabled=True,
        rate_limit_per_ip=per_ip,
        rate_limit_window_ms=window_ms,
        rate_limit_global_daily=daily,
        max_input_chars=20_000,
        max_output_chars=30_000,
    )


def test_client_limit_admits_up_to_limit_then_rejects(clock):
    limiter = RateLimiter(_config(per_ip=3), clock=clock)

    results = [limiter.check_client("10.0.0.1") for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[-1].reset_at == int(clock.now + 60)


def test_clients_have_independent_buckets(clock):
    limiter = RateLimiter(_config(per_ip=1), clock=clock)

    assert limiter.check_client("a").allowed
    assert not limiter.check_client("a").allowed
    assert limiter.check_client("b").allowed


def test_window_elapsing_resets_counter(clock):
    limiter = RateLimiter(_config(per_ip=2, window_ms=10_000), clock=clock)
    limiter.check_client("c")
    limiter.check_client("c")
    assert not limiter.check_client("c").allowed

    clock.advance(10)

    result = limiter.check_client("c")
    assert result.allowed
    assert result.remaining == 1


def test_window_is_fixed_not_sliding(clock):
    """A full window can be used right before and right after the boundary."""
    limiter = RateLimiter(_config(per_ip=2, window_ms=10_000), clock=clock)
    assert limiter.check_client("d").allowed
    clock.advance(9.9)
    assert limiter.check_client("d").allowed
    clock.advance(0.2)
    assert limiter.check_client("d").allowed
    assert limiter.check_client("d").allowed
    assert not limiter.check_client("d").allowed


def test_global_daily_cap_resets_at_local_midnight():
    late_evening = datetime(2026, 3, 10, 23, 59, 0).timestamp()
    clock = FakeClock(start=late_evening)
    limiter = RateLimiter(_config(daily=2), clock=clock)

    assert limiter.check_global_daily().allowed
    assert limiter.check_global_daily().allowed
    blocked = limiter.check_global_daily()
    assert not blocked.allowed
    assert blocked.reset_at == int(datetime(2026, 3, 11, 0, 0, 0).timestamp())

    clock.advance(61)

    after_midnight = limiter.check_global_daily()
    assert after_midnight.allowed
    assert after_midnight.remaining == 1
    assert limiter.stats()["globalCount"] == 1


def test_next_local_midnight_is_strictly_after_now():
    exactly_midnight = datetime(2026, 5, 1, 0, 0, 0).timestamp()
    assert next_local_midnight(exactly_midnight) == datetime(2026, 5, 2, 0, 0, 0).timestamp()


def test_concurrent_checks_never_over_admit():
    limiter = RateLimiter(_config(per_ip=5))
    admitted = []
    lock = threading.Lock()
    barrier = threading.Barrier(20)

    def worker():
        barrier.wait()
        result = limiter.check_client("shared")
        with lock:
            admitted.append(result.allowed)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert admitted.count(True) == 5


def test_sweep_discards_expired_client_buckets(clock):
    limiter = RateLimiter(_config(window_ms=5_000), clock=clock, sweep_interval_seconds=60)
    for client in ("a", "b", "c"):
        limiter.check_client(client)
    assert limiter.stats()["clientBucketCount"] == 3

    clock.advance(61)
    limiter.check_client("fresh")

    assert limiter.stats()["clientBucketCount"] == 1


def test_sweep_is_throttled(clock):
    store = InMemoryBucketStore()
    limiter = RateLimiter(_config(window_ms=1_000), store=store, clock=clock, sweep_interval_seconds=60)
    limiter.check_client("a")

    clock.advance(5)
    limiter.check_client("b")

    # "a" expired but the sweep interval has not passed yet
    assert store.size("client:") == 2


def test_stats_excludes_global_bucket(clock):
    limiter = RateLimiter(_config(), clock=clock)
    limiter.check_client("a")
    limiter.check_global_daily()

    stats = limiter.stats()

    assert stats == {"clientBucketCount": 1, "globalCount": 1, "globalLimit": 100}


def test_store_treats_expired_bucket_as_fresh():
    store = InMemoryBucketStore()
    store.hit("k", 1, lambda now: now + 10, now=0)
    assert not store.hit("k", 1, lambda now: now + 10, now=5).allowed

    assert store.peek("k", now=10) is None
    assert store.hit("k", 1, lambda now: now + 10, now=10).allowed


def test_zero_limit_rejects_without_touching_global_bucket(clock):
    limiter = RateLimiter(_config(per_ip=0), clock=clock)
    assert not limiter.check_client("a").allowed
    assert GLOBAL_DAILY_KEY not in limiter.store._buckets
