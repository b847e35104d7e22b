"""In-memory rate limiting with fixed-reset windows.

Two layers are enforced:
- per-client: a counted window that starts on first use and resets
  ``window_ms`` later (not a sliding log, so up to 2x the nominal rate can
  be admitted across a window boundary)
- global daily: one shared bucket that resets at local midnight

Bucket state lives behind ``BucketStore`` so a shared external counter can
replace the in-memory store when running more than one instance. The
in-memory store keeps state per process and loses it on restart.
"""

from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from src.common.config import GuardrailConfig
from src.common.logging import get_logger

logger = get_logger(__name__)

GLOBAL_DAILY_KEY = "__global_daily__"
CLIENT_KEY_PREFIX = "client:"
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0

ResetAtFn = Callable[[float], float]


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # Unix timestamp in whole seconds, rounded up


@dataclass
class Bucket:
    count: int
    reset_at: float  # Unix timestamp in seconds

    def is_expired(self, now: float) -> bool:
        return self.reset_at <= now


class BucketStore(ABC):
    """Storage for rate-limit buckets with atomic check-and-increment."""

    @abstractmethod
    def hit(self, key: str, limit: int, reset_at_for: ResetAtFn, now: float) -> RateLimitResult:
        """Admit one request against ``key`` if the bucket is below ``limit``.

        An expired or missing bucket is replaced with
        ``Bucket(0, reset_at_for(now))`` first. The expiry check, limit test,
        and increment happen as one atomic step.
        """

    @abstractmethod
    def peek(self, key: str, now: float) -> Optional[Bucket]:
        """Return a copy of the live bucket for ``key``, or None if absent/expired."""

    @abstractmethod
    def sweep(self, now: float) -> int:
        """Discard expired buckets. Returns how many were removed."""

    @abstractmethod
    def size(self, prefix: str = "") -> int:
        """Number of buckets currently held whose key starts with ``prefix``."""


class InMemoryBucketStore(BucketStore):
    """Process-local bucket store guarded by a lock."""

    def __init__(self) -> None:
        self._buckets: Dict[str, Bucket] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, reset_at_for: ResetAtFn, now: float) -> RateLimitResult:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.is_expired(now):
                bucket = Bucket(count=0, reset_at=reset_at_for(now))
                self._buckets[key] = bucket

            allowed = bucket.count < limit
            if allowed:
                bucket.count += 1

            return RateLimitResult(
                allowed=allowed,
                remaining=max(0, limit - bucket.count),
                reset_at=math.ceil(bucket.reset_at),
            )

    def peek(self, key: str, now: float) -> Optional[Bucket]:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.is_expired(now):
                return None
            return Bucket(count=bucket.count, reset_at=bucket.reset_at)

    def sweep(self, now: float) -> int:
        # The lock is held for the snapshot and for each removal, never for
        # the whole pass. Removal re-checks expiry so a bucket refreshed in
        # between is kept.
        with self._lock:
            candidates: List[str] = [key for key, bucket in self._buckets.items() if bucket.is_expired(now)]
        removed = 0
        for key in candidates:
            with self._lock:
                bucket = self._buckets.get(key)
                if bucket is not None and bucket.is_expired(now):
                    del self._buckets[key]
                    removed += 1
        return removed

    def size(self, prefix: str = "") -> int:
        with self._lock:
            if not prefix:
                return len(self._buckets)
            return sum(1 for key in self._buckets if key.startswith(prefix))


def next_local_midnight(now: float) -> float:
    """Return the Unix timestamp of the next local midnight after ``now``."""
    current = datetime.fromtimestamp(now)
    tomorrow = (current + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return tomorrow.timestamp()


class RateLimiter:
    """Per-client and global daily admission counters.

    Construct one per process and pass it to the components that need it;
    tests build isolated instances with their own store and clock.
    """

    def __init__(
        self,
        config: GuardrailConfig,
        *,
        store: Optional[BucketStore] = None,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        self.config = config
        self.store = store or InMemoryBucketStore()
        self._clock = clock
        self._sweep_interval_seconds = sweep_interval_seconds
        self._last_sweep = clock()
        self._sweep_lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def check_client(self, client_id: str) -> RateLimitResult:
        """Check (and consume) one request slot for ``client_id``."""
        now = self._clock()
        self._maybe_sweep(now)

        window_seconds = self.config.rate_limit_window_ms / 1000.0
        return self.store.hit(
            f"{CLIENT_KEY_PREFIX}{client_id}",
            self.config.rate_limit_per_ip,
            lambda ts: ts + window_seconds,
            now,
        )

    def check_global_daily(self) -> RateLimitResult:
        """Check (and consume) one slot of the global daily cap."""
        return self.store.hit(
            GLOBAL_DAILY_KEY,
            self.config.rate_limit_global_daily,
            next_local_midnight,
            self._clock(),
        )

    def stats(self) -> Dict[str, int]:
        """Current usage stats for monitoring."""
        global_bucket = self.store.peek(GLOBAL_DAILY_KEY, self._clock())
        return {
            "clientBucketCount": self.store.size(CLIENT_KEY_PREFIX),
            "globalCount": global_bucket.count if global_bucket else 0,
            "globalLimit": self.config.rate_limit_global_daily,
        }

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval_seconds:
            return
        # Only one caller sweeps; others go straight to their admission check.
        if not self._sweep_lock.acquire(blocking=False):
            return
        try:
            if now - self._last_sweep < self._sweep_interval_seconds:
                return
            self._last_sweep = now
            removed = self.store.sweep(now)
        finally:
            self._sweep_lock.release()
        if removed:
            logger.info(
                "rate_limit_sweep",
                extra={"event": "rate_limit_sweep", "removed": removed, "remaining_buckets": self.store.size()},
            )
