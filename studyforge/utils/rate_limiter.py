"""Per-user sliding window admission control.

One ``RateLimiter`` is constructed per process and handed to the entry points
that need backpressure (upload and artifact generation). Buckets live in memory
only and are bounded by an opportunistic sweep.
"""
import math
import time
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from studyforge.errors import RateLimitedError
from studyforge.utils.logger import get_logger, log_rate_limited

LOG = get_logger()

MAX_BUCKETS = 20_000
SWEEP_INTERVAL = 500
STALE_BUCKET_MS = 10 * 60_000
DEFAULT_WINDOW_MS = 60_000


@dataclass
class RateLimitBucket:
    count: int
    window_start_ms: int


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after_ms: int
    reset_at_ms: int


def _positive_int(value, fallback: int) -> int:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(value):
        return fallback
    normalized = int(math.floor(value))
    if normalized <= 0:
        return fallback
    return normalized


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    def __init__(self, max_buckets: int = MAX_BUCKETS, sweep_interval: int = SWEEP_INTERVAL,
                 stale_after_ms: int = STALE_BUCKET_MS, clock: Optional[Callable[[], int]] = None):
        self.max_buckets = max_buckets
        self.sweep_interval = sweep_interval
        self.stale_after_ms = stale_after_ms
        self._clock = clock or _now_ms
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._calls_since_sweep = 0
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._buckets)

    def _sweep(self, now_ms: int):
        self._calls_since_sweep += 1
        if self._calls_since_sweep % self.sweep_interval != 0 and len(self._buckets) <= self.max_buckets:
            return

        stale = [k for k, b in self._buckets.items() if now_ms - b.window_start_ms > self.stale_after_ms]
        for k in stale:
            del self._buckets[k]

        if len(self._buckets) <= self.max_buckets:
            return

        # still over the ceiling: evict in insertion order, not by recency
        removed = 0
        for k in list(self._buckets.keys()):
            del self._buckets[k]
            removed += 1
            if len(self._buckets) <= self.max_buckets or removed > self.max_buckets:
                break
        LOG.warning('rate_limit_buckets_evicted', extra={'removed': removed, 'remaining': len(self._buckets)})

    def consume(self, key: str, limit: int, window_ms: int, now_ms: Optional[int] = None) -> RateLimitResult:
        now_ms = self._clock() if now_ms is None else now_ms
        limit = _positive_int(limit, 1)
        window_ms = _positive_int(window_ms, DEFAULT_WINDOW_MS)
        bucket_key = f'{key}::{window_ms}'

        with self._lock:
            self._sweep(now_ms)

            existing = self._buckets.get(bucket_key)
            if existing is None or now_ms - existing.window_start_ms >= window_ms:
                self._buckets[bucket_key] = RateLimitBucket(count=1, window_start_ms=now_ms)
                return RateLimitResult(True, limit, max(0, limit - 1), 0, now_ms + window_ms)

            reset_at = existing.window_start_ms + window_ms
            if existing.count >= limit:
                return RateLimitResult(False, limit, 0, max(1, reset_at - now_ms), reset_at)

            existing.count += 1
            return RateLimitResult(True, limit, max(0, limit - existing.count), 0, reset_at)

    def reset(self):
        with self._lock:
            self._buckets.clear()
            self._calls_since_sweep = 0


def assert_user_rate_limit(limiter: RateLimiter, scope: str, user_id: int, limit: int, window_ms: int) -> RateLimitResult:
    """Consume one unit for ``scope:user_id`` or raise ``RateLimitedError``."""
    result = limiter.consume(f'{scope}:{user_id}', limit, window_ms)
    if result.allowed:
        return result
    log_rate_limited(scope, user_id, result.retry_after_ms)
    retry_after_seconds = max(1, math.ceil(result.retry_after_ms / 1000))
    raise RateLimitedError(retry_after_seconds)
