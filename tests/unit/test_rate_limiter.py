import threading

import pytest

from studyforge.errors import RateLimitedError
from studyforge.utils.rate_limiter import RateLimiter, assert_user_rate_limit

pytestmark = pytest.mark.unit


def test_sliding_window_scenario():
    rl = RateLimiter()
    first = rl.consume('upload:1', 2, 1000, now_ms=0)
    assert first.allowed and first.remaining == 1 and first.reset_at_ms == 1000

    second = rl.consume('upload:1', 2, 1000, now_ms=10)
    assert second.allowed and second.remaining == 0

    denied = rl.consume('upload:1', 2, 1000, now_ms=20)
    assert not denied.allowed
    assert denied.retry_after_ms == 980
    assert denied.reset_at_ms == 1000

    # window elapsed: a fresh bucket
    fresh = rl.consume('upload:1', 2, 1000, now_ms=1000)
    assert fresh.allowed and fresh.remaining == 1


def test_keys_and_windows_are_independent():
    rl = RateLimiter()
    assert rl.consume('a', 1, 1000, now_ms=0).allowed
    assert not rl.consume('a', 1, 1000, now_ms=1).allowed
    assert rl.consume('b', 1, 1000, now_ms=1).allowed
    assert rl.consume('a', 1, 2000, now_ms=1).allowed


def test_invalid_limit_and_window_fall_back():
    rl = RateLimiter()
    assert rl.consume('k', 0, 1000, now_ms=0).allowed
    assert not rl.consume('k', 'nope', 1000, now_ms=1).allowed

    result = rl.consume('w', 5, float('nan'), now_ms=0)
    assert result.reset_at_ms == 60_000


def test_stale_buckets_are_swept():
    rl = RateLimiter(sweep_interval=1, stale_after_ms=100)
    rl.consume('a', 1, 50, now_ms=0)
    rl.consume('b', 1, 50, now_ms=1000)
    assert len(rl) == 1


def test_bucket_count_stays_bounded():
    rl = RateLimiter(max_buckets=3, sweep_interval=1000, stale_after_ms=10 ** 9)
    for i in range(50):
        rl.consume(f'user:{i}', 1, 60_000, now_ms=i)
    assert len(rl) <= 4


def test_assert_user_rate_limit_raises_sentinel():
    now = [0]
    rl = RateLimiter(clock=lambda: now[0])
    assert_user_rate_limit(rl, 'upload', 7, 1, 60_000)
    now[0] = 20
    with pytest.raises(RateLimitedError) as exc:
        assert_user_rate_limit(rl, 'upload', 7, 1, 60_000)
    assert str(exc.value) == 'RATE_LIMITED_RETRY_AFTER_60_SECONDS'
    assert exc.value.retry_after_seconds == 60

    # other users are unaffected
    assert assert_user_rate_limit(rl, 'upload', 8, 1, 60_000).allowed


def test_retry_after_is_at_least_one_second():
    now = [0]
    rl = RateLimiter(clock=lambda: now[0])
    assert_user_rate_limit(rl, 'artifacts_generate', 1, 1, 1000)
    now[0] = 999
    with pytest.raises(RateLimitedError, match='RATE_LIMITED_RETRY_AFTER_1_SECONDS'):
        assert_user_rate_limit(rl, 'artifacts_generate', 1, 1, 1000)


def test_reset_clears_buckets():
    rl = RateLimiter()
    rl.consume('a', 1, 1000, now_ms=0)
    rl.reset()
    assert len(rl) == 0
    assert rl.consume('a', 1, 1000, now_ms=1).allowed


def test_concurrent_consumers_never_exceed_limit():
    rl = RateLimiter()
    allowed = []
    start = threading.Barrier(8)

    def worker():
        start.wait()
        count = sum(1 for _ in range(200) if rl.consume('k', 100, 60000, now_ms=0).allowed)
        allowed.append(count)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(allowed) == 100
