"""Unit tests for the fixed-window rate limiter."""

import threading

import pytest

from unichat.channels.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class TestRateLimiter:
    """Tests for RateLimiter class."""

    @pytest.fixture
    def clock(self):
        return FakeClock(now=1_000_000)

    @pytest.fixture
    def limiter(self, clock):
        """Create a rate limiter for testing."""
        return RateLimiter(max_attempts=5, window_ms=60_000, clock=clock)

    def test_allows_up_to_max_attempts(self, limiter):
        results = [limiter.check("op") for _ in range(5)]
        assert all(r.allowed for r in results)
        assert all(r.retry_after_ms == 0 for r in results)

    def test_denies_after_max_attempts(self, limiter, clock):
        for _ in range(5):
            limiter.check("op")

        clock.advance(10_000)
        result = limiter.check("op")

        assert not result.allowed
        assert result.retry_after_ms == 50_000
        assert result.retry_after_seconds == 50

    def test_window_resets_after_elapsed(self, limiter, clock):
        for _ in range(5):
            limiter.check("op")
        assert not limiter.check("op").allowed

        clock.advance(60_000)
        assert limiter.check("op").allowed

    def test_window_is_fixed_not_sliding(self, limiter, clock):
        limiter.check("op")
        clock.advance(59_000)
        for _ in range(4):
            assert limiter.check("op").allowed
        assert not limiter.check("op").allowed

        # Window opened at the first check, so it resets 1s later
        clock.advance(1_000)
        assert limiter.check("op").allowed

    def test_denied_checks_do_not_extend_window(self, limiter, clock):
        for _ in range(5):
            limiter.check("op")
        for _ in range(3):
            clock.advance(15_000)
            assert not limiter.check("op").allowed
        clock.advance(15_000)
        assert limiter.check("op").allowed

    def test_retry_after_never_zero_when_denied(self, clock):
        limiter = RateLimiter(max_attempts=1, window_ms=1_000, clock=clock)
        limiter.check("op")
        clock.advance(999)
        result = limiter.check("op")
        assert not result.allowed
        assert result.retry_after_ms == 1

    def test_keys_are_independent(self, limiter):
        for _ in range(5):
            limiter.check("slack:U1")
        assert not limiter.check("slack:U1").allowed
        assert limiter.check("slack:U2").allowed
        assert limiter.check("telegram:U1").allowed

    def test_reset(self, limiter):
        for _ in range(5):
            limiter.check("op")
        limiter.reset("op")
        assert limiter.check("op").allowed

    def test_reset_unknown_key(self, limiter):
        limiter.reset("missing")
        assert len(limiter) == 0

    def test_purge_removes_expired_windows(self, limiter, clock):
        limiter.check("old")
        clock.advance(30_000)
        limiter.check("new")
        clock.advance(30_000)

        assert limiter.purge() == 1
        assert len(limiter) == 1
        assert limiter.purge() == 0

    def test_sweep_waits_a_full_window(self, limiter, clock):
        limiter.check("old")
        clock.advance(59_999)
        assert limiter.sweep() == 0

        clock.advance(1)
        limiter.check("new")
        assert limiter.sweep() == 1
        assert len(limiter) == 1

        clock.advance(60_000)
        assert limiter.sweep() == 1
        assert limiter.sweep() == 0
        assert len(limiter) == 0

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            RateLimiter(max_attempts=0)
        with pytest.raises(ValueError):
            RateLimiter(window_ms=0)

    def test_defaults(self):
        limiter = RateLimiter()
        assert limiter.max_attempts == 10
        assert limiter.window_ms == 60_000

    def test_thread_safe_counting(self, clock):
        limiter = RateLimiter(max_attempts=100, window_ms=60_000, clock=clock)
        allowed = []

        def worker():
            for _ in range(50):
                allowed.append(limiter.check("shared").allowed)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allowed.count(True) == 100
        assert allowed.count(False) == 100
