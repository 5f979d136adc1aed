# tests/test_rate_limit.py
"""Tests for the rate-limit gate and the in-memory counter store."""
from __future__ import annotations

import threading

import pytest

from imgproxy.core.errors import RateLimitedError
from imgproxy.core.rate_limit import RateLimitConfig, RateLimitGate, build_identity
from imgproxy.infra.rate_limiter import InMemoryRateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInMemoryRateLimiter:
    def test_counts_hits_inside_window(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        assert [limiter.increment("k", 60) for _ in range(3)] == [1, 2, 3]

    def test_old_hits_expire(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        limiter.increment("k", 60)
        limiter.increment("k", 60)
        clock.now += 61
        assert limiter.increment("k", 60) == 1

    def test_identities_independent(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        limiter.increment("a", 60)
        assert limiter.increment("b", 60) == 1

    def test_get_usage(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        limiter.increment("k", 60)
        assert limiter.get_usage("k", 60) == {"count": 1, "window_seconds": 60}
        assert limiter.get_usage("other", 60)["count"] == 0

    def test_cleanup_removes_stale_identities(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        limiter.increment("old", 60)
        clock.now += 4000
        limiter.increment("fresh", 60)
        assert limiter.cleanup(max_age_seconds=3600) == 1
        assert limiter.get_usage("fresh", 60)["count"] == 1


class TestRateLimitGate:
    def _gate(self, **overrides):
        config = RateLimitConfig(**{"max_attempts": 2, "window_seconds": 60, **overrides})
        return RateLimitGate(InMemoryRateLimiter(clock=FakeClock()), config)

    def test_identity_format(self):
        assert build_identity("image-proxy", "1.2.3.4", "media/a.jpg") == "image-proxy:1.2.3.4:media/a.jpg"

    def test_allows_up_to_max_attempts(self):
        gate = self._gate()
        gate.check("1.2.3.4", "media/a.jpg")
        gate.check("1.2.3.4", "media/a.jpg")
        with pytest.raises(RateLimitedError) as exc_info:
            gate.check("1.2.3.4", "media/a.jpg")

        exc = exc_info.value
        assert exc.status_code == 429
        assert exc.retry_after == 60
        assert exc.redirect_to == "/media/a.jpg"

    def test_paths_limited_independently(self):
        gate = self._gate(max_attempts=1)
        gate.check("1.2.3.4", "media/a.jpg")
        gate.check("1.2.3.4", "media/b.jpg")
        gate.check("5.6.7.8", "media/a.jpg")

    def test_options_ignored_by_default(self):
        gate = self._gate(max_attempts=1)
        gate.check("1.2.3.4", "media/a.jpg", "w=100")
        with pytest.raises(RateLimitedError):
            gate.check("1.2.3.4", "media/a.jpg", "w=200")

    def test_options_in_identity_when_enabled(self):
        gate = self._gate(max_attempts=1, include_options=True)
        gate.check("1.2.3.4", "media/a.jpg", "w=100")
        gate.check("1.2.3.4", "media/a.jpg", "w=200")
        with pytest.raises(RateLimitedError):
            gate.check("1.2.3.4", "media/a.jpg", "w=100")

    def test_disabled_gate_never_counts(self):
        gate = self._gate(max_attempts=0, enabled=False)
        assert not gate.active
        gate.check("1.2.3.4", "media/a.jpg")

    def test_allow_is_count_based(self):
        gate = self._gate()
        assert gate.allow("id", 1, 60)
        assert not gate.allow("id", 1, 60)


class TestConcurrentCallers:
    THREADS = 8
    CALLS = 250

    def _run(self, worker):
        barrier = threading.Barrier(self.THREADS)

        def target():
            barrier.wait()
            for _ in range(self.CALLS):
                worker()

        threads = [threading.Thread(target=target) for _ in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_no_lost_increments(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        self._run(lambda: limiter.increment("shared", 60))
        assert limiter.get_usage("shared", 60)["count"] == self.THREADS * self.CALLS

    def test_exactly_max_attempts_allowed(self):
        gate = RateLimitGate(InMemoryRateLimiter(clock=FakeClock()), RateLimitConfig(max_attempts=100))
        allowed = []
        lock = threading.Lock()

        def attempt():
            ok = gate.allow("shared", 100, 60)
            with lock:
                allowed.append(ok)

        self._run(attempt)
        assert len(allowed) == self.THREADS * self.CALLS
        assert allowed.count(True) == 100
