"""Tests for ``zapflow.execution.rate_limit``."""

from __future__ import annotations

import pytest

from zapflow.execution.rate_limit import ApiRateLimiter, CompositeRateLimiter, SlidingWindowLimiter


class TestSlidingWindowLimiter:
    def test_admits_up_to_max(self, clock):
        limiter = SlidingWindowLimiter(3, 1.0, clock.monotonic)
        assert [limiter.acquire() for _ in range(4)] == [True, True, True, False]

    def test_window_slides(self, clock):
        limiter = SlidingWindowLimiter(2, 1.0, clock.monotonic)
        limiter.acquire()
        clock.advance(0.5)
        limiter.acquire()
        clock.advance(0.6)
        assert limiter.current_count == 1
        assert limiter.acquire() is True

    def test_wait_time_until_oldest_expires(self, clock):
        limiter = SlidingWindowLimiter(2, 10.0, clock.monotonic)
        limiter.acquire()
        clock.advance(4)
        limiter.acquire()
        assert limiter.get_wait_time() == pytest.approx(6.0)

    def test_weighted_tokens(self, clock):
        limiter = SlidingWindowLimiter(10, 60.0, clock.monotonic)
        assert limiter.acquire(7) is True
        assert limiter.acquire(4) is False
        assert limiter.acquire(3) is True


class TestCompositeRateLimiter:
    def test_all_or_nothing(self, clock):
        fast = SlidingWindowLimiter(5, 1.0, clock.monotonic)
        slow = SlidingWindowLimiter(2, 60.0, clock.monotonic)
        composite = CompositeRateLimiter([fast, slow])
        assert composite.acquire() and composite.acquire()
        assert composite.acquire() is False
        assert fast.current_count == 2


class TestApiRateLimiter:
    def test_eleventh_request_in_one_second_is_rejected(self, clock):
        limiter = ApiRateLimiter(clock=clock.monotonic)
        for _ in range(10):
            assert limiter.acquire().allowed
        decision = limiter.can_proceed()
        assert decision.allowed is False
        assert decision.wait_time == pytest.approx(1.0, abs=0.01)

    def test_allowed_again_after_window(self, clock):
        limiter = ApiRateLimiter(clock=clock.monotonic)
        for _ in range(10):
            limiter.record()
        clock.advance(1.0)
        assert limiter.can_proceed().allowed is True

    def test_quota_counts_cost_units(self, clock):
        limiter = ApiRateLimiter(quota_limit=250, clock=clock.monotonic)
        assert limiter.acquire(cost_units=200).allowed
        clock.advance(1.0)
        decision = limiter.can_proceed(cost_units=100)
        assert decision.allowed is False
        assert decision.wait_time == pytest.approx(3599.0)
        assert limiter.can_proceed(cost_units=50).allowed

    def test_can_proceed_does_not_record(self, clock):
        limiter = ApiRateLimiter(clock=clock.monotonic)
        for _ in range(20):
            limiter.can_proceed()
        assert limiter.status()["requests_last_second"] == 0

    def test_status(self, clock):
        limiter = ApiRateLimiter(clock=clock.monotonic)
        limiter.record(cost_units=5)
        status = limiter.status()
        assert status["requests_last_minute"] == 1
        assert status["quota_used"] == 5
        assert status["quota_limit"] == 250
