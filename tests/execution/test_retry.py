"""Tests for ``zapflow.execution.retry``."""

from __future__ import annotations

import random

import pytest

from zapflow.core.errors import ApiErrorType, ClassifiedError
from zapflow.execution.retry import ExponentialBackoff, NoRetry, RetryContext


def _retryable(retry_after: float | None = None) -> ClassifiedError:
    return ClassifiedError(ApiErrorType.NETWORK_ERROR, "reset", retryable=True, retry_after=retry_after)


class TestExponentialBackoff:
    def test_base_delays_double_and_cap(self):
        backoff = ExponentialBackoff()
        assert [backoff.base_delay_for(n) for n in range(7)] == [1, 2, 4, 8, 16, 30, 30]

    @pytest.mark.parametrize("attempt,base", [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (4, 16.0), (5, 30.0)])
    def test_jitter_within_ten_percent(self, attempt, base):
        backoff = ExponentialBackoff(rng=random.Random(attempt))
        for _ in range(50):
            delay = backoff.next_delay(attempt)
            assert base <= delay <= base * 1.1

    def test_retry_after_overrides_backoff(self):
        assert ExponentialBackoff().next_delay(0, retry_after=42.0) == 42.0

    def test_should_retry_respects_max(self):
        backoff = ExponentialBackoff(max_retries=5)
        assert backoff.should_retry(4, _retryable())
        assert not backoff.should_retry(5, _retryable())

    def test_non_retryable_error_stops(self):
        fatal = ClassifiedError(ApiErrorType.AUTHENTICATION_ERROR, "no")
        assert not ExponentialBackoff().should_retry(0, fatal)


class TestRetryContext:
    def test_allows_five_retries_after_first_attempt(self):
        ctx = RetryContext(ExponentialBackoff(max_retries=5, rng=random.Random(0)))
        delays = []
        while True:
            ctx.record_failure(_retryable())
            if not ctx.should_retry():
                break
            delays.append(ctx.next_delay())
        assert ctx.attempts == 6
        assert len(delays) == 5

    def test_uses_last_error_retry_after(self):
        ctx = RetryContext(ExponentialBackoff())
        ctx.record_failure(_retryable(retry_after=7.0))
        assert ctx.next_delay() == 7.0

    def test_on_retry_callback(self):
        seen = []
        ctx = RetryContext(ExponentialBackoff(), on_retry=lambda n, err, d: seen.append((n, err.type, d)))
        ctx.record_failure(_retryable(retry_after=3.0))
        ctx.next_delay()
        assert seen == [(0, ApiErrorType.NETWORK_ERROR, 3.0)]

    def test_no_retry(self):
        ctx = RetryContext(NoRetry())
        ctx.record_failure(_retryable())
        assert ctx.should_retry() is False
