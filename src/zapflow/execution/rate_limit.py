"""Rate Limiting — sliding-window throughput control for external APIs.

Manifesto:
Third-party APIs (Gmail, Sheets, Telegram) enforce per-second,
per-minute and per-hour limits plus a cost-unit quota. Exceeding them
causes 429s or a day-long quota lockout. The limiter rejects a call
*before* it is made and tells the caller how long to wait; it never
queues or sleeps on its own.

ARCHITECTURE
────────────
::

    RateLimiter (ABC)
      ├── SlidingWindowLimiter   ─ exact weighted count in rolling window
      └── CompositeRateLimiter   ─ all limiters must allow

    ApiRateLimiter               ─ per-client policy:
        requests  = Composite[1s, 60s, 3600s windows]
        quota     = SlidingWindow[cost units, 3600s]
        can_proceed(cost) → RateDecision(allowed, wait_time)
        record(cost)

    All limiters are thread-safe (internal Lock) and take an injectable
    monotonic clock.

Related modules:
    circuit_breaker.py — fail-fast on sustained failures
    retry.py           — backoff on transient failures
    resilience.py      — combines all three around one client

Example::

    limiter = ApiRateLimiter()
    decision = limiter.can_proceed(cost_units=5)
    if decision.allowed:
        limiter.record(5)
        make_api_call()
    else:
        retry_in(decision.wait_time)

Tags:
    zapflow, execution, rate-limit, throttle, sliding-window
"""

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

Clock = Callable[[], float]


class RateLimiter(ABC):
    """Abstract base for rate limiters."""

    @abstractmethod
    def acquire(self, tokens: int = 1) -> bool:
        """Check and record ``tokens`` in one step.

        Returns:
            True if recorded, False if the limit would be exceeded
        """
        ...

    @abstractmethod
    def record(self, tokens: int = 1) -> None:
        """Record usage unconditionally."""
        ...

    @abstractmethod
    def get_wait_time(self, tokens: int = 1) -> float:
        """Get seconds to wait before ``tokens`` fit.

        Returns:
            Seconds to wait (0 if available now)
        """
        ...


@dataclass
class SlidingWindowLimiter(RateLimiter):
    """Sliding window rate limiter over weighted records.

    Each record is ``(timestamp, tokens)``; the window admits a call if the
    sum of tokens inside the last ``window_seconds`` plus the new tokens
    stays within ``max_requests``.

    Attributes:
        max_requests: Maximum tokens per window
        window_seconds: Window size in seconds
        clock: Monotonic time source
    """

    max_requests: int
    window_seconds: float
    clock: Clock = time.monotonic

    _records: list[tuple[float, int]] = field(default_factory=list, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def _cleanup(self, now: float) -> None:
        """Remove records outside the window."""
        cutoff = now - self.window_seconds
        self._records = [r for r in self._records if r[0] > cutoff]

    def _used(self) -> int:
        return sum(tokens for _, tokens in self._records)

    def acquire(self, tokens: int = 1) -> bool:
        with self._lock:
            now = self.clock()
            self._cleanup(now)
            if self._used() + tokens <= self.max_requests:
                self._records.append((now, tokens))
                return True
            return False

    def record(self, tokens: int = 1) -> None:
        with self._lock:
            now = self.clock()
            self._cleanup(now)
            self._records.append((now, tokens))

    def get_wait_time(self, tokens: int = 1) -> float:
        """Get seconds until enough of the oldest records leave the window."""
        with self._lock:
            now = self.clock()
            self._cleanup(now)

            excess = self._used() + tokens - self.max_requests
            if excess <= 0:
                return 0.0
            if tokens > self.max_requests:
                return self.window_seconds

            freed = 0
            for ts, weight in self._records:
                freed += weight
                if freed >= excess:
                    return max(0.0, (ts + self.window_seconds) - now)
            return self.window_seconds

    @property
    def current_count(self) -> int:
        """Get current token count in window."""
        with self._lock:
            self._cleanup(self.clock())
            return self._used()


class CompositeRateLimiter(RateLimiter):
    """Combines multiple rate limiters.

    All limiters must allow the request for it to proceed.

    Example:
        >>> # 100/min AND 1000/hour
        >>> limiter = CompositeRateLimiter([
        ...     SlidingWindowLimiter(100, 60),
        ...     SlidingWindowLimiter(1000, 3600),
        ... ])
    """

    def __init__(self, limiters: list[RateLimiter]):
        self._limiters = limiters
        self._lock = threading.Lock()

    def acquire(self, tokens: int = 1) -> bool:
        """Acquire from all limiters or none."""
        with self._lock:
            if self.get_wait_time(tokens) > 0:
                return False
            self.record(tokens)
            return True

    def record(self, tokens: int = 1) -> None:
        for limiter in self._limiters:
            limiter.record(tokens)

    def get_wait_time(self, tokens: int = 1) -> float:
        """Get max wait time across all limiters."""
        return max(limiter.get_wait_time(tokens) for limiter in self._limiters)


@dataclass(frozen=True)
class RateDecision:
    """Answer to ``can_proceed``; ``wait_time`` is in seconds."""

    allowed: bool
    wait_time: float | None = None


class ApiRateLimiter:
    """Per-client request windows plus a cost-unit quota.

    Request windows count calls; the quota window sums ``cost_units`` over
    the longest window (one hour).
    """

    def __init__(
        self,
        max_requests_per_second: int = 10,
        max_requests_per_minute: int = 100,
        max_requests_per_hour: int = 1000,
        quota_limit: int = 250,
        clock: Clock = time.monotonic,
    ):
        self.max_requests_per_second = max_requests_per_second
        self.max_requests_per_minute = max_requests_per_minute
        self.max_requests_per_hour = max_requests_per_hour
        self.quota_limit = quota_limit
        self._second = SlidingWindowLimiter(max_requests_per_second, 1.0, clock)
        self._minute = SlidingWindowLimiter(max_requests_per_minute, 60.0, clock)
        self._hour = SlidingWindowLimiter(max_requests_per_hour, 3600.0, clock)
        self._requests = CompositeRateLimiter([self._second, self._minute, self._hour])
        self._quota = SlidingWindowLimiter(quota_limit, 3600.0, clock)
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any, clock: Clock = time.monotonic) -> "ApiRateLimiter":
        """Build from a :class:`~zapflow.core.settings.RateLimitSettings`."""
        return cls(
            max_requests_per_second=settings.max_requests_per_second,
            max_requests_per_minute=settings.max_requests_per_minute,
            max_requests_per_hour=settings.max_requests_per_hour,
            quota_limit=settings.quota_limit,
            clock=clock,
        )

    def can_proceed(self, cost_units: int = 1) -> RateDecision:
        """Check every window without recording anything."""
        with self._lock:
            return self._decide(cost_units)

    def record(self, cost_units: int = 1) -> None:
        """Record one request costing ``cost_units``."""
        with self._lock:
            self._requests.record(1)
            self._quota.record(cost_units)

    def acquire(self, cost_units: int = 1) -> RateDecision:
        """Check and, if allowed, record in one atomic step."""
        with self._lock:
            decision = self._decide(cost_units)
            if decision.allowed:
                self._requests.record(1)
                self._quota.record(cost_units)
            return decision

    def _decide(self, cost_units: int) -> RateDecision:
        wait = max(self._requests.get_wait_time(1), self._quota.get_wait_time(cost_units))
        if wait > 0:
            return RateDecision(allowed=False, wait_time=wait)
        return RateDecision(allowed=True)

    def status(self) -> dict[str, Any]:
        return {
            "requests_last_second": self._second.current_count,
            "requests_last_minute": self._minute.current_count,
            "requests_last_hour": self._hour.current_count,
            "quota_used": self._quota.current_count,
            "quota_limit": self.quota_limit,
        }


__all__ = [
    "ApiRateLimiter",
    "CompositeRateLimiter",
    "RateDecision",
    "RateLimiter",
    "SlidingWindowLimiter",
]
