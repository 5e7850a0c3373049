"""Retry strategies with exponential backoff and jitter.

The strategy only computes delays and retry decisions; the resilience layer
owns the loop and the sleeping. A classified ``retry_after`` hint from the
remote service takes precedence over the computed delay.

Example:
    >>> strategy = ExponentialBackoff(max_retries=5, base_delay=1.0, max_delay=30.0)
    >>> for attempt in range(5):
    ...     delay = strategy.next_delay(attempt)
    ...     print(f"Retry {attempt}: wait {delay:.2f}s")
"""

import random
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from zapflow.core.errors import ClassifiedError


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Zero-based retry number (0 = first retry)
            retry_after: Server-provided hint in seconds, if any

        Returns:
            Delay in seconds
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: ClassifiedError | None = None) -> bool:
        """Determine if another attempt should be made.

        Args:
            attempt: Number of failed attempts so far minus one
            error: The classified failure
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with positive jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) + jitter,
    where jitter is uniform in ``[0, jitter_range * delay]``.

    Attributes:
        max_retries: Maximum number of retries after the first attempt
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds (before jitter)
        multiplier: Exponential multiplier
        jitter_range: Jitter as a fraction of the delay
        rng: Random source, injectable for deterministic tests
    """

    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter_range: float = 0.1
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_settings(cls, settings) -> "ExponentialBackoff":
        """Build from a :class:`~zapflow.core.settings.RetrySettings`."""
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            multiplier=settings.multiplier,
        )

    def base_delay_for(self, attempt: int) -> float:
        """Delay without jitter."""
        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)

    def next_delay(self, attempt: int, retry_after: float | None = None) -> float:
        if retry_after is not None:
            return max(0.0, retry_after)
        delay = self.base_delay_for(attempt)
        return delay + self.rng.random() * self.jitter_range * delay

    def should_retry(self, attempt: int, error: ClassifiedError | None = None) -> bool:
        if attempt >= self.max_retries:
            return False
        if error is not None and not error.retryable:
            return False
        return True


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail after the first attempt."""

    def next_delay(self, attempt: int, retry_after: float | None = None) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: ClassifiedError | None = None) -> bool:
        return False


@dataclass
class RetryContext:
    """Retry state for one logical call.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=3))
        >>> ctx.record_failure(error)
        >>> if ctx.should_retry():
        ...     sleep(ctx.next_delay())
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, ClassifiedError, float], None] | None = None
    attempt: int = field(default=0, init=False)
    last_error: ClassifiedError | None = field(default=None, init=False)
    errors: list[ClassifiedError] = field(default_factory=list, init=False)

    def record_failure(self, error: ClassifiedError) -> None:
        """Record a failed attempt."""
        self.errors.append(error)
        self.last_error = error

    def should_retry(self) -> bool:
        """Check if another attempt is allowed after the last failure."""
        return self.strategy.should_retry(self.attempt, self.last_error)

    def next_delay(self) -> float:
        """Delay before the next attempt; advances the attempt counter."""
        retry_after = self.last_error.retry_after if self.last_error else None
        delay = self.strategy.next_delay(self.attempt, retry_after)
        if self.on_retry is not None and self.last_error is not None:
            self.on_retry(self.attempt, self.last_error, delay)
        self.attempt += 1
        return delay

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return len(self.errors)


__all__ = ["ExponentialBackoff", "NoRetry", "RetryContext", "RetryStrategy"]
