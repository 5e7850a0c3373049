"""Resilience layer — rate limiter + circuit breaker + backoff retry.

One :class:`ResilientClient` guards one external service client. Every
attempt goes through the same gate::

    execute(operation, cost_units)
      │
      ├─ breaker OPEN?          → Retryable(SERVER_ERROR "breaker open")
      ├─ rate limit exceeded?   → Retryable(RATE_LIMIT_EXCEEDED, wait_time)
      ├─ operation()
      │     ok     → breaker.record_success()  → Ok(value)
      │     raised → classify_error()
      │              breaker.record_failure()  → Retryable | Fatal
      │
      └─ Retryable and attempts left → sleep(retry_after or backoff) → again

Retry control flow is driven by the outcome values, never by catching and
re-raising. Limiter and breaker state are per instance; two processes each
holding a client are not coordinated.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from zapflow.core.errors import ApiErrorType, ClassifiedError
from zapflow.core.logging import get_logger
from zapflow.core.result import Ok, Outcome, Retryable, from_error
from zapflow.core.timestamps import utc_now
from zapflow.execution.circuit_breaker import CircuitBreaker, CircuitState
from zapflow.execution.classify import classify_error
from zapflow.execution.rate_limit import ApiRateLimiter, RateDecision
from zapflow.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy

logger = get_logger(__name__)

T = TypeVar("T")


class ResilientClient:
    """Wraps calls to one external API with limiting, breaking and retrying.

    Args:
        name: Service name used in logs and status
        rate_limiter: Per-client limiter (defaults to the stock windows)
        breaker: Per-client circuit breaker
        backoff: Retry strategy
        sleep: Blocking sleep, injectable for tests
        classifier: Maps raised exceptions to classified errors
        now: Wall clock used for quota reset times
    """

    def __init__(
        self,
        name: str = "default",
        *,
        rate_limiter: ApiRateLimiter | None = None,
        breaker: CircuitBreaker | None = None,
        backoff: RetryStrategy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        classifier: Callable[..., ClassifiedError] = classify_error,
        now: Callable[[], datetime] = utc_now,
    ):
        self.name = name
        self.rate_limiter = rate_limiter or ApiRateLimiter()
        self.breaker = breaker or CircuitBreaker(name=name)
        self.backoff = backoff or ExponentialBackoff()
        self._sleep = sleep
        self._classify = classifier
        self._now = now

    # -- Public contract ---------------------------------------------------

    def execute(self, operation: Callable[[], T], cost_units: int = 1) -> Outcome[T]:
        """Run ``operation`` until it succeeds, fails fatally or retries run out."""
        ctx = RetryContext(self.backoff)
        while True:
            outcome = self._attempt(operation, cost_units)
            if isinstance(outcome, Ok):
                if ctx.attempts:
                    logger.info("api_call_recovered", service=self.name, attempts=ctx.attempts + 1)
                return outcome

            ctx.record_failure(outcome.error)
            if not ctx.should_retry():
                logger.warning(
                    "api_call_failed",
                    service=self.name,
                    attempts=ctx.attempts,
                    **outcome.error.to_dict(),
                )
                return outcome

            delay = ctx.next_delay()
            logger.warning(
                "api_call_retrying",
                service=self.name,
                attempt=ctx.attempts,
                max_retries=getattr(self.backoff, "max_retries", None),
                delay=round(delay, 3),
                error_type=outcome.error.type.value,
                error=outcome.error.message,
            )
            self._sleep(delay)

    def call(self, operation: Callable[[], T], cost_units: int = 1) -> T:
        """Like :meth:`execute` but returns the value or raises ``ClassifiedApiError``."""
        return self.execute(operation, cost_units).unwrap()

    def can_proceed(self, cost_units: int = 1) -> RateDecision:
        """Whether an attempt would currently be let through."""
        if self.breaker.state == CircuitState.OPEN:
            return RateDecision(allowed=False, wait_time=self.breaker.remaining_cooldown())
        return self.rate_limiter.can_proceed(cost_units)

    def record(self, cost_units: int = 1) -> None:
        """Record usage made outside :meth:`execute`."""
        self.rate_limiter.record(cost_units)

    def status(self) -> dict[str, Any]:
        return {
            "service": self.name,
            "breaker": self.breaker.to_dict(),
            "rate_limit": self.rate_limiter.status(),
        }

    # -- Internals ---------------------------------------------------------

    def _breaker_open(self) -> Retryable:
        remaining = self.breaker.remaining_cooldown()
        return Retryable(
            ClassifiedError(
                ApiErrorType.SERVER_ERROR,
                f"Circuit breaker open for {self.name}",
                retryable=True,
                retry_after=remaining or None,
            )
        )

    def _attempt(self, operation: Callable[[], T], cost_units: int) -> Outcome[T]:
        if self.breaker.state == CircuitState.OPEN:
            return self._breaker_open()

        # budget is only spent by attempts the breaker lets through
        decision = self.rate_limiter.can_proceed(cost_units)
        if not decision.allowed:
            return Retryable(
                ClassifiedError(
                    ApiErrorType.RATE_LIMIT_EXCEEDED,
                    f"Local rate limit reached for {self.name}",
                    retryable=True,
                    retry_after=decision.wait_time,
                )
            )

        if not self.breaker.allow_request():
            return self._breaker_open()
        self.rate_limiter.record(cost_units)

        try:
            value = operation()
        except Exception as exc:
            error = self._classify(exc, self._now())
            self.breaker.record_failure()
            return from_error(error)

        self.breaker.record_success()
        return Ok(value)


class ResiliencePool:
    """One :class:`ResilientClient` per external service, created on first use.

    Calls to the same service share limiter and breaker state; different
    services never trip each other's breaker.
    """

    def __init__(self, factory: Callable[[str], ResilientClient] | None = None):
        self._factory = factory or (lambda name: ResilientClient(name))
        self._clients: dict[str, ResilientClient] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> ResiliencePool:
        """Build clients from :class:`~zapflow.core.settings.ZapflowSettings`."""

        def factory(name: str) -> ResilientClient:
            return ResilientClient(
                name,
                rate_limiter=ApiRateLimiter.from_settings(settings.rate_limit),
                breaker=CircuitBreaker(
                    name=name,
                    failure_threshold=settings.breaker.failure_threshold,
                    recovery_timeout=settings.breaker.recovery_timeout,
                ),
                backoff=ExponentialBackoff.from_settings(settings.retry),
                sleep=sleep,
            )

        return cls(factory)

    def get(self, service: str) -> ResilientClient:
        with self._lock:
            client = self._clients.get(service)
            if client is None:
                client = self._factory(service)
                self._clients[service] = client
            return client

    def status(self) -> dict[str, Any]:
        with self._lock:
            clients = list(self._clients.values())
        return {client.name: client.status() for client in clients}


__all__ = ["ResiliencePool", "ResilientClient"]
