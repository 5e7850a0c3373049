"""Circuit breaker guarding one external service client.

While a service keeps failing, the breaker rejects attempts locally for a
cooldown instead of letting them reach the service. State is per process
and per :class:`~zapflow.execution.resilience.ResilientClient`; workers do
not share it.

::

    CLOSED ──(failure_threshold consecutive failures)──► OPEN
    OPEN ──(recovery_timeout elapsed)──► HALF_OPEN      one trial let through
    HALF_OPEN ──(trial fails)──► OPEN                   cooldown restarts
    any ──(success)──► CLOSED                           failure_count = 0

Example:
    >>> breaker = CircuitBreaker("smtp", failure_threshold=5, recovery_timeout=60.0)
    >>> if breaker.allow_request():
    ...     try:
    ...         send()
    ...     except OSError:
    ...         breaker.record_failure()
    ...     else:
    ...         breaker.record_success()
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreaker:
    """Consecutive-failure breaker with a single half-open trial.

    Attributes:
        name: Service the breaker protects
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Cooldown in seconds before the trial attempt
        clock: Monotonic time source (injectable for tests)
    """

    name: str = "default"
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _trial_pending: bool = field(default=False, init=False)
    _rejected: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failures

    @property
    def last_failure_time(self) -> float | None:
        with self._lock:
            return self._opened_at

    def _refresh(self) -> None:
        # OPEN only lapses into HALF_OPEN when somebody looks at the breaker
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self.clock() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._trial_pending = False

    def allow_request(self) -> bool:
        """True if an attempt may go out now.

        HALF_OPEN admits exactly one attempt until its outcome is recorded.
        """
        with self._lock:
            self._refresh()
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.HALF_OPEN and not self._trial_pending:
                self._trial_pending = True
                return True
            self._rejected += 1
            return False

    def remaining_cooldown(self) -> float:
        """Seconds until the trial attempt is allowed; 0 unless OPEN."""
        with self._lock:
            self._refresh()
            if self._state is not CircuitState.OPEN or self._opened_at is None:
                return 0.0
            return max(0.0, self.recovery_timeout - (self.clock() - self._opened_at))

    def record_success(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._trial_pending = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._opened_at = self.clock()
            trial_failed = self._state is CircuitState.HALF_OPEN
            if trial_failed or self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._trial_pending = False

    def reset(self) -> None:
        """Force CLOSED and forget the failure history."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None
            self._trial_pending = False

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            self._refresh()
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failures,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout,
                "rejected_requests": self._rejected,
            }


__all__ = ["CircuitBreaker", "CircuitState"]
