"""
Classified outcome envelope for external calls.

Every call that goes through the resilience layer ends in exactly one of
three outcomes, so retry decisions are driven by data rather than by
catching and re-raising exceptions:

- ``Ok(value)`` — the call succeeded
- ``Retryable(error)`` — the call failed in a way that may succeed later
- ``Fatal(error)`` — the call failed permanently

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     Outcome[T]                               │
        ├───────────────────┬─────────────────────┬───────────────────┤
        │      Ok[T]        │    Retryable        │     Fatal         │
        │  • value: T       │  • error            │  • error          │
        │  • map()          │    (ClassifiedError)│    (Classified..) │
        │  • unwrap()       │  • unwrap() raises  │  • unwrap() raises│
        └───────────────────┴─────────────────────┴───────────────────┘

Examples:
    >>> outcome = Ok(3).map(lambda x: x * 2)
    >>> outcome.unwrap()
    6
    >>> match outcome:
    ...     case Ok(value):
    ...         print(value)
    ...     case Retryable(error) | Fatal(error):
    ...         print(error.message)
    6

Guardrails:
    ❌ DON'T: Call unwrap() on an outcome you have not inspected
    ✅ DO: Use pattern matching or ``is_ok()`` first

Tags:
    result-pattern, error-handling, retry-logic, zapflow
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from zapflow.core.errors import ClassifiedApiError, ClassifiedError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_retryable(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Outcome[U]:
        """Transform the value."""
        return Ok(f(self.value))

    @property
    def error(self) -> None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Retryable:
    """Failed outcome that may succeed if attempted again later."""

    error: ClassifiedError

    def is_ok(self) -> bool:
        return False

    def is_retryable(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raise the classified error as an exception."""
        raise ClassifiedApiError(self.error)

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[Any], U]) -> Outcome[U]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "retryable": True, "error": self.error.to_dict()}

    def __repr__(self) -> str:
        return f"Retryable({self.error.type.value}: {self.error.message!r})"


@dataclass(frozen=True, slots=True)
class Fatal:
    """Failed outcome that will not succeed on retry."""

    error: ClassifiedError

    def is_ok(self) -> bool:
        return False

    def is_retryable(self) -> bool:
        return False

    def unwrap(self) -> Any:
        """Raise the classified error as an exception."""
        raise ClassifiedApiError(self.error)

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[Any], U]) -> Outcome[U]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "retryable": False, "error": self.error.to_dict()}

    def __repr__(self) -> str:
        return f"Fatal({self.error.type.value}: {self.error.message!r})"


Outcome = Union[Ok[T], Retryable, Fatal]


def from_error(error: ClassifiedError) -> Retryable | Fatal:
    """Wrap a classified error in the outcome its ``retryable`` flag implies."""
    return Retryable(error) if error.retryable else Fatal(error)


__all__ = [
    "Fatal",
    "Ok",
    "Outcome",
    "Retryable",
    "from_error",
]
