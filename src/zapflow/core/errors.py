"""
Structured error types for zapflow.

Every error raised by the engine carries a category, an explicit retry flag,
an optional retry-after hint and structured context. External API failures
are additionally described by a :class:`ClassifiedError` value, the payload
shape surfaced to callers of the resilience layer.

Manifesto:
    - **Typed hierarchy:** Different error types for different concerns
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry run/workflow/trigger ids for logging
    - **Error chaining:** Original exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      ZapflowError                            │
        │  (category, retryable, retry_after, context, cause)          │
        ├─────────────────────────────────────────────────────────────┤
        │  ClassifiedApiError   ActionError        ConfigError         │
        │  (wraps payload)      UnsupportedAction                      │
        │                                                              │
        │  RunNotFoundError     ScheduleError      SourceError         │
        └─────────────────────────────────────────────────────────────┘

        ApiErrorType (classification of external API failures)
          RATE_LIMIT_EXCEEDED  QUOTA_EXCEEDED     AUTHENTICATION_ERROR
          PERMISSION_DENIED    INVALID_REQUEST    RESOURCE_NOT_FOUND
          SERVER_ERROR         NETWORK_ERROR      UNKNOWN_ERROR

Examples:
    >>> error = ClassifiedError(ApiErrorType.SERVER_ERROR, "upstream 502",
    ...                         status_code=502, retryable=True)
    >>> error.to_dict()["type"]
    'SERVER_ERROR'

Tags:
    error-handling, exception-hierarchy, retry-logic, zapflow
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, timeout, DNS
    DATABASE = "DATABASE"         # Persistence failures
    SOURCE = "SOURCE"             # Upstream API / polled source
    VALIDATION = "VALIDATION"     # Bad input, bad templates
    CONFIG = "CONFIG"             # Missing or invalid settings
    AUTH = "AUTH"                 # Authentication, authorization
    ACTION = "ACTION"             # Action chain failures
    SCHEDULE = "SCHEDULE"         # Schedule evaluation
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


class ApiErrorType(str, Enum):
    """Classification of a failed external API call."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_REQUEST = "INVALID_REQUEST"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_API_ERROR_CATEGORIES = {
    ApiErrorType.RATE_LIMIT_EXCEEDED: ErrorCategory.NETWORK,
    ApiErrorType.QUOTA_EXCEEDED: ErrorCategory.SOURCE,
    ApiErrorType.AUTHENTICATION_ERROR: ErrorCategory.AUTH,
    ApiErrorType.PERMISSION_DENIED: ErrorCategory.AUTH,
    ApiErrorType.INVALID_REQUEST: ErrorCategory.VALIDATION,
    ApiErrorType.RESOURCE_NOT_FOUND: ErrorCategory.SOURCE,
    ApiErrorType.SERVER_ERROR: ErrorCategory.SOURCE,
    ApiErrorType.NETWORK_ERROR: ErrorCategory.NETWORK,
    ApiErrorType.UNKNOWN_ERROR: ErrorCategory.UNKNOWN,
}


@dataclass(frozen=True)
class ClassifiedError:
    """
    Classified description of an external API failure.

    This is the error payload surfaced to callers of the resilience layer:
    ``{type, message, status_code?, retryable, retry_after?, quota_reset_time?}``.
    ``retry_after`` is expressed in seconds.
    """

    type: ApiErrorType
    message: str
    status_code: int | None = None
    retryable: bool = False
    retry_after: float | None = None
    quota_reset_time: datetime | None = None
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    @property
    def category(self) -> ErrorCategory:
        return _API_ERROR_CATEGORIES[self.type]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire payload (optional fields omitted when unset)."""
        result: dict[str, Any] = {
            "type": self.type.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.quota_reset_time is not None:
            result["quota_reset_time"] = self.quota_reset_time.isoformat()
        return result


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only fields that are set are emitted by :meth:`to_dict`, so the context
    can be splatted straight into a structlog event.
    """

    run_id: str | None = None
    workflow_id: str | None = None
    trigger_id: str | None = None
    action_type: str | None = None
    step_order: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {
            key: value
            for key, value in (
                ("run_id", self.run_id),
                ("workflow_id", self.workflow_id),
                ("trigger_id", self.trigger_id),
                ("action_type", self.action_type),
                ("step_order", self.step_order),
            )
            if value is not None
        }
        result.update(self.metadata)
        return result


class ZapflowError(Exception):
    """
    Base exception for all zapflow errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ZapflowError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ActionError("send failed").with_context(run_id=run.id)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ClassifiedApiError(ZapflowError):
    """Exception form of a :class:`ClassifiedError`.

    Raised by :meth:`ResilientClient.call` when the caller prefers exceptions
    over outcome values.
    """

    def __init__(self, error: ClassifiedError, **kwargs: Any):
        super().__init__(
            error.message,
            category=error.category,
            retryable=error.retryable,
            retry_after=error.retry_after,
            cause=error.cause,
            **kwargs,
        )
        self.error = error

    @property
    def type(self) -> ApiErrorType:
        return self.error.type

    @property
    def status_code(self) -> int | None:
        return self.error.status_code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["api_error"] = self.error.to_dict()
        return result


class ActionError(ZapflowError):
    """An action in a workflow chain failed."""

    default_category = ErrorCategory.ACTION


class UnsupportedActionError(ActionError):
    """No handler is registered for an action type."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, action_type: str):
        super().__init__(f"Unsupported action type: {action_type}")
        self.action_type = action_type


class RunNotFoundError(ZapflowError):
    """A run id does not resolve to a stored run."""

    default_category = ErrorCategory.DATABASE

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class ScheduleError(ZapflowError):
    """Invalid schedule specification."""

    default_category = ErrorCategory.SCHEDULE


class SourceError(ZapflowError):
    """A polled source returned unusable data."""

    default_category = ErrorCategory.SOURCE


class ConfigError(ZapflowError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ActionError",
    "ApiErrorType",
    "ClassifiedApiError",
    "ClassifiedError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "RunNotFoundError",
    "ScheduleError",
    "SourceError",
    "UnsupportedActionError",
    "ZapflowError",
]
