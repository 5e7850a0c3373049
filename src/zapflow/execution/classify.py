"""Classification of raw external-call failures.

Turns whatever an API client raised into a :class:`ClassifiedError` with a
type, a retry flag and an optional ``retry_after`` hint (seconds).

Rules::

    status 429           → RATE_LIMIT_EXCEEDED   retryable, Retry-After (≤ 3600) or 60
    status 401           → AUTHENTICATION_ERROR
    status 403 + quota   → QUOTA_EXCEEDED        quota_reset_time = now + 24h
    status 403 otherwise → PERMISSION_DENIED
    status 400           → INVALID_REQUEST
    status 404           → RESOURCE_NOT_FOUND
    status ≥ 500         → SERVER_ERROR          retryable, retry_after 30
    transport failure    → NETWORK_ERROR         retryable, retry_after 10
    anything else        → UNKNOWN_ERROR

The status code is read from ``httpx.HTTPStatusError.response`` or from a
``status_code``/``code`` attribute; the 403 reason from a Google-style JSON
body (``error.errors[0].reason``) or a ``reason`` attribute.
"""

from datetime import datetime, timedelta
from typing import Any

import httpx

from zapflow.core.errors import ApiErrorType, ClassifiedApiError, ClassifiedError, ZapflowError
from zapflow.core.timestamps import utc_now

DEFAULT_RATE_LIMIT_RETRY_AFTER = 60.0
MAX_RETRY_AFTER = 3600.0
SERVER_ERROR_RETRY_AFTER = 30.0
NETWORK_ERROR_RETRY_AFTER = 10.0
QUOTA_RESET = timedelta(hours=24)

QUOTA_REASONS = frozenset({"quotaExceeded", "dailyLimitExceeded"})

_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


def _status_code(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _headers(error: BaseException) -> Any:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.headers
    response = getattr(error, "response", None)
    if response is not None and getattr(response, "headers", None) is not None:
        return response.headers
    return getattr(error, "headers", None) or {}


def _reason(error: BaseException) -> str | None:
    reason = getattr(error, "reason", None)
    if isinstance(reason, str):
        return reason
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
        except ValueError:
            return None
        try:
            return body["error"]["errors"][0]["reason"]
        except (KeyError, IndexError, TypeError):
            return None
    return None


def parse_retry_after(value: Any) -> float | None:
    """Parse a Retry-After header in seconds, capped at one hour."""
    if value is None:
        return None
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return float(min(seconds, MAX_RETRY_AFTER))


def classify_error(error: BaseException, now: datetime | None = None) -> ClassifiedError:
    """Map a raw failure to a :class:`ClassifiedError`."""
    if isinstance(error, ClassifiedApiError):
        return error.error

    status = _status_code(error)
    detail = str(error) or type(error).__name__

    if status == 429:
        retry_after = parse_retry_after(_headers(error).get("retry-after"))
        return ClassifiedError(
            ApiErrorType.RATE_LIMIT_EXCEEDED,
            "API rate limit exceeded",
            status_code=429,
            retryable=True,
            retry_after=retry_after or DEFAULT_RATE_LIMIT_RETRY_AFTER,
            cause=error,
        )

    if status == 403:
        if _reason(error) in QUOTA_REASONS:
            return ClassifiedError(
                ApiErrorType.QUOTA_EXCEEDED,
                "API quota exceeded",
                status_code=403,
                retryable=False,
                quota_reset_time=(now or utc_now()) + QUOTA_RESET,
                cause=error,
            )
        return ClassifiedError(
            ApiErrorType.PERMISSION_DENIED,
            "Insufficient API permissions",
            status_code=403,
            cause=error,
        )

    if status == 401:
        return ClassifiedError(
            ApiErrorType.AUTHENTICATION_ERROR, "API authentication failed",
            status_code=401, cause=error,
        )

    if status == 400:
        return ClassifiedError(
            ApiErrorType.INVALID_REQUEST, f"Invalid API request: {detail}",
            status_code=400, cause=error,
        )

    if status == 404:
        return ClassifiedError(
            ApiErrorType.RESOURCE_NOT_FOUND, "API resource not found",
            status_code=404, cause=error,
        )

    if status is not None and status >= 500:
        return ClassifiedError(
            ApiErrorType.SERVER_ERROR,
            f"API server error ({status})",
            status_code=status,
            retryable=True,
            retry_after=SERVER_ERROR_RETRY_AFTER,
            cause=error,
        )

    if status is None and isinstance(error, ZapflowError):
        # zapflow errors already say whether a retry can help
        return ClassifiedError(
            ApiErrorType.UNKNOWN_ERROR,
            error.message,
            retryable=error.retryable,
            retry_after=error.retry_after,
            cause=error,
        )

    if isinstance(error, _NETWORK_ERRORS):
        return ClassifiedError(
            ApiErrorType.NETWORK_ERROR,
            f"Network error: {detail}",
            retryable=True,
            retry_after=NETWORK_ERROR_RETRY_AFTER,
            cause=error,
        )

    return ClassifiedError(
        ApiErrorType.UNKNOWN_ERROR, detail, status_code=status, cause=error,
    )


__all__ = ["classify_error", "parse_retry_after"]
