"""Tests for ``zapflow.execution.classify``."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from zapflow.core.errors import ActionError, ApiErrorType, ClassifiedApiError, ClassifiedError, SourceError
from zapflow.execution.classify import classify_error, parse_retry_after

NOW = datetime(2025, 3, 10, 8, 0, tzinfo=UTC)


def _status_error(status: int, headers: dict | None = None, body: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/v1/items")
    response = httpx.Response(status, headers=headers, json=body, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def _google_reason(reason: str) -> dict:
    return {"error": {"code": 403, "errors": [{"reason": reason}]}}


class TestParseRetryAfter:
    @pytest.mark.parametrize(
        "value,expected",
        [("120", 120.0), (" 5 ", 5.0), ("99999", 3600.0), (None, None), ("soon", None), ("-1", None)],
    )
    def test_values(self, value, expected):
        assert parse_retry_after(value) == expected


class TestClassifyHttpStatus:
    def test_429_uses_retry_after_header(self):
        error = classify_error(_status_error(429, headers={"Retry-After": "12"}))
        assert error.type is ApiErrorType.RATE_LIMIT_EXCEEDED
        assert error.retryable is True
        assert error.retry_after == 12.0

    def test_429_defaults_to_sixty_seconds(self):
        assert classify_error(_status_error(429)).retry_after == 60.0

    def test_429_caps_retry_after(self):
        assert classify_error(_status_error(429, headers={"Retry-After": "86400"})).retry_after == 3600.0

    @pytest.mark.parametrize("reason", ["quotaExceeded", "dailyLimitExceeded"])
    def test_403_quota(self, reason):
        error = classify_error(_status_error(403, body=_google_reason(reason)), now=NOW)
        assert error.type is ApiErrorType.QUOTA_EXCEEDED
        assert error.retryable is False
        assert error.quota_reset_time == NOW + timedelta(hours=24)

    def test_403_other_reason_is_permission_denied(self):
        error = classify_error(_status_error(403, body=_google_reason("insufficientPermissions")))
        assert error.type is ApiErrorType.PERMISSION_DENIED
        assert error.retryable is False

    def test_403_without_body(self):
        assert classify_error(_status_error(403)).type is ApiErrorType.PERMISSION_DENIED

    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, ApiErrorType.AUTHENTICATION_ERROR),
            (400, ApiErrorType.INVALID_REQUEST),
            (404, ApiErrorType.RESOURCE_NOT_FOUND),
            (418, ApiErrorType.UNKNOWN_ERROR),
        ],
    )
    def test_non_retryable_statuses(self, status, expected):
        error = classify_error(_status_error(status))
        assert error.type is expected
        assert error.retryable is False
        assert error.status_code == status

    @pytest.mark.parametrize("status", [500, 502, 503])
    def test_server_errors(self, status):
        error = classify_error(_status_error(status))
        assert error.type is ApiErrorType.SERVER_ERROR
        assert error.retryable is True
        assert error.retry_after == 30.0


class TestClassifyOtherErrors:
    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            ConnectionResetError("reset by peer"),
            TimeoutError(),
        ],
    )
    def test_network_errors(self, exc):
        error = classify_error(exc)
        assert error.type is ApiErrorType.NETWORK_ERROR
        assert error.retryable is True
        assert error.retry_after == 10.0

    def test_status_code_attribute(self):
        class ClientError(Exception):
            status_code = 503

        assert classify_error(ClientError("down")).type is ApiErrorType.SERVER_ERROR

    def test_reason_attribute(self):
        class QuotaError(Exception):
            code = 403
            reason = "quotaExceeded"

        assert classify_error(QuotaError(), now=NOW).type is ApiErrorType.QUOTA_EXCEEDED

    def test_unknown(self):
        error = classify_error(RuntimeError("kaput"))
        assert error.type is ApiErrorType.UNKNOWN_ERROR
        assert error.message == "kaput"
        assert error.retryable is False

    def test_classified_passthrough(self):
        inner = ClassifiedError(ApiErrorType.SERVER_ERROR, "x", retryable=True)
        assert classify_error(ClassifiedApiError(inner)) is inner

    def test_zapflow_error_keeps_retry_hint(self):
        error = classify_error(ActionError("relay busy", retryable=True, retry_after=5))
        assert error.type is ApiErrorType.UNKNOWN_ERROR
        assert error.message == "relay busy"
        assert error.retryable is True
        assert error.retry_after == 5

    def test_zapflow_error_defaults_to_fatal(self):
        error = classify_error(SourceError("bad header row"))
        assert error.retryable is False
        assert error.retry_after is None
