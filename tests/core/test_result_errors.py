"""Tests for outcome values and the error hierarchy."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from zapflow.core.errors import (
    ApiErrorType,
    ClassifiedApiError,
    ClassifiedError,
    ErrorCategory,
    RunNotFoundError,
    ScheduleError,
    UnsupportedActionError,
)
from zapflow.core.result import Fatal, Ok, Retryable, from_error


def _error(retryable: bool = True) -> ClassifiedError:
    return ClassifiedError(
        ApiErrorType.SERVER_ERROR, "boom", status_code=503, retryable=retryable, retry_after=30.0
    )


class TestOutcome:
    def test_ok_unwrap_and_map(self):
        assert Ok(3).map(lambda x: x * 2).unwrap() == 6

    def test_retryable_unwrap_raises(self):
        with pytest.raises(ClassifiedApiError) as exc_info:
            Retryable(_error()).unwrap()
        assert exc_info.value.type is ApiErrorType.SERVER_ERROR
        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True

    def test_fatal_unwrap_or(self):
        assert Fatal(_error(False)).unwrap_or("fallback") == "fallback"

    def test_from_error_picks_variant(self):
        assert isinstance(from_error(_error(True)), Retryable)
        assert isinstance(from_error(_error(False)), Fatal)

    def test_pattern_matching(self):
        match Retryable(_error()):
            case Ok(value):
                result = value
            case Retryable(error) | Fatal(error):
                result = error.message
        assert result == "boom"


class TestClassifiedError:
    def test_to_dict_omits_unset_fields(self):
        data = ClassifiedError(ApiErrorType.RESOURCE_NOT_FOUND, "missing").to_dict()
        assert data == {"type": "RESOURCE_NOT_FOUND", "message": "missing", "retryable": False}

    def test_to_dict_includes_optional_fields(self):
        reset = datetime(2025, 3, 11, tzinfo=UTC)
        data = ClassifiedError(
            ApiErrorType.QUOTA_EXCEEDED, "quota", status_code=403, quota_reset_time=reset
        ).to_dict()
        assert data["status_code"] == 403
        assert data["quota_reset_time"] == reset.isoformat()

    def test_category(self):
        assert _error().category is ErrorCategory.SOURCE


class TestZapflowErrors:
    def test_unsupported_action(self):
        err = UnsupportedActionError("Fax")
        assert err.action_type == "Fax"
        assert "Fax" in err.message

    def test_run_not_found(self):
        assert RunNotFoundError("r1").run_id == "r1"

    def test_with_context(self):
        err = ScheduleError("bad").with_context(workflow_id="wf-1", schedule_id="s-1")
        data = err.to_dict()
        assert data["error_type"] == "ScheduleError"
        assert data["category"] == "SCHEDULE"
        assert data["context"] == {"workflow_id": "wf-1", "schedule_id": "s-1"}

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        err = ScheduleError("outer", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "inner"
