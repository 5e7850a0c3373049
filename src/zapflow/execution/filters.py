"""Workflow filter evaluation.

A workflow may carry filter conditions that gate its action chain. All
conditions are AND-ed; an empty list always passes. Field names are dotted
paths into the run payload. String operators compare case-insensitively,
numeric operators coerce both sides to float.

Example:
    >>> conditions = [FilterCondition("row_data.Amount", "greater_than", "100")]
    >>> evaluate_filters(conditions, {"row_data": {"Amount": "250"}})
    True
"""

from collections.abc import Callable, Iterable
from typing import Any

from zapflow.core.logging import get_logger
from zapflow.core.models import FilterCondition
from zapflow.execution.actions import lookup

logger = get_logger(__name__)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda a, e: _text(a) == _text(e),
    "not_equals": lambda a, e: _text(a) != _text(e),
    "contains": lambda a, e: _text(e).lower() in _text(a).lower(),
    "not_contains": lambda a, e: _text(e).lower() not in _text(a).lower(),
    "greater_than": lambda a, e: _number(a) > _number(e),
    "less_than": lambda a, e: _number(a) < _number(e),
    "greater_than_or_equals": lambda a, e: _number(a) >= _number(e),
    "less_than_or_equals": lambda a, e: _number(a) <= _number(e),
    "is_empty": lambda a, e: _is_empty(a),
    "is_not_empty": lambda a, e: not _is_empty(a),
    "starts_with": lambda a, e: _text(a).lower().startswith(_text(e).lower()),
    "ends_with": lambda a, e: _text(a).lower().endswith(_text(e).lower()),
}

OPERATORS = frozenset(_OPERATORS)


def evaluate_condition(condition: FilterCondition, data: dict[str, Any]) -> bool:
    """Evaluate one condition; unknown operators pass."""
    check = _OPERATORS.get(condition.operator)
    if check is None:
        logger.warning("filter_unknown_operator", operator=condition.operator, field=condition.field)
        return True
    actual = lookup(data, condition.field)
    return check(actual, condition.value)


def evaluate_filters(conditions: Iterable[FilterCondition], data: dict[str, Any]) -> bool:
    """True when every condition passes."""
    results = []
    for condition in conditions:
        passed = evaluate_condition(condition, data)
        logger.debug(
            "filter_evaluated",
            field=condition.field,
            operator=condition.operator,
            value=condition.value,
            passed=passed,
        )
        results.append(passed)
    return all(results)


__all__ = ["OPERATORS", "evaluate_condition", "evaluate_filters"]
