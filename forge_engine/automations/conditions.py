"""Condition evaluation for automations.

Conditions are ANDed. There is no OR and no grouping.
"""

import math
from typing import Any, Dict, Iterable

import structlog

from ..storage.models import Condition, ConditionOperator

logger = structlog.get_logger()


def _to_number(value: Any) -> float:
    """Coerce like a loose numeric cast. None is zero, failures become NaN."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return math.nan


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _stringify(value: Any, none: str = "") -> str:
    if value is None:
        return none
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _column_number(condition: Condition, column_values: Dict[str, Any]) -> float:
    if condition.column_id not in column_values:
        return math.nan
    return _to_number(column_values[condition.column_id])


def evaluate_condition(condition: Condition, column_values: Dict[str, Any]) -> bool:
    actual = column_values.get(condition.column_id)
    expected = condition.value
    operator = condition.operator

    if operator == ConditionOperator.EQUALS:
        return actual == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return actual != expected
    if operator == ConditionOperator.CONTAINS:
        return _stringify(expected, none="null") in _stringify(actual)
    # A missing column is NaN, and NaN compares false both ways
    if operator == ConditionOperator.GREATER_THAN:
        return _column_number(condition, column_values) > _to_number(expected)
    if operator == ConditionOperator.LESS_THAN:
        return _column_number(condition, column_values) < _to_number(expected)
    if operator == ConditionOperator.IS_EMPTY:
        return _is_empty(actual)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(actual)

    logger.warning(
        "Passing condition with unknown operator",
        operator=condition.raw_operator,
        column_id=condition.column_id,
    )
    return True


def evaluate_conditions(
    conditions: Iterable[Condition], column_values: Dict[str, Any]
) -> bool:
    """Return True when every condition holds. An empty list always holds."""
    return all(evaluate_condition(c, column_values) for c in conditions)
