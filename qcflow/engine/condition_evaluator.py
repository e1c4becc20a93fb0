"""Condition Evaluator - Safe evaluation of step and assignee conditions"""
from typing import Any, Dict, List, Optional

from ..domain.models import Condition
from ..domain.enums import ConditionOperator, LogicalOperator
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ConditionEvaluator:
    """
    Evaluate condition lists against a flat data snapshot

    Uses a simple DSL - no eval() or exec().

    Conditions fold strictly left to right. The accumulator starts True with
    a pending AND; each condition's result is merged using the pending
    combinator, then that condition's own logical_operator becomes the
    combinator for the next one. So [A(or), B(and), C] means ((A or B) and C).
    """

    def evaluate(self, conditions: List[Condition], data: Optional[Dict[str, Any]]) -> bool:
        """
        Evaluate a condition list

        Args:
            conditions: Ordered conditions; empty means always true
            data: Submission field values

        Returns:
            True if conditions are met
        """
        if not conditions:
            return True

        data = data or {}
        result = True
        pending = LogicalOperator.AND

        for condition in conditions:
            current = self._evaluate_single(condition, data)
            if pending == LogicalOperator.OR:
                result = result or current
            else:
                result = result and current
            pending = condition.logical_operator or LogicalOperator.AND

        return result

    def _evaluate_single(self, condition: Condition, data: Dict[str, Any]) -> bool:
        """Evaluate a single condition"""
        try:
            field_value = self._get_field_value(condition.field, data)
            return self._compare(field_value, condition.operator, condition.value)
        except Exception as e:
            logger.warning(f"Condition evaluation failed for field {condition.field}: {e}")
            return False  # Fail closed

    def _get_field_value(self, field_path: str, data: Dict[str, Any]) -> Any:
        """
        Get field value by flat key, falling back to dot notation

        Example: "details.amount" -> data["details"]["amount"]
        """
        if field_path in data:
            return data[field_path]

        value: Any = data
        for part in field_path.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                return None
        return value

    def _compare(self, field_value: Any, operator: ConditionOperator, compare_value: Any) -> bool:
        """Compare values using operator"""

        if operator == ConditionOperator.EQUALS:
            return self._strict_equals(field_value, compare_value)

        elif operator == ConditionOperator.NOT_EQUALS:
            return not self._strict_equals(field_value, compare_value)

        elif operator == ConditionOperator.GREATER_THAN:
            return self._compare_numeric(field_value, compare_value, lambda a, b: a > b)

        elif operator == ConditionOperator.LESS_THAN:
            return self._compare_numeric(field_value, compare_value, lambda a, b: a < b)

        elif operator == ConditionOperator.CONTAINS:
            if field_value is None:
                return False
            if isinstance(field_value, (list, tuple, set)):
                return compare_value in field_value
            return str(compare_value) in str(field_value)

        elif operator == ConditionOperator.IN:
            if not isinstance(compare_value, list):
                return False
            return any(self._strict_equals(field_value, item) for item in compare_value)

        elif operator == ConditionOperator.NOT_IN:
            if not isinstance(compare_value, list):
                return False
            return not any(self._strict_equals(field_value, item) for item in compare_value)

        elif operator == ConditionOperator.IS_EMPTY:
            return field_value is None or field_value == "" or field_value == []

        elif operator == ConditionOperator.IS_NOT_EMPTY:
            return field_value is not None and field_value != "" and field_value != []

        return False

    @staticmethod
    def _strict_equals(a: Any, b: Any) -> bool:
        # True == 1 in Python; submissions treat them as different values
        if isinstance(a, bool) != isinstance(b, bool):
            return False
        return a == b

    def _compare_numeric(self, field_value: Any, compare_value: Any, comparator) -> bool:
        """Compare numeric values; anything non-numeric compares false"""
        a = self._to_number(field_value)
        b = self._to_number(compare_value)
        if a is None or b is None:
            return False
        return comparator(a, b)

    @staticmethod
    def _to_number(value: Any) -> Optional[float]:
        if value is None:
            return None
        if isinstance(value, bool):
            return float(int(value))
        if isinstance(value, str) and value.strip() == "":
            return 0.0
        try:
            return float(value)
        except (ValueError, TypeError):
            return None
