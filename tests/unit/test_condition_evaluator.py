"""Condition evaluator: operators and the left-fold combinator order"""
import pytest

from qcflow.domain.models import Condition
from qcflow.domain.enums import ConditionOperator as Op, LogicalOperator
from qcflow.engine import ConditionEvaluator


def cond(field, operator, value=None, logical=None) -> Condition:
    return Condition(field=field, operator=operator, value=value, logical_operator=logical)


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


class TestOperators:

    def test_empty_list_is_true(self, evaluator):
        assert evaluator.evaluate([], {"a": 1}) is True

    def test_equals_is_strict_about_bools(self, evaluator):
        assert evaluator.evaluate([cond("flag", Op.EQUALS, True)], {"flag": True})
        assert not evaluator.evaluate([cond("flag", Op.EQUALS, 1)], {"flag": True})
        assert not evaluator.evaluate([cond("count", Op.EQUALS, "1")], {"count": 1})

    def test_not_equals(self, evaluator):
        assert evaluator.evaluate([cond("priority", Op.NOT_EQUALS, "low")], {"priority": "high"})
        assert evaluator.evaluate([cond("missing", Op.NOT_EQUALS, "x")], {})

    def test_numeric_comparisons_coerce(self, evaluator):
        data = {"amount": "1500", "blank": ""}
        assert evaluator.evaluate([cond("amount", Op.GREATER_THAN, 1000)], data)
        assert not evaluator.evaluate([cond("amount", Op.LESS_THAN, 1000)], data)
        assert evaluator.evaluate([cond("blank", Op.LESS_THAN, 1)], data)

    def test_numeric_comparison_with_missing_or_text_is_false(self, evaluator):
        assert not evaluator.evaluate([cond("amount", Op.GREATER_THAN, 0)], {})
        assert not evaluator.evaluate([cond("amount", Op.GREATER_THAN, 0)], {"amount": "lots"})

    def test_contains_on_strings_and_lists(self, evaluator):
        assert evaluator.evaluate([cond("title", Op.CONTAINS, "urgent")], {"title": "very urgent fix"})
        assert evaluator.evaluate([cond("tags", Op.CONTAINS, "legal")], {"tags": ["legal", "hr"]})
        assert not evaluator.evaluate([cond("tags", Op.CONTAINS, "leg")], {"tags": ["legal"]})
        assert not evaluator.evaluate([cond("title", Op.CONTAINS, "x")], {})

    def test_in_and_not_in_need_a_list(self, evaluator):
        data = {"dept": "hr"}
        assert evaluator.evaluate([cond("dept", Op.IN, ["hr", "it"])], data)
        assert not evaluator.evaluate([cond("dept", Op.NOT_IN, ["hr", "it"])], data)
        assert evaluator.evaluate([cond("dept", Op.NOT_IN, ["finance"])], data)
        assert not evaluator.evaluate([cond("dept", Op.IN, "hr")], data)
        assert not evaluator.evaluate([cond("dept", Op.NOT_IN, "finance")], data)

    def test_is_empty_and_is_not_empty(self, evaluator):
        data = {"a": "", "b": [], "c": None, "d": "x", "e": 0}
        for field in ("a", "b", "c", "missing"):
            assert evaluator.evaluate([cond(field, Op.IS_EMPTY)], data), field
        assert evaluator.evaluate([cond("d", Op.IS_NOT_EMPTY)], data)
        assert evaluator.evaluate([cond("e", Op.IS_NOT_EMPTY)], data)

    def test_dot_path_lookup(self, evaluator):
        data = {"details": {"amount": 20}, "flat.key": "yes"}
        assert evaluator.evaluate([cond("details.amount", Op.GREATER_THAN, 10)], data)
        assert evaluator.evaluate([cond("flat.key", Op.EQUALS, "yes")], data)

    def test_none_data_behaves_like_empty(self, evaluator):
        assert evaluator.evaluate([cond("x", Op.IS_EMPTY)], None)


class TestLeftFold:

    def test_or_then_and_groups_left(self, evaluator):
        # [A(or), B(and), C] is ((A or B) and C)
        conditions = [
            cond("a", Op.EQUALS, 1, LogicalOperator.OR),
            cond("b", Op.EQUALS, 1, LogicalOperator.AND),
            cond("c", Op.EQUALS, 1),
        ]
        assert evaluator.evaluate(conditions, {"a": 1, "b": 0, "c": 1})
        assert not evaluator.evaluate(conditions, {"a": 1, "b": 0, "c": 0})

    def test_and_then_or_is_not_precedence_based(self, evaluator):
        # [A(and), B(or), C] is ((A and B) or C): C alone is enough
        conditions = [
            cond("a", Op.EQUALS, 1, LogicalOperator.AND),
            cond("b", Op.EQUALS, 1, LogicalOperator.OR),
            cond("c", Op.EQUALS, 1),
        ]
        assert evaluator.evaluate(conditions, {"a": 0, "b": 0, "c": 1})
        assert not evaluator.evaluate(conditions, {"a": 1, "b": 0, "c": 0})

    def test_missing_combinator_defaults_to_and(self, evaluator):
        conditions = [cond("a", Op.EQUALS, 1), cond("b", Op.EQUALS, 1)]
        assert not evaluator.evaluate(conditions, {"a": 1, "b": 2})

    def test_last_condition_operator_is_ignored(self, evaluator):
        conditions = [cond("a", Op.EQUALS, 1, LogicalOperator.OR)]
        assert not evaluator.evaluate(conditions, {"a": 2})
