import pytest

from synkboard.schemas.rule import RuleCondition
from synkboard.services.collaborators import FieldMeta
from synkboard.services.conditions import ConditionEvaluator, ConditionOperator, validate_conditions
from synkboard.services.values import fields_from_raw


evaluator = ConditionEvaluator()


def _check(operator: str, value, fields: dict, field: str = "amount"):
    condition = RuleCondition(field=field, operator=operator, value=value)
    return evaluator.evaluate(condition, fields_from_raw(fields))


@pytest.mark.parametrize("fields", [{}, {"amount": None}])
@pytest.mark.parametrize("operator", [op.value for op in ConditionOperator])
def test_null_field_only_matches_is_empty(operator, fields):
    check = _check(operator, 1, fields)
    if operator == "is_empty":
        assert check.matched is True
    elif operator == "is_not_empty":
        assert check.matched is False
        assert check.reason
    else:
        assert check.matched is False
        assert "null/undefined" in check.reason


def test_gt_numeric():
    assert _check("gt", 1000, {"amount": 1500}).matched is True


def test_gt_coerces_text_numerically():
    check = _check("gt", 1000, {"amount": "500"})
    assert check.matched is False
    assert check.reason == "500 <= 1000"
    assert _check("gt", "9", {"amount": "10"}).matched is True


def test_ordered_comparison_with_non_number_is_false():
    assert _check("lt", 10, {"amount": "abc"}).matched is False
    assert _check("gte", "n/a", {"amount": 5}).matched is False


def test_lte_and_gte_boundaries():
    assert _check("gte", 10, {"amount": 10}).matched is True
    assert _check("lte", 10, {"amount": 10}).matched is True
    assert _check("lt", 10, {"amount": 10}).reason == "10 >= 10"


def test_contains_is_case_insensitive():
    assert _check("contains", "URGENT", {"note": "this is urgent"}, field="note").matched is True
    check = _check("not_contains", "URGENT", {"note": "this is urgent"}, field="note")
    assert check.matched is False


def test_in_wraps_scalar():
    assert _check("in", "a", {"status": "a"}, field="status").matched is True
    check = _check("in", ["b", "c"], {"status": "a"}, field="status")
    assert check.matched is False
    assert check.reason == "'a' not in [b, c]"
    assert _check("not_in", ["b", "c"], {"status": "a"}, field="status").matched is True


def test_equals_is_strict():
    assert _check("equals", 1, {"amount": 1}).matched is True
    assert _check("equals", "1", {"amount": 1}).matched is False
    assert _check("not_equals", "1", {"amount": 1}).matched is True
    assert _check("equals", True, {"amount": 1}).matched is False


def test_is_empty_on_whitespace():
    assert _check("is_empty", None, {"note": "   "}, field="note").matched is True
    assert _check("is_not_empty", None, {"note": "x"}, field="note").matched is True


def test_changed_always_matches():
    condition = RuleCondition(field="amount", operator="changed")
    check = evaluator.evaluate(condition, fields_from_raw({"amount": 1}), fields_from_raw({"amount": 1}))
    assert check.matched is True


def test_unknown_operator_is_a_non_match():
    check = _check("matches_regex", ".*", {"amount": 1})
    assert check.matched is False
    assert check.reason == "Unknown operator: matches_regex"


def test_evaluate_all_keeps_order_and_and_semantics():
    conditions = [
        RuleCondition(field="amount", operator="gt", value=100),
        RuleCondition(field="status", operator="equals", value="open"),
        RuleCondition(field="owner", operator="is_not_empty"),
    ]
    result = evaluator.evaluate_all(conditions, fields_from_raw({"amount": 150, "status": "closed"}))
    assert result.matched is False
    assert result.conditions_met == 1
    assert [d.condition.field for d in result.details] == ["amount", "status", "owner"]
    assert [d.matched for d in result.details] == [True, False, False]


def test_empty_condition_list_is_vacuously_true():
    result = evaluator.evaluate_all([], fields_from_raw({"amount": 1}))
    assert result.matched is True
    assert result.conditions_met == 0
    assert result.details == []


def test_validate_conditions_against_field_types():
    fields = [FieldMeta(key="amount", type="number"), FieldMeta(key="title", type="text")]
    errors = validate_conditions(
        [
            RuleCondition(field="amount", operator="contains", value="1"),
            RuleCondition(field="title", operator="gt", value=1),
            RuleCondition(field="missing", operator="equals", value=1),
            RuleCondition(field="amount", operator="gte", value=1),
        ],
        fields,
    )
    assert len(errors) == 3
    assert "numeric field 'amount'" in errors[0]
    assert "text field 'title'" in errors[1]
    assert "missing" in errors[2]
