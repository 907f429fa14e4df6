"""
Condition evaluation for automation rules.

A condition compares one record field against a rule-supplied value. The
evaluator never raises: an unknown operator or an unusable field is a
non-match with a reason, so a bad rule cannot abort a batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..core.errors import ConditionError
from ..schemas.rule import RuleCondition
from .values import Value


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    CHANGED = "changed"


NUMERIC_OPERATORS = {ConditionOperator.GT, ConditionOperator.LT, ConditionOperator.GTE, ConditionOperator.LTE}
TEXT_OPERATORS = {ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS}


@dataclass(frozen=True)
class ConditionCheck:
    matched: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ConditionDetail:
    condition: RuleCondition
    matched: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "condition": self.condition.model_dump(),
            "matched": self.matched,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ConditionSetResult:
    matched: bool
    conditions_met: int
    details: List[ConditionDetail] = field(default_factory=list)


def _parse_operator(raw: str) -> ConditionOperator:
    try:
        return ConditionOperator(raw)
    except ValueError:
        raise ConditionError(f"Unknown operator: {raw}") from None


def _compare(left: Optional[float], right: Optional[float], op: ConditionOperator) -> bool:
    # A side that is not a number makes every ordered comparison false.
    if left is None or right is None:
        return False
    if op is ConditionOperator.GT:
        return left > right
    if op is ConditionOperator.LT:
        return left < right
    if op is ConditionOperator.GTE:
        return left >= right
    return left <= right


_FAILED_COMPARISON = {
    ConditionOperator.GT: "<=",
    ConditionOperator.LT: ">=",
    ConditionOperator.GTE: "<",
    ConditionOperator.LTE: ">",
}


def _members(raw: Any) -> List[Value]:
    if isinstance(raw, (list, tuple)):
        return [Value.of(item) for item in raw]
    return [Value.of(raw)]


def _member_list(members: Iterable[Value]) -> str:
    return ", ".join(member.as_text() for member in members)


class ConditionEvaluator:
    """Evaluates rule conditions against a record's field map."""

    def evaluate(
        self,
        condition: RuleCondition,
        fields: Mapping[str, Value],
        previous_fields: Optional[Mapping[str, Value]] = None,
    ) -> ConditionCheck:
        name = condition.field
        current = fields.get(name)
        operator = condition.operator

        if current is None or current.is_null:
            if operator == ConditionOperator.IS_EMPTY.value:
                return ConditionCheck(True)
            if operator == ConditionOperator.IS_NOT_EMPTY.value:
                return ConditionCheck(False, f"Field '{name}' is empty")
            return ConditionCheck(False, f"Field '{name}' is null/undefined")

        try:
            op = _parse_operator(operator)
        except ConditionError as exc:
            return ConditionCheck(False, str(exc))

        expected = condition.value
        shown = current.as_text()

        if op is ConditionOperator.EQUALS:
            ok = current.strict_equals(expected)
            return ConditionCheck(ok, None if ok else f"{shown} !== {Value.of(expected).as_text()}")

        if op is ConditionOperator.NOT_EQUALS:
            ok = not current.strict_equals(expected)
            return ConditionCheck(ok, None if ok else f"{shown} === {Value.of(expected).as_text()}")

        if op in NUMERIC_OPERATORS:
            ok = _compare(current.as_number(), Value.of(expected).as_number(), op)
            if ok:
                return ConditionCheck(True)
            return ConditionCheck(False, f"{shown} {_FAILED_COMPARISON[op]} {Value.of(expected).as_text()}")

        if op in TEXT_OPERATORS:
            needle = Value.of(expected).as_text()
            found = needle.lower() in shown.lower()
            if op is ConditionOperator.CONTAINS:
                return ConditionCheck(found, None if found else f"'{shown}' does not contain '{needle}'")
            return ConditionCheck(not found, None if not found else f"'{shown}' contains '{needle}'")

        if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            members = _members(expected)
            present = any(current.strict_equals(member) for member in members)
            if op is ConditionOperator.IN:
                return ConditionCheck(present, None if present else f"'{shown}' not in [{_member_list(members)}]")
            return ConditionCheck(not present, None if not present else f"'{shown}' is in [{_member_list(members)}]")

        if op is ConditionOperator.IS_EMPTY:
            empty = current.is_empty()
            return ConditionCheck(empty, None if empty else f"Field '{name}' is not empty")

        if op is ConditionOperator.IS_NOT_EMPTY:
            empty = current.is_empty()
            return ConditionCheck(not empty, None if not empty else f"Field '{name}' is empty")

        # CHANGED: previous_fields is accepted but not compared yet.
        return ConditionCheck(True)

    def evaluate_all(
        self,
        conditions: Sequence[RuleCondition],
        fields: Mapping[str, Value],
        previous_fields: Optional[Mapping[str, Value]] = None,
    ) -> ConditionSetResult:
        """AND all conditions; details keep the input order."""
        details: List[ConditionDetail] = []
        for condition in conditions:
            check = self.evaluate(condition, fields, previous_fields)
            details.append(ConditionDetail(condition=condition, matched=check.matched, reason=check.reason))
        met = sum(1 for detail in details if detail.matched)
        return ConditionSetResult(matched=met == len(conditions), conditions_met=met, details=details)


def validate_conditions(conditions: Sequence[RuleCondition], entity_fields: Iterable[Any]) -> List[str]:
    """
    Check conditions against entity field metadata.

    Returns human-readable problems: unknown fields, text operators on number
    fields and numeric operators on text fields.
    """
    field_types = {f.key: f.type for f in entity_fields}
    errors: List[str] = []
    for condition in conditions:
        field_type = field_types.get(condition.field)
        if field_type is None:
            errors.append(f"Unknown field '{condition.field}'")
            continue
        try:
            op = ConditionOperator(condition.operator)
        except ValueError:
            errors.append(f"Unknown operator: {condition.operator}")
            continue
        if field_type == "number" and op in TEXT_OPERATORS:
            errors.append(f"Operator '{op.value}' not valid for numeric field '{condition.field}'")
        if field_type == "text" and op in NUMERIC_OPERATORS:
            errors.append(f"Operator '{op.value}' not valid for text field '{condition.field}'")
    return errors
