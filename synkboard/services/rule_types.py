"""
Data carried through the rule engine.

Everything here is immutable once built: the evaluation context is the only
source for template substitution, and results are never mutated after the
engine hands them back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..schemas.rule import RuleCondition
from .values import Value, fields_to_python


@dataclass(frozen=True)
class RecordSnapshot:
    id: str
    fields: Mapping[str, Value]
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class EntityRef:
    id: str
    name: str
    slug: str


@dataclass(frozen=True)
class UserRef:
    id: str
    name: str
    email: str


SYSTEM_USER = UserRef(id="system", name="System", email="system@synkboard.com")


@dataclass(frozen=True)
class RuleRef:
    id: str
    name: str


@dataclass(frozen=True)
class TenantRef:
    id: str
    name: str


@dataclass(frozen=True)
class EvaluationContext:
    record: RecordSnapshot
    entity: EntityRef
    user: UserRef
    rule: RuleRef
    tenant: TenantRef

    def as_scope(self) -> Dict[str, Any]:
        """Nested plain-dict view used to resolve ``{{dotted.paths}}``."""
        record: Dict[str, Any] = {
            "id": self.record.id,
            "fields": fields_to_python(self.record.fields),
            "created_at": self.record.created_at,
        }
        if self.record.updated_at is not None:
            record["updated_at"] = self.record.updated_at
        return {
            "record": record,
            "entity": {"id": self.entity.id, "name": self.entity.name, "slug": self.entity.slug},
            "user": {"id": self.user.id, "name": self.user.name, "email": self.user.email},
            "rule": {"id": self.rule.id, "name": self.rule.name},
            "tenant": {"id": self.tenant.id, "name": self.tenant.name},
        }


@dataclass(frozen=True)
class RuleDefinition:
    """Read-only view of a stored rule. Conditions and actions may still be raw mappings."""

    id: str
    name: str
    entity_id: str
    conditions: Sequence[RuleCondition] = ()
    actions: Sequence[Any] = ()
    run_on: str = "both"
    is_active: bool = True


@dataclass(frozen=True)
class ActionResult:
    action_type: str
    success: bool
    duration_ms: float
    error: Optional[str] = None
    output: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "action_type": self.action_type,
            "success": self.success,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.output is not None:
            data["output"] = self.output
        return data


@dataclass(frozen=True)
class EvaluationResult:
    matched: bool
    conditions_met: int
    total_conditions: int
    execution_time_ms: float
    actions_executed: int
    actions_failed: int
    output: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "conditions_met": self.conditions_met,
            "total_conditions": self.total_conditions,
            "execution_time_ms": self.execution_time_ms,
            "actions_executed": self.actions_executed,
            "actions_failed": self.actions_failed,
            "output": self.output,
        }


@dataclass(frozen=True)
class RuleOutcome:
    """One rule's result for one record event, tagged for the execution log."""

    rule_id: str
    status: str  # matched | skipped | failed
    result: EvaluationResult
    error: Optional[str] = None


@dataclass(frozen=True)
class RuleBatchResult:
    triggered_count: int
    results: List[RuleOutcome] = field(default_factory=list)
