"""
Rule engine for SynkBoard records.

Rules are evaluated when a record is created or updated. Each rule is a
single-shot computation: its conditions are ANDed against the record's
fields and, only when all of them hold, its actions run one after another
in declaration order. Rules for one record run sequentially so the
execution log keeps the order in which they were applied.

Nothing here may fail the write that triggered it. Collaborator failures
are confined to the rule being evaluated, logged, and recorded as a
``failed`` execution.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..core.errors import CollaboratorError, guarded_call, log_exception
from ..schemas.rule import RuleCondition, rule_conditions_adapter
from .actions import ActionExecutor, action_type_of
from .collaborators import Directory, RuleRepository
from .conditions import ConditionEvaluator
from .rule_types import (
    SYSTEM_USER,
    ActionResult,
    EntityRef,
    EvaluationContext,
    EvaluationResult,
    RecordSnapshot,
    RuleBatchResult,
    RuleDefinition,
    RuleOutcome,
    RuleRef,
    TenantRef,
    UserRef,
)
from .values import Value, fields_from_raw


logger = logging.getLogger("rule_engine")

STATUS_MATCHED = "matched"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


def _parse_conditions(conditions: Sequence[Any]) -> List[RuleCondition]:
    """Stored conditions are raw JSON; a malformed document fails only its own rule."""
    if all(isinstance(c, RuleCondition) for c in conditions):
        return list(conditions)
    return rule_conditions_adapter.validate_python(list(conditions))


class RuleEngine:
    def __init__(
        self,
        rules: RuleRepository,
        directory: Directory,
        executor: Optional[ActionExecutor] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ) -> None:
        self.rules = rules
        self.directory = directory
        self.executor = executor or ActionExecutor()
        self.evaluator = evaluator or ConditionEvaluator()

    # ------------------------------------------------------------------
    def evaluate_rule(
        self,
        rule: RuleDefinition,
        context: EvaluationContext,
        previous_fields: Optional[Mapping[str, Value]] = None,
    ) -> EvaluationResult:
        started = time.perf_counter()
        rule_conditions = _parse_conditions(rule.conditions)
        conditions = self.evaluator.evaluate_all(rule_conditions, context.record.fields, previous_fields)
        condition_details = [detail.to_dict() for detail in conditions.details]

        if not conditions.matched:
            return EvaluationResult(
                matched=False,
                conditions_met=conditions.conditions_met,
                total_conditions=len(rule_conditions),
                execution_time_ms=_elapsed_ms(started),
                actions_executed=0,
                actions_failed=0,
                output={"condition_details": condition_details},
            )

        action_results: List[ActionResult] = []
        executed = 0
        failed = 0
        for action in rule.actions:
            try:
                result = self.executor.execute(action, context)
            except Exception as exc:
                result = ActionResult(
                    action_type=action_type_of(action),
                    success=False,
                    duration_ms=0.0,
                    error=str(exc),
                )
            action_results.append(result)
            if result.success:
                executed += 1
            else:
                failed += 1

        return EvaluationResult(
            matched=True,
            conditions_met=conditions.conditions_met,
            total_conditions=len(rule_conditions),
            execution_time_ms=_elapsed_ms(started),
            actions_executed=executed,
            actions_failed=failed,
            output={
                "condition_details": condition_details,
                "action_results": [r.to_dict() for r in action_results],
            },
        )

    # ------------------------------------------------------------------
    def evaluate_all_rules_for_record(
        self,
        tenant_id: str,
        entity_id: str,
        record: RecordSnapshot,
        operation: str,
        user_id: Optional[str] = None,
        previous_fields: Optional[Mapping[str, Value]] = None,
    ) -> RuleBatchResult:
        """
        Evaluate every active rule of an entity for one create/update event.

        Returns the number of rules whose conditions matched and one outcome
        per rule, in the order the repository returned them.
        """
        try:
            rules = self.rules.fetch_active_rules(tenant_id, entity_id, operation)
        except Exception as exc:
            log_exception(
                logger,
                "Failed to fetch rules for record",
                extra={"tenant": tenant_id, "entity": entity_id, "record": record.id, "operation": operation},
                exc=exc,
            )
            return RuleBatchResult(triggered_count=0, results=[])

        if not rules:
            return RuleBatchResult(triggered_count=0, results=[])

        try:
            tenant, entity = self._load_scope(tenant_id, entity_id)
        except CollaboratorError as exc:
            log_exception(logger, "Rule evaluation aborted", extra={"tenant": tenant_id, "record": record.id}, exc=exc)
            outcomes = [self._failed(tenant_id, rule, record, str(exc)) for rule in rules]
            return RuleBatchResult(triggered_count=0, results=outcomes)

        user = self._load_user(user_id)
        outcomes: List[RuleOutcome] = []
        triggered = 0
        for rule in rules:
            context = EvaluationContext(
                record=record,
                entity=entity,
                user=user,
                rule=RuleRef(id=rule.id, name=rule.name),
                tenant=tenant,
            )
            try:
                result = self.evaluate_rule(rule, context, previous_fields)
            except Exception as exc:
                log_exception(
                    logger,
                    "Rule execution failed",
                    extra={"tenant": tenant_id, "rule": rule.id, "record": record.id},
                    exc=exc,
                )
                outcomes.append(self._failed(tenant_id, rule, record, str(exc)))
                continue

            status = STATUS_MATCHED if result.matched else STATUS_SKIPPED
            if result.matched:
                triggered += 1
            self._persist(tenant_id, rule.id, record.id, status, result.execution_time_ms, result.output)
            self._log_execution(tenant_id, rule.id, record.id, status, result)
            outcomes.append(RuleOutcome(rule_id=rule.id, status=status, result=result))

        return RuleBatchResult(triggered_count=triggered, results=outcomes)

    # ------------------------------------------------------------------
    def test_rule(
        self,
        conditions: Sequence[RuleCondition],
        actions: Sequence[Any],
        test_data: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Preview a rule against sample fields without running any action."""
        outcome = self.evaluator.evaluate_all(conditions, fields_from_raw(test_data))
        return {
            "matched": outcome.matched,
            "conditions_met": outcome.conditions_met,
            "total_conditions": len(conditions),
            "actions_would_execute": len(actions) if outcome.matched else 0,
            "evaluation_details": [detail.to_dict() for detail in outcome.details],
        }

    # ------------------------------------------------------------------
    def _load_scope(self, tenant_id: str, entity_id: str) -> tuple[TenantRef, EntityRef]:
        try:
            tenant = self.directory.fetch_tenant(tenant_id)
            entity = self.directory.fetch_entity(entity_id)
        except Exception as exc:
            raise CollaboratorError(f"Directory lookup failed: {exc}") from exc
        if tenant is None:
            raise CollaboratorError("Tenant not found")
        if entity is None:
            raise CollaboratorError("Entity not found")
        return tenant, entity

    def _load_user(self, user_id: Optional[str]) -> UserRef:
        if not user_id:
            return SYSTEM_USER
        try:
            user = self.directory.fetch_user(user_id)
        except Exception as exc:
            logger.warning("User lookup failed user=%s err=%s; using system user", user_id, exc)
            return SYSTEM_USER
        return user or SYSTEM_USER

    def _failed(self, tenant_id: str, rule: RuleDefinition, record: RecordSnapshot, error: str) -> RuleOutcome:
        result = EvaluationResult(
            matched=False,
            conditions_met=0,
            total_conditions=len(rule.conditions),
            execution_time_ms=0.0,
            actions_executed=0,
            actions_failed=0,
            output={"error": error},
        )
        self._persist(tenant_id, rule.id, record.id, STATUS_FAILED, 0.0, result.output)
        self._log_execution(tenant_id, rule.id, record.id, STATUS_FAILED, result)
        return RuleOutcome(rule_id=rule.id, status=STATUS_FAILED, result=result, error=error)

    def _persist(
        self,
        tenant_id: str,
        rule_id: str,
        record_id: str,
        status: str,
        duration_ms: float,
        output: Dict[str, Any],
    ) -> None:
        guarded_call(
            "Persist rule log",
            lambda: self.rules.persist_rule_execution_log(tenant_id, rule_id, record_id, status, duration_ms, output),
            logger=logger,
            context={"tenant": tenant_id, "rule": rule_id, "record": record_id, "status": status},
        )

    def _log_execution(
        self,
        tenant_id: str,
        rule_id: str,
        record_id: str,
        status: str,
        result: EvaluationResult,
    ) -> None:
        logger.info(
            "rule_execution tenant=%s rule=%s record=%s status=%s duration_ms=%s executed=%s failed=%s",
            tenant_id,
            rule_id,
            record_id,
            status,
            result.execution_time_ms,
            result.actions_executed,
            result.actions_failed,
        )
