"""
SQLAlchemy implementations of the engine collaborators.

Field keys reach SQL only as bound parameters inside the `json_ops`
constructs, and only after the planner matched them against EntityField
metadata. Aggregates use `json_number`, which yields NULL for missing or
non-numeric values so they drop out of SUM/AVG/MIN/MAX instead of counting
as zero.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Entity, EntityField, EntityRecord, Rule, RuleLog, Tenant, User
from ..models.json_ops import json_matches, json_number, json_value
from ..schemas.widget import AggregateRow
from .aggregation import AggregateQuery, RecordPageQuery, RecordPredicate
from .collaborators import Directory, FieldMeta, RecordStore, RuleRepository
from .rule_types import EntityRef, RuleDefinition, TenantRef, UserRef
from .values import Value


logger = logging.getLogger("sql_store")

_AGGREGATES = {
    "sum": func.sum,
    "avg": func.avg,
    "min": func.min,
    "max": func.max,
}


class SqlRuleRepository(RuleRepository):
    def __init__(self, db: Session) -> None:
        self.db = db

    def fetch_active_rules(self, tenant_id: str, entity_id: str, operation: str) -> List[RuleDefinition]:
        rows = (
            self.db.query(Rule)
            .filter(
                Rule.tenant_id == tenant_id,
                Rule.entity_id == entity_id,
                Rule.is_active.is_(True),
                Rule.run_on.in_([operation, "both"]),
            )
            .order_by(Rule.created_at.asc(), Rule.id.asc())
            .all()
        )
        # Conditions stay raw here; the engine validates them per rule.
        return [
            RuleDefinition(
                id=row.id,
                name=row.name,
                entity_id=row.entity_id,
                conditions=tuple(row.conditions or ()),
                actions=tuple(row.actions or ()),
                run_on=row.run_on,
                is_active=row.is_active,
            )
            for row in rows
        ]

    def persist_rule_execution_log(
        self,
        tenant_id: str,
        rule_id: str,
        record_id: str,
        status: str,
        duration_ms: float,
        output: Dict[str, Any],
    ) -> None:
        entry = RuleLog(
            tenant_id=tenant_id,
            rule_id=rule_id,
            record_id=record_id,
            status=status,
            duration_ms=duration_ms,
            output=json.loads(json.dumps(output, default=str)),
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class SqlDirectory(Directory):
    def __init__(self, db: Session) -> None:
        self.db = db

    def fetch_tenant(self, tenant_id: str) -> Optional[TenantRef]:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            return None
        return TenantRef(id=tenant.id, name=tenant.name)

    def fetch_user(self, user_id: str) -> Optional[UserRef]:
        user = self.db.get(User, user_id)
        if user is None:
            return None
        return UserRef(id=user.id, name=user.name, email=user.email)

    def fetch_entity(self, entity_id: str) -> Optional[EntityRef]:
        entity = self.db.get(Entity, entity_id)
        if entity is None:
            return None
        return EntityRef(id=entity.id, name=entity.name, slug=entity.slug)

    def fetch_entity_fields(self, entity_id: str) -> List[FieldMeta]:
        rows = (
            self.db.query(EntityField)
            .filter(EntityField.entity_id == entity_id)
            .order_by(EntityField.position.asc(), EntityField.id.asc())
            .all()
        )
        return [
            FieldMeta(
                key=row.key,
                type=row.type,
                is_filterable=bool(row.is_filterable),
                is_sortable=bool(row.is_sortable),
                name=row.name,
            )
            for row in rows
        ]


def _where(predicate: RecordPredicate) -> list:
    clauses = [
        EntityRecord.tenant_id == predicate.tenant_id,
        EntityRecord.entity_id == predicate.entity_id,
    ]
    if predicate.start is not None:
        clauses.append(EntityRecord.created_at >= predicate.start)
    if predicate.end is not None:
        if predicate.end_inclusive:
            clauses.append(EntityRecord.created_at <= predicate.end)
        else:
            clauses.append(EntityRecord.created_at < predicate.end)
    for item in predicate.filters:
        clauses.append(json_matches(EntityRecord.fields, item.key, json.dumps(item.value, default=str)))
    return clauses


class SqlRecordStore(RecordStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def run_aggregate(self, query: AggregateQuery) -> float | List[AggregateRow]:
        if query.grouped:
            return self._grouped(query)
        where = _where(query.predicate)
        if query.metric == "count":
            stmt = select(func.count()).select_from(EntityRecord).where(*where)
        else:
            target = json_number(EntityRecord.fields, query.target_field)
            stmt = select(_AGGREGATES[query.metric](target)).where(*where)
        value = self.db.execute(stmt).scalar()
        return float(value) if value is not None else 0.0

    def _grouped(self, query: AggregateQuery) -> List[AggregateRow]:
        columns = [json_value(EntityRecord.fields, query.group_by).label("label")]
        if query.metric != "count":
            columns.append(json_number(EntityRecord.fields, query.target_field).label("metric"))
        rows = select(*columns).where(*_where(query.predicate)).subquery()

        if query.metric == "count":
            measure = func.count().label("value")
            stmt = select(rows.c.label, measure).where(rows.c.label.is_not(None))
        else:
            measure = _AGGREGATES[query.metric](rows.c.metric).label("value")
            stmt = select(rows.c.label, measure).where(rows.c.label.is_not(None), rows.c.metric.is_not(None))

        order = measure.asc() if query.sort_order == "asc" else measure.desc()
        stmt = stmt.group_by(rows.c.label).order_by(order, rows.c.label.asc())
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        return [
            AggregateRow(label=Value.of(label).as_text(), value=float(value or 0))
            for label, value in self.db.execute(stmt).all()
        ]

    def fetch_page(self, query: RecordPageQuery) -> Tuple[Sequence[Dict[str, Any]], int]:
        where = _where(query.predicate)
        total = self.db.execute(select(func.count()).select_from(EntityRecord).where(*where)).scalar() or 0

        stmt = (
            select(EntityRecord, User.name)
            .outerjoin(User, User.id == EntityRecord.created_by)
            .where(*where)
        )
        if query.sort_by:
            key = json_value(EntityRecord.fields, query.sort_by)
            stmt = stmt.order_by(key.asc() if query.sort_order == "asc" else key.desc())
        stmt = stmt.order_by(EntityRecord.created_at.desc(), EntityRecord.id.asc())
        stmt = stmt.offset(query.offset).limit(query.limit)

        rows: List[Dict[str, Any]] = []
        for record, creator_name in self.db.execute(stmt).all():
            rows.append(
                {
                    "id": record.id,
                    "fields": dict(record.fields or {}),
                    "created_at": record.created_at,
                    "created_by": creator_name,
                }
            )
        return rows, int(total)
