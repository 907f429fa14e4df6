"""
Record create/update path.

The record is committed first and rules run afterwards. Nothing the rule
engine does can roll back or fail the write; errors are logged and the
caller gets the stored record with a triggered count of 0.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import Entity, EntityField, EntityRecord, User
from .rule_engine import RuleEngine
from .rule_types import RecordSnapshot
from .sql_store import SqlDirectory, SqlRuleRepository
from .values import fields_from_raw


logger = logging.getLogger("record_ingest")


class RecordNotFound(LookupError):
    pass


def default_rule_engine(db: Session) -> RuleEngine:
    return RuleEngine(SqlRuleRepository(db), SqlDirectory(db))


def _get_entity(db: Session, tenant_id: str, entity_id: str) -> Entity:
    entity = db.get(Entity, entity_id)
    if entity is None or entity.tenant_id != tenant_id:
        raise RecordNotFound("Entity not found")
    return entity


def _missing_required(db: Session, entity_id: str, fields: Dict[str, Any]) -> list[str]:
    required = (
        db.query(EntityField.key)
        .filter(EntityField.entity_id == entity_id, EntityField.is_required.is_(True))
        .all()
    )
    return [key for (key,) in required if fields.get(key) in (None, "")]


def _snapshot(record: EntityRecord) -> RecordSnapshot:
    return RecordSnapshot(
        id=record.id,
        fields=fields_from_raw(record.fields),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _run_rules(
    db: Session,
    engine: Optional[RuleEngine],
    record: EntityRecord,
    operation: str,
    user_id: Optional[str],
    previous: Optional[Dict[str, Any]] = None,
) -> int:
    engine = engine or default_rule_engine(db)
    try:
        batch = engine.evaluate_all_rules_for_record(
            record.tenant_id,
            record.entity_id,
            _snapshot(record),
            operation,
            user_id=user_id,
            previous_fields=fields_from_raw(previous) if previous is not None else None,
        )
    except Exception as exc:
        logger.exception(
            "Rule evaluation failed tenant=%s entity=%s record=%s operation=%s err=%s",
            record.tenant_id,
            record.entity_id,
            record.id,
            operation,
            exc,
        )
        db.rollback()
        return 0
    return batch.triggered_count


def create_record(
    db: Session,
    *,
    tenant_id: str,
    entity_id: str,
    fields: Dict[str, Any],
    user_id: Optional[str] = None,
    engine: Optional[RuleEngine] = None,
) -> Tuple[EntityRecord, int]:
    """Store a new record, then evaluate the entity's create rules."""
    _get_entity(db, tenant_id, entity_id)
    missing = _missing_required(db, entity_id, fields)
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")

    creator = user_id if user_id and db.get(User, user_id) is not None else None
    record = EntityRecord(tenant_id=tenant_id, entity_id=entity_id, fields=dict(fields), created_by=creator)
    db.add(record)
    db.commit()
    db.refresh(record)

    triggered = _run_rules(db, engine, record, "create", user_id)
    return record, triggered


def update_record(
    db: Session,
    *,
    tenant_id: str,
    entity_id: str,
    record_id: str,
    fields: Dict[str, Any],
    user_id: Optional[str] = None,
    engine: Optional[RuleEngine] = None,
) -> Tuple[EntityRecord, int]:
    """Replace a record's fields, then evaluate the entity's update rules."""
    _get_entity(db, tenant_id, entity_id)
    record = db.get(EntityRecord, record_id)
    if record is None or record.tenant_id != tenant_id or record.entity_id != entity_id:
        raise RecordNotFound("Record not found")
    missing = _missing_required(db, entity_id, fields)
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")

    previous = dict(record.fields or {})
    record.fields = dict(fields)
    db.commit()
    db.refresh(record)

    triggered = _run_rules(db, engine, record, "update", user_id, previous)
    return record, triggered
