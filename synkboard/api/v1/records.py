"""
API endpoints for writing entity records.

Rules run after the write is committed; the response always carries the
stored record, with `triggered_rules` counting the rules that matched.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...core.db import get_db
from ...core.tenancy import TenantContext, get_tenant_context
from ...models import EntityRecord
from ...schemas.rule import RecordIn, RecordOut
from ...services.record_ingest import RecordNotFound, create_record, update_record


router = APIRouter(prefix="/api/v1/entities", tags=["records"])


def _record_out(record: EntityRecord, triggered: int) -> RecordOut:
    return RecordOut(
        id=record.id,
        entity_id=record.entity_id,
        fields=record.fields or {},
        created_at=record.created_at,
        updated_at=record.updated_at,
        triggered_rules=triggered,
    )


@router.post("/{entity_id}/records", response_model=RecordOut, status_code=201)
def create_entity_record(
    entity_id: str,
    payload: RecordIn,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> RecordOut:
    try:
        record, triggered = create_record(
            db,
            tenant_id=ctx.tenant_id,
            entity_id=entity_id,
            fields=payload.fields,
            user_id=ctx.user_id,
        )
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _record_out(record, triggered)


@router.put("/{entity_id}/records/{record_id}", response_model=RecordOut)
def update_entity_record(
    entity_id: str,
    record_id: str,
    payload: RecordIn,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> RecordOut:
    try:
        record, triggered = update_record(
            db,
            tenant_id=ctx.tenant_id,
            entity_id=entity_id,
            record_id=record_id,
            fields=payload.fields,
            user_id=ctx.user_id,
        )
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _record_out(record, triggered)
