"""
API endpoints for rule previews and rule execution logs.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ...core.db import get_db
from ...core.errors import ActionError
from ...core.pagination import DEFAULT_PAGE_SIZE, clamp_page_size, page_offset, set_pagination_headers
from ...core.tenancy import TenantContext, get_tenant_context
from ...models import Entity, RuleLog
from ...schemas.rule import RuleLogOut, RuleTestRequest, RuleTestResponse
from ...services.actions import parse_action
from ...services.conditions import validate_conditions
from ...services.record_ingest import default_rule_engine
from ...services.sql_store import SqlDirectory


router = APIRouter(prefix="/api/v1/rules", tags=["rules"])

LOG_STATUSES = {"matched", "skipped", "failed"}


@router.post("/test", response_model=RuleTestResponse)
def test_rule(
    payload: RuleTestRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> RuleTestResponse:
    warnings: List[str] = []
    if payload.entity_id:
        entity = db.get(Entity, payload.entity_id)
        if entity is None or entity.tenant_id != ctx.tenant_id:
            raise HTTPException(status_code=404, detail="Entity not found")
        fields = SqlDirectory(db).fetch_entity_fields(entity.id)
        warnings.extend(validate_conditions(payload.conditions, fields))
    for action in payload.actions:
        try:
            parse_action(action)
        except ActionError as exc:
            warnings.append(str(exc))

    preview = default_rule_engine(db).test_rule(payload.conditions, payload.actions, payload.test_data)
    return RuleTestResponse(**preview, warnings=warnings)


@router.get("/logs", response_model=List[RuleLogOut])
def list_rule_logs(
    response: Response,
    rule_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> List[RuleLogOut]:
    if status and status not in LOG_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unsupported status: {status}")
    page_size = clamp_page_size(limit)
    query = db.query(RuleLog).filter(RuleLog.tenant_id == ctx.tenant_id)
    if rule_id:
        query = query.filter(RuleLog.rule_id == rule_id)
    if status:
        query = query.filter(RuleLog.status == status)
    total = query.count()
    rows = (
        query.order_by(RuleLog.created_at.desc(), RuleLog.id.asc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
        .all()
    )
    set_pagination_headers(response, total=total, page=page, page_size=page_size)
    return [RuleLogOut.model_validate(row) for row in rows]
