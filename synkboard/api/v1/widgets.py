"""
API endpoint serving dashboard widget data.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...core.db import get_db
from ...core.errors import QueryValidationError
from ...core.tenancy import TenantContext, get_tenant_context
from ...models import Entity
from ...schemas.widget import WidgetData, WidgetQuerySpec
from ...services.sql_store import SqlDirectory, SqlRecordStore
from ...services.widget_query import WidgetQueryService


router = APIRouter(prefix="/api/v1/widgets", tags=["widgets"])
logger = logging.getLogger("widgets_api")


@router.post("/data", response_model=WidgetData)
def widget_data(
    spec: WidgetQuerySpec,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> WidgetData:
    if spec.tenant_id != ctx.tenant_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    entity = db.get(Entity, spec.entity_id)
    if entity is None or entity.tenant_id != ctx.tenant_id:
        raise HTTPException(status_code=404, detail="Entity not found")
    service = WidgetQueryService(SqlDirectory(db), SqlRecordStore(db))
    try:
        return service.execute(spec)
    except QueryValidationError as exc:
        logger.info("Widget query rejected tenant=%s entity=%s err=%s", ctx.tenant_id, spec.entity_id, exc)
        raise HTTPException(status_code=422, detail=str(exc))
