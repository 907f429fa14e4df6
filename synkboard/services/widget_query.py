"""
Widget data service: plan a widget configuration, run it and shape the result.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from ..core.errors import QueryValidationError
from ..core.pagination import page_count
from ..schemas.widget import (
    ChartData,
    KpiData,
    ListData,
    ListItem,
    PageInfo,
    TableColumn,
    TableData,
    WidgetData,
    WidgetQuerySpec,
)
from .aggregation import AggregationPlanner, ChartPlan, KpiPlan, ListPlan, TablePlan
from .collaborators import Directory, RecordStore
from .trends import TrendCalculator


logger = logging.getLogger("widget_query")

SYSTEM_COLUMNS = (
    TableColumn(key="id", label="ID", type="text"),
    TableColumn(key="created_at", label="Created", type="date"),
    TableColumn(key="created_by", label="Created By", type="text"),
)


class WidgetQueryService:
    def __init__(
        self,
        directory: Directory,
        store: RecordStore,
        planner: Optional[AggregationPlanner] = None,
        trends: Optional[TrendCalculator] = None,
    ) -> None:
        self.directory = directory
        self.store = store
        self.planner = planner or AggregationPlanner()
        self.trends = trends or TrendCalculator()

    def execute(self, spec: WidgetQuerySpec) -> WidgetData:
        started = time.perf_counter()
        entity = self.directory.fetch_entity(spec.entity_id)
        if entity is None:
            raise QueryValidationError("Entity not found")
        fields = self.directory.fetch_entity_fields(spec.entity_id)
        plan = self.planner.plan(spec, fields)
        try:
            if isinstance(plan, KpiPlan):
                return self._kpi(plan)
            if isinstance(plan, ChartPlan):
                return self._chart(plan)
            if isinstance(plan, TablePlan):
                return self._table(plan)
            return self._list(plan)
        finally:
            logger.debug(
                "Widget query executed tenant=%s entity=%s widget_type=%s duration_ms=%.3f",
                spec.tenant_id,
                spec.entity_id,
                spec.widget_type,
                (time.perf_counter() - started) * 1000.0,
            )

    def _kpi(self, plan: KpiPlan) -> KpiData:
        value = self.store.run_aggregate(plan.value_query)
        trend = None
        if plan.current_query is not None and plan.previous_query is not None:
            current = self.store.run_aggregate(plan.current_query)
            previous = self.store.run_aggregate(plan.previous_query)
            trend = self.trends.trend(current, previous, plan.trend_period_days)
        return KpiData(value=value, trend=trend)

    def _chart(self, plan: ChartPlan) -> ChartData:
        rows = self.store.run_aggregate(plan.query)
        # Sum of the returned groups only, not of every group in the entity.
        total = sum(row.value for row in rows)
        return ChartData(widget_type=plan.widget_type, data=list(rows), total=total)

    def _table(self, plan: TablePlan) -> TableData:
        records, total = self.store.fetch_page(plan.query)
        columns = list(SYSTEM_COLUMNS) + [
            TableColumn(key=meta.key, label=meta.label, type=meta.type) for meta in plan.columns
        ]
        rows: List[Dict[str, Any]] = []
        for record in records:
            row: Dict[str, Any] = {
                "id": record["id"],
                "created_at": record["created_at"],
                "created_by": record.get("created_by"),
            }
            values = record.get("fields") or {}
            for meta in plan.columns:
                row[meta.key] = values.get(meta.key)
            rows.append(row)
        return TableData(
            columns=columns,
            rows=rows,
            pagination=PageInfo(
                page=plan.page,
                limit=plan.page_size,
                total=total,
                pages=page_count(total, plan.page_size),
            ),
        )

    def _list(self, plan: ListPlan) -> ListData:
        records, total = self.store.fetch_page(plan.query)
        items: List[ListItem] = []
        for record in records:
            values = record.get("fields") or {}
            title = values.get(plan.title_field)
            if title is None or title == "":
                title = "Untitled"
            metadata: Dict[str, Any] = {"created_at": record["created_at"]}
            metadata.update(values)
            items.append(
                ListItem(
                    id=record["id"],
                    title=title,
                    subtitle=values.get(plan.subtitle_field) if plan.subtitle_field else None,
                    metadata=metadata,
                )
            )
        return ListData(items=items, total=total)
