"""
Pydantic schemas for widget queries and the data each widget type returns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


WidgetType = Literal["kpi", "bar", "line", "pie", "table", "list"]
MetricType = Literal["count", "sum", "avg", "min", "max"]
SortOrder = Literal["asc", "desc"]
TrendDirection = Literal["up", "down", "neutral"]


class DateRange(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)


class WidgetQuerySpec(BaseModel):
    """One widget-data request. Built per request and never persisted."""

    tenant_id: str
    entity_id: str
    # Validated by the planner so an unknown type is a typed rejection.
    widget_type: str
    metric_type: str = "count"
    target_field: Optional[str] = None
    group_by: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    date_range: Optional[DateRange] = None
    limit: Optional[int] = None
    sort_order: SortOrder = "desc"
    sort_by: Optional[str] = None
    pagination: Optional[Pagination] = None
    # kpi
    show_trend: bool = False
    trend_period_days: int = 7
    # table
    columns: List[str] = Field(default_factory=list)
    # list
    title_field: Optional[str] = None
    subtitle_field: Optional[str] = None


class TrendResult(BaseModel):
    value: float
    percentage: float
    direction: TrendDirection


class AggregateRow(BaseModel):
    label: str
    value: float


class KpiData(BaseModel):
    widget_type: Literal["kpi"] = "kpi"
    value: float
    trend: Optional[TrendResult] = None


class ChartData(BaseModel):
    widget_type: Literal["bar", "line", "pie"]
    data: List[AggregateRow]
    total: float


class TableColumn(BaseModel):
    key: str
    label: str
    type: str


class PageInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TableData(BaseModel):
    widget_type: Literal["table"] = "table"
    columns: List[TableColumn]
    rows: List[Dict[str, Any]]
    pagination: PageInfo


class ListItem(BaseModel):
    id: str
    title: Any
    subtitle: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ListData(BaseModel):
    widget_type: Literal["list"] = "list"
    items: List[ListItem]
    total: int


WidgetData = Union[KpiData, ChartData, TableData, ListData]
