"""
Widget query planning.

`AggregationPlanner.plan` checks a widget configuration against the entity's
field metadata and compiles it into a transport-neutral descriptor. Every
field key in a descriptor has been matched against an `EntityField`; the SQL
store never sees a name that did not pass through here. A configuration that
fails a check raises `QueryValidationError` and no query runs.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..core.errors import QueryValidationError
from ..core.pagination import DEFAULT_PAGE_SIZE, clamp_page_size, page_offset
from ..schemas.widget import WidgetQuerySpec
from .collaborators import FieldMeta


WIDGET_TYPES = ("kpi", "bar", "line", "pie", "table", "list")
CHART_TYPES = ("bar", "line", "pie")
METRIC_TYPES = ("count", "sum", "avg", "min", "max")
SORT_ORDERS = ("asc", "desc")

CHART_DEFAULT_LIMIT = 10
CHART_LIMIT_RANGE = (1, 50)
TABLE_PAGE_SIZE_RANGE = (5, 100)
LIST_DEFAULT_LIMIT = 10
LIST_LIMIT_RANGE = (1, 20)
TREND_PERIOD_RANGE = (1, 365)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FieldFilter:
    key: str
    value: Any


@dataclass(frozen=True)
class RecordPredicate:
    """Rows of one tenant's entity, optionally narrowed by creation time and field equality."""

    tenant_id: str
    entity_id: str
    filters: Tuple[FieldFilter, ...] = ()
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    end_inclusive: bool = True

    def window(self, start: datetime, end: datetime, *, end_inclusive: bool) -> "RecordPredicate":
        return replace(self, start=start, end=end, end_inclusive=end_inclusive)


@dataclass(frozen=True)
class AggregateQuery:
    predicate: RecordPredicate
    metric: str = "count"
    target_field: Optional[str] = None
    group_by: Optional[str] = None
    limit: Optional[int] = None
    sort_order: str = "desc"

    @property
    def grouped(self) -> bool:
        return self.group_by is not None


@dataclass(frozen=True)
class RecordPageQuery:
    predicate: RecordPredicate
    offset: int
    limit: int
    sort_by: Optional[str] = None
    sort_order: str = "desc"


@dataclass(frozen=True)
class KpiPlan:
    value_query: AggregateQuery
    current_query: Optional[AggregateQuery] = None
    previous_query: Optional[AggregateQuery] = None
    trend_period_days: int = 7


@dataclass(frozen=True)
class ChartPlan:
    widget_type: str
    query: AggregateQuery


@dataclass(frozen=True)
class TablePlan:
    columns: Tuple[FieldMeta, ...]
    page: int
    page_size: int
    query: RecordPageQuery


@dataclass(frozen=True)
class ListPlan:
    title_field: str
    subtitle_field: Optional[str]
    query: RecordPageQuery


WidgetPlan = Union[KpiPlan, ChartPlan, TablePlan, ListPlan]


def _in_range(name: str, value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    if value < low or value > high:
        raise QueryValidationError(f"{name} must be between {low} and {high}")
    return value


def _sql_key(meta: FieldMeta) -> str:
    # SQLite JSON paths quote the key and have no escape for the quote itself.
    if '"' in meta.key:
        raise QueryValidationError(f"Field '{meta.key}' cannot be queried")
    return meta.key


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class AggregationPlanner:
    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or _utcnow

    def plan(self, spec: WidgetQuerySpec, fields: Sequence[FieldMeta]) -> WidgetPlan:
        by_key: Dict[str, FieldMeta] = {f.key: f for f in fields}

        if spec.widget_type not in WIDGET_TYPES:
            raise QueryValidationError(f"Unsupported widget type: {spec.widget_type}")
        if spec.metric_type not in METRIC_TYPES:
            raise QueryValidationError(f"Unsupported metric type: {spec.metric_type}")
        if spec.sort_order not in SORT_ORDERS:
            raise QueryValidationError(f"Unsupported sort order: {spec.sort_order}")

        predicate = self._predicate(spec, by_key)

        if spec.widget_type == "kpi":
            return self._kpi(spec, by_key, predicate)
        if spec.widget_type in CHART_TYPES:
            return self._chart(spec, by_key, predicate)
        if spec.widget_type == "table":
            return self._table(spec, by_key, predicate)
        return self._list(spec, by_key, predicate)

    # ------------------------------------------------------------------
    def _predicate(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta]) -> RecordPredicate:
        filters: List[FieldFilter] = []
        for key, value in (spec.filters or {}).items():
            meta = by_key.get(key)
            if meta is None:
                raise QueryValidationError(f"Unknown filter field '{key}'")
            if not meta.is_filterable:
                raise QueryValidationError(f"Field '{key}' is not filterable")
            # Blank filter values are "no filter", as in the dashboard UI.
            if value is None or value == "":
                continue
            filters.append(FieldFilter(key=_sql_key(meta), value=value))

        start = end = None
        if spec.date_range is not None:
            start = _as_utc(spec.date_range.start)
            end = _as_utc(spec.date_range.end)
            if start is not None and end is not None and start > end:
                raise QueryValidationError("date_range.start must not be after date_range.end")

        return RecordPredicate(
            tenant_id=spec.tenant_id,
            entity_id=spec.entity_id,
            filters=tuple(filters),
            start=start,
            end=end,
        )

    def _require_field(self, by_key: Dict[str, FieldMeta], key: str, role: str) -> FieldMeta:
        meta = by_key.get(key)
        if meta is None:
            raise QueryValidationError(f"Unknown {role} '{key}'")
        return meta

    def _metric_target(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta]) -> Optional[str]:
        if not spec.target_field:
            if spec.metric_type == "count":
                return None
            raise QueryValidationError(f"{spec.metric_type} requires target_field")
        target = _sql_key(self._require_field(by_key, spec.target_field, "target_field"))
        return None if spec.metric_type == "count" else target

    def _sort_field(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta]) -> Optional[str]:
        if not spec.sort_by:
            return None
        meta = self._require_field(by_key, spec.sort_by, "sort field")
        if not meta.is_sortable:
            raise QueryValidationError(f"Field '{meta.key}' is not sortable")
        return _sql_key(meta)

    # ------------------------------------------------------------------
    def _kpi(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta], predicate: RecordPredicate) -> KpiPlan:
        target = self._metric_target(spec, by_key)
        value_query = AggregateQuery(predicate=predicate, metric=spec.metric_type, target_field=target)
        if not spec.show_trend:
            return KpiPlan(value_query=value_query)

        days = _in_range("trend_period_days", spec.trend_period_days, TREND_PERIOD_RANGE)
        now = _as_utc(self.clock())
        period = timedelta(days=days)
        period_start = now - period
        previous_start = period_start - period
        # Trend windows replace any configured date range; filters still apply.
        current = replace(value_query, predicate=predicate.window(period_start, now, end_inclusive=True))
        previous = replace(
            value_query,
            predicate=predicate.window(previous_start, period_start, end_inclusive=False),
        )
        return KpiPlan(
            value_query=value_query,
            current_query=current,
            previous_query=previous,
            trend_period_days=days,
        )

    def _chart(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta], predicate: RecordPredicate) -> ChartPlan:
        if not spec.group_by:
            raise QueryValidationError("Chart widgets require group_by field")
        group_by = _sql_key(self._require_field(by_key, spec.group_by, "group_by field"))
        target = self._metric_target(spec, by_key)
        limit = CHART_DEFAULT_LIMIT if spec.limit is None else _in_range("limit", spec.limit, CHART_LIMIT_RANGE)
        return ChartPlan(
            widget_type=spec.widget_type,
            query=AggregateQuery(
                predicate=predicate,
                metric=spec.metric_type,
                target_field=target,
                group_by=group_by,
                limit=limit,
                sort_order=spec.sort_order,
            ),
        )

    def _table(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta], predicate: RecordPredicate) -> TablePlan:
        columns = tuple(self._require_field(by_key, key, "column") for key in spec.columns)
        page = spec.pagination.page if spec.pagination else 1
        requested = None
        if spec.pagination and spec.pagination.limit is not None:
            requested = spec.pagination.limit
        elif spec.limit is not None:
            requested = spec.limit
        if requested is None:
            page_size = DEFAULT_PAGE_SIZE
        else:
            page_size = _in_range("page size", requested, TABLE_PAGE_SIZE_RANGE)
        page_size = clamp_page_size(page_size)
        return TablePlan(
            columns=columns,
            page=page,
            page_size=page_size,
            query=RecordPageQuery(
                predicate=predicate,
                offset=page_offset(page, page_size),
                limit=page_size,
                sort_by=self._sort_field(spec, by_key),
                sort_order=spec.sort_order,
            ),
        )

    def _list(self, spec: WidgetQuerySpec, by_key: Dict[str, FieldMeta], predicate: RecordPredicate) -> ListPlan:
        if not spec.title_field:
            raise QueryValidationError("List widgets require title_field")
        title = self._require_field(by_key, spec.title_field, "title_field").key
        subtitle = None
        if spec.subtitle_field:
            subtitle = self._require_field(by_key, spec.subtitle_field, "subtitle_field").key
        limit = LIST_DEFAULT_LIMIT if spec.limit is None else _in_range("limit", spec.limit, LIST_LIMIT_RANGE)
        return ListPlan(
            title_field=title,
            subtitle_field=subtitle,
            query=RecordPageQuery(
                predicate=predicate,
                offset=0,
                limit=limit,
                sort_by=self._sort_field(spec, by_key),
                sort_order=spec.sort_order,
            ),
        )
