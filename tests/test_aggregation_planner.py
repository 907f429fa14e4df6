import datetime

import pytest

from synkboard.core.errors import QueryValidationError
from synkboard.schemas.widget import WidgetQuerySpec
from synkboard.services.aggregation import AggregationPlanner, ChartPlan, KpiPlan, ListPlan, TablePlan
from synkboard.services.collaborators import FieldMeta


NOW = datetime.datetime(2024, 6, 15, 12, 0, tzinfo=datetime.timezone.utc)

FIELDS = [
    FieldMeta(key="amount", type="number", name="Amount"),
    FieldMeta(key="stage", type="select", name="Stage"),
    FieldMeta(key="title", type="text", name="Title"),
    FieldMeta(key="notes", type="text", is_filterable=False, is_sortable=False),
]

planner = AggregationPlanner(clock=lambda: NOW)


def _spec(**kwargs) -> WidgetQuerySpec:
    base = {"tenant_id": "t-1", "entity_id": "ent-1", "widget_type": "kpi"}
    base.update(kwargs)
    return WidgetQuerySpec(**base)


def test_sum_without_target_field_is_rejected():
    with pytest.raises(QueryValidationError, match="sum requires target_field"):
        planner.plan(_spec(metric_type="sum"), FIELDS)


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"widget_type": "gauge"}, "Unsupported widget type"),
        ({"metric_type": "median"}, "Unsupported metric type"),
        ({"metric_type": "avg", "target_field": "revenue"}, "Unknown target_field"),
        ({"widget_type": "bar", "group_by": "stage", "target_field": "revenue"}, "Unknown target_field"),
        ({"widget_type": "bar"}, "require group_by"),
        ({"widget_type": "pie", "group_by": "region"}, "Unknown group_by field"),
        ({"filters": {"region": "EU"}}, "Unknown filter field"),
        ({"filters": {"notes": "x"}}, "not filterable"),
        ({"widget_type": "table", "sort_by": "notes"}, "not sortable"),
        ({"widget_type": "table", "columns": ["amount", "nope"]}, "Unknown column"),
        ({"widget_type": "list"}, "require title_field"),
        ({"widget_type": "bar", "group_by": "stage", "limit": 51}, "limit must be between 1 and 50"),
        ({"widget_type": "list", "title_field": "title", "limit": 21}, "limit must be between 1 and 20"),
        ({"widget_type": "table", "limit": 2}, "page size must be between 5 and 100"),
        ({"show_trend": True, "trend_period_days": 0}, "trend_period_days"),
    ],
)
def test_invalid_configs_are_rejected(kwargs, message):
    with pytest.raises(QueryValidationError, match=message):
        planner.plan(_spec(**kwargs), FIELDS)


def test_inverted_date_range_is_rejected():
    spec = _spec(date_range={"start": NOW, "end": NOW - datetime.timedelta(days=1)})
    with pytest.raises(QueryValidationError):
        planner.plan(spec, FIELDS)


def test_blank_filters_are_dropped():
    plan = planner.plan(_spec(filters={"stage": "won", "title": ""}), FIELDS)
    assert isinstance(plan, KpiPlan)
    assert [(f.key, f.value) for f in plan.value_query.predicate.filters] == [("stage", "won")]


def test_chart_defaults():
    plan = planner.plan(_spec(widget_type="bar", group_by="stage", metric_type="sum", target_field="amount"), FIELDS)
    assert isinstance(plan, ChartPlan)
    assert plan.query.grouped
    assert plan.query.limit == 10
    assert plan.query.sort_order == "desc"
    assert plan.query.target_field == "amount"


def test_kpi_trend_windows_follow_clock():
    plan = planner.plan(_spec(show_trend=True, trend_period_days=7, filters={"stage": "won"}), FIELDS)
    current = plan.current_query.predicate
    previous = plan.previous_query.predicate
    assert current.start == NOW - datetime.timedelta(days=7)
    assert current.end == NOW and current.end_inclusive
    assert previous.start == NOW - datetime.timedelta(days=14)
    assert previous.end == current.start and not previous.end_inclusive
    assert previous.filters == current.filters == plan.value_query.predicate.filters


def test_table_pagination(monkeypatch):
    plan = planner.plan(
        _spec(widget_type="table", columns=["title", "amount"], pagination={"page": 3, "limit": 10}),
        FIELDS,
    )
    assert isinstance(plan, TablePlan)
    assert plan.page == 3
    assert plan.page_size == 10
    assert plan.query.offset == 20
    assert [c.key for c in plan.columns] == ["title", "amount"]

    monkeypatch.setenv("API_MAX_PAGE_SIZE", "25")
    capped = planner.plan(_spec(widget_type="table", limit=80), FIELDS)
    assert capped.page_size == 25


def test_table_default_page_size():
    plan = planner.plan(_spec(widget_type="table"), FIELDS)
    assert (plan.page, plan.page_size, plan.query.offset) == (1, 20, 0)


def test_list_plan():
    plan = planner.plan(
        _spec(widget_type="list", title_field="title", subtitle_field="stage", sort_by="amount", sort_order="asc"),
        FIELDS,
    )
    assert isinstance(plan, ListPlan)
    assert plan.query.limit == 10
    assert plan.query.sort_by == "amount"
    assert plan.query.sort_order == "asc"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"filters": {'say "hi"': "x"}},
        {"widget_type": "bar", "group_by": 'say "hi"'},
        {"metric_type": "max", "target_field": 'say "hi"'},
        {"widget_type": "table", "sort_by": 'say "hi"'},
    ],
)
def test_quoted_field_keys_cannot_be_queried(kwargs):
    fields = FIELDS + [FieldMeta(key='say "hi"', type="number")]
    with pytest.raises(QueryValidationError, match="cannot be queried"):
        planner.plan(_spec(**kwargs), fields)


def test_count_ignores_valid_target_field():
    plan = planner.plan(_spec(widget_type="bar", group_by="stage", target_field="amount"), FIELDS)
    assert plan.query.metric == "count"
    assert plan.query.target_field is None
