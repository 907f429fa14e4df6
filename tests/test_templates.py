import datetime
import json

import pytest

from synkboard.core.errors import TemplateError
from synkboard.services.rule_types import (
    SYSTEM_USER,
    EntityRef,
    EvaluationContext,
    RecordSnapshot,
    RuleRef,
    TenantRef,
)
from synkboard.services.templates import TemplateInterpolator, interpolate
from synkboard.services.values import fields_from_raw


def _context(fields: dict) -> EvaluationContext:
    return EvaluationContext(
        record=RecordSnapshot(
            id="rec-1",
            fields=fields_from_raw(fields),
            created_at=datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc),
        ),
        entity=EntityRef(id="ent-1", name="Deals", slug="deals"),
        user=SYSTEM_USER,
        rule=RuleRef(id="rule-1", name="Big deal"),
        tenant=TenantRef(id="t-1", name="Acme"),
    )


def test_interpolate_resolves_dotted_paths():
    ctx = _context({"amount": 1500, "owner": "Ana"})
    text = interpolate("{{ tenant.name }}: {{record.fields.owner}} closed {{record.fields.amount}}", ctx)
    assert text == "Acme: Ana closed 1500"


def test_system_user_is_available_to_templates():
    assert interpolate("by {{user.name}} <{{user.email}}>", _context({})) == "by System <system@synkboard.com>"


def test_missing_path_keeps_placeholder():
    ctx = _context({"amount": 1})
    assert interpolate("x={{record.fields.nope}} y={{tenant.id}}", ctx) == "x={{record.fields.nope}} y=t-1"


def test_null_value_renders_null():
    assert interpolate("{{record.fields.owner}}", _context({"owner": None})) == "null"


def test_payload_round_trip_is_structurally_identical():
    ctx = _context({"amount": 1500, "owner": "Ana"})
    payload = {
        "record": "{{record.id}}",
        "meta": {"tenant": "{{tenant.name}}", "tags": ["{{entity.slug}}", "static"]},
        "count": 3,
        "flag": True,
    }
    rendered = TemplateInterpolator().interpolate_payload(payload, ctx)
    assert rendered == {
        "record": "rec-1",
        "meta": {"tenant": "Acme", "tags": ["deals", "static"]},
        "count": 3,
        "flag": True,
    }
    assert json.loads(json.dumps(rendered)) == rendered


def test_payload_none_is_empty_object():
    assert TemplateInterpolator().interpolate_payload(None, _context({})) == {}


def test_payload_that_breaks_json_raises_template_error():
    ctx = _context({"quote": 'say "hi"'})
    with pytest.raises(TemplateError):
        TemplateInterpolator().interpolate_payload({"text": "{{record.fields.quote}}"}, ctx)
