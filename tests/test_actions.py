import datetime
import logging

from synkboard.services.actions import ActionExecutor
from synkboard.services.collaborators import HttpCallError, HttpClient, HttpResponse, NotificationSink
from synkboard.services.rule_types import (
    SYSTEM_USER,
    EntityRef,
    EvaluationContext,
    RecordSnapshot,
    RuleRef,
    TenantRef,
)
from synkboard.services.values import fields_from_raw


class RecordingHttp(HttpClient):
    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response or HttpResponse(status=200, body={"ok": True})
        self.error = error

    def call(self, method, url, headers, body, timeout_ms):
        self.calls.append({"method": method, "url": url, "headers": headers, "body": body, "timeout_ms": timeout_ms})
        if self.error is not None:
            raise self.error
        return self.response


class RecordingSink(NotificationSink):
    def __init__(self):
        self.items = []

    def record(self, **kwargs):
        self.items.append(kwargs)


def _context() -> EvaluationContext:
    return EvaluationContext(
        record=RecordSnapshot(
            id="rec-9",
            fields=fields_from_raw({"amount": 2500, "owner": "Ana"}),
            created_at=datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc),
        ),
        entity=EntityRef(id="ent-1", name="Deals", slug="deals"),
        user=SYSTEM_USER,
        rule=RuleRef(id="rule-1", name="Big deal"),
        tenant=TenantRef(id="t-1", name="Acme"),
    )


def test_webhook_interpolates_and_merges_headers():
    http = RecordingHttp(response=HttpResponse(status=500, body="down"))
    executor = ActionExecutor(http=http, default_timeout_ms=10000)
    result = executor.execute(
        {
            "type": "webhook",
            "url": "https://hooks.example.com/{{entity.slug}}/{{record.id}}",
            "headers": {"X-Token": "abc", "User-Agent": "custom"},
            "payload": {"amount": "{{record.fields.amount}}"},
        },
        _context(),
    )
    # A received response is a success even when it is not 2xx.
    assert result.success is True
    assert result.output == {"status_code": 500, "response_data": "down"}
    call = http.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://hooks.example.com/deals/rec-9"
    assert call["body"] == {"amount": "2500"}
    assert call["timeout_ms"] == 10000
    assert call["headers"]["Content-Type"] == "application/json"
    assert call["headers"]["User-Agent"] == "custom"
    assert call["headers"]["X-Token"] == "abc"


def test_webhook_timeout_is_captured():
    http = RecordingHttp(error=HttpCallError("timeout of 2000ms exceeded"))
    result = ActionExecutor(http=http).execute(
        {"type": "webhook", "url": "https://x.test", "timeout_ms": 2000},
        _context(),
    )
    assert result.success is False
    assert result.error == "timeout of 2000ms exceeded"
    assert http.calls[0]["timeout_ms"] == 2000


def test_notify_records_intent():
    sink = RecordingSink()
    result = ActionExecutor(http=RecordingHttp(), notifications=sink).execute(
        {"type": "notify", "message": "{{record.fields.owner}} closed a deal", "level": "warning"},
        _context(),
    )
    assert result.success is True
    assert sink.items[0]["message"] == "Ana closed a deal"
    assert sink.items[0]["channels"] == ["ui"]
    assert sink.items[0]["tenant_id"] == "t-1"


def test_tag_and_rate_log_intended_mutation(caplog):
    caplog.set_level(logging.INFO, logger="rule_actions")
    executor = ActionExecutor(http=RecordingHttp())
    tag = executor.execute({"type": "tag", "field": "labels", "value": "vip-{{record.fields.owner}}"}, _context())
    rate = executor.execute({"type": "rate", "field": "score", "value": 4}, _context())
    assert tag.success is True
    assert tag.output == {"field": "labels", "value": "vip-Ana", "operation": "set"}
    assert rate.success is True
    assert any("Rule tag action" in rec.message for rec in caplog.records)
    assert any("Rule rate action" in rec.message for rec in caplog.records)


def test_slack_defaults_and_fixed_timeout():
    http = RecordingHttp(response=HttpResponse(status=200, body="ok"))
    executor = ActionExecutor(http=http, slack_timeout_ms=10000)
    result = executor.execute(
        {"type": "slack", "webhook_url": "https://hooks.slack.test/1", "message": "Deal {{record.id}}"},
        _context(),
    )
    assert result.success is True
    call = http.calls[0]
    assert call["body"] == {
        "text": "Deal rec-9",
        "channel": None,
        "username": "SynkBoard",
        "icon_emoji": ":robot_face:",
    }
    assert call["timeout_ms"] == 10000


def test_slack_non_2xx_is_a_failure():
    http = RecordingHttp(response=HttpResponse(status=404, body="no_service"))
    result = ActionExecutor(http=http).execute(
        {"type": "slack", "webhook_url": "https://hooks.slack.test/1", "message": "x"},
        _context(),
    )
    assert result.success is False
    assert "404" in result.error


def test_malformed_action_never_raises():
    executor = ActionExecutor(http=RecordingHttp())
    bad_rate = executor.execute({"type": "rate", "field": "score", "value": 9}, _context())
    unknown = executor.execute({"type": "sms", "to": "123"}, _context())
    untyped = executor.execute({"url": "https://x.test"}, _context())
    assert bad_rate.success is False and bad_rate.action_type == "rate"
    assert unknown.success is False and unknown.action_type == "sms"
    assert untyped.success is False and untyped.action_type == "unknown"


def test_template_error_is_captured_as_failed_action():
    ctx = _context()
    ctx = EvaluationContext(
        record=RecordSnapshot(id="rec-9", fields=fields_from_raw({"owner": 'say "hi"'}), created_at=ctx.record.created_at),
        entity=ctx.entity,
        user=ctx.user,
        rule=ctx.rule,
        tenant=ctx.tenant,
    )
    http = RecordingHttp()
    result = ActionExecutor(http=http).execute(
        {"type": "webhook", "url": "https://x.test", "payload": {"v": "{{record.fields.owner}}"}},
        ctx,
    )
    assert result.success is False
    assert "not valid JSON" in result.error
    assert http.calls == []
