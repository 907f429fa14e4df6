"""
Action execution for matched rules.

`ActionExecutor.execute` dispatches over the closed set of action variants
and always returns an `ActionResult`; no branch lets an exception reach the
caller.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from ..core.config import settings
from ..core.errors import ActionError
from ..schemas.rule import (
    NotifyAction,
    RateAction,
    SlackAction,
    TagAction,
    WebhookAction,
    rule_action_adapter,
)
from .collaborators import HttpCallError, HttpClient, LogNotificationSink, NotificationSink
from .http_client import RequestsHttpClient
from .rule_types import ActionResult, EvaluationContext
from .templates import TemplateInterpolator


logger = logging.getLogger("rule_actions")

SLACK_DEFAULT_USERNAME = "SynkBoard"
SLACK_DEFAULT_ICON = ":robot_face:"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


def action_type_of(action: Any) -> str:
    if isinstance(action, Mapping):
        raw = action.get("type")
        return str(raw) if raw else "unknown"
    return str(getattr(action, "type", None) or "unknown")


def parse_action(action: Any):
    """Return a typed action variant, validating raw mappings."""
    if isinstance(action, (WebhookAction, NotifyAction, TagAction, RateAction, SlackAction)):
        return action
    try:
        return rule_action_adapter.validate_python(action)
    except ValidationError as exc:
        raise ActionError(f"Invalid {action_type_of(action)} action: {exc.error_count()} validation error(s)") from exc


class ActionExecutor:
    def __init__(
        self,
        http: Optional[HttpClient] = None,
        notifications: Optional[NotificationSink] = None,
        interpolator: Optional[TemplateInterpolator] = None,
        *,
        user_agent: Optional[str] = None,
        default_timeout_ms: Optional[int] = None,
        slack_timeout_ms: Optional[int] = None,
    ) -> None:
        self.http = http or RequestsHttpClient()
        self.notifications = notifications or LogNotificationSink()
        self.interpolator = interpolator or TemplateInterpolator()
        self.user_agent = user_agent or settings.rule_http_user_agent
        self.default_timeout_ms = default_timeout_ms or settings.rule_http_timeout_ms
        self.slack_timeout_ms = slack_timeout_ms or settings.slack_timeout_ms

    def execute(self, action: Any, context: EvaluationContext) -> ActionResult:
        started = time.perf_counter()
        action_type = action_type_of(action)
        try:
            parsed = parse_action(action)
            if isinstance(parsed, WebhookAction):
                return self._webhook(parsed, context, started)
            if isinstance(parsed, NotifyAction):
                return self._notify(parsed, context, started)
            if isinstance(parsed, TagAction):
                return self._tag(parsed, context, started)
            if isinstance(parsed, RateAction):
                return self._rate(parsed, context, started)
            if isinstance(parsed, SlackAction):
                return self._slack(parsed, context, started)
            raise ActionError(f"Unknown action type: {action_type}")
        except Exception as exc:
            logger.warning(
                "Action failed type=%s rule=%s record=%s err=%s",
                action_type,
                context.rule.id,
                context.record.id,
                exc,
            )
            return ActionResult(
                action_type=action_type,
                success=False,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
            )

    def _webhook(self, action: WebhookAction, context: EvaluationContext, started: float) -> ActionResult:
        url = self.interpolator.interpolate(action.url, context)
        payload = self.interpolator.interpolate_payload(action.payload, context)
        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        headers.update(action.headers or {})
        try:
            timeout_ms = action.timeout_ms or self.default_timeout_ms
            response = self.http.call(action.method, url, headers, payload, timeout_ms)
        except HttpCallError as exc:
            return ActionResult(
                action_type="webhook",
                success=False,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
                output={"status_code": exc.status, "error_data": exc.body},
            )
        # Any received response counts; callers inspect status_code.
        return ActionResult(
            action_type="webhook",
            success=True,
            duration_ms=_elapsed_ms(started),
            output={"status_code": response.status, "response_data": response.body},
        )

    def _notify(self, action: NotifyAction, context: EvaluationContext, started: float) -> ActionResult:
        message = self.interpolator.interpolate(action.message, context)
        self.notifications.record(
            tenant_id=context.tenant.id,
            rule_id=context.rule.id,
            record_id=context.record.id,
            level=action.level,
            message=message,
            channels=list(action.channels),
        )
        return ActionResult(
            action_type="notify",
            success=True,
            duration_ms=_elapsed_ms(started),
            output={"message": message, "level": action.level, "channels": list(action.channels)},
        )

    def _tag(self, action: TagAction, context: EvaluationContext, started: float) -> ActionResult:
        value = self.interpolator.interpolate(action.value, context)
        # TODO: persist the mutation once tag semantics on the stored record are decided.
        logger.info(
            "Rule tag action tenant=%s rule=%s record=%s field=%s value=%s operation=%s",
            context.tenant.id,
            context.rule.id,
            context.record.id,
            action.field,
            value,
            action.operation,
        )
        return ActionResult(
            action_type="tag",
            success=True,
            duration_ms=_elapsed_ms(started),
            output={"field": action.field, "value": value, "operation": action.operation},
        )

    def _rate(self, action: RateAction, context: EvaluationContext, started: float) -> ActionResult:
        logger.info(
            "Rule rate action tenant=%s rule=%s record=%s field=%s value=%s",
            context.tenant.id,
            context.rule.id,
            context.record.id,
            action.field,
            action.value,
        )
        return ActionResult(
            action_type="rate",
            success=True,
            duration_ms=_elapsed_ms(started),
            output={"field": action.field, "value": action.value},
        )

    def _slack(self, action: SlackAction, context: EvaluationContext, started: float) -> ActionResult:
        message = self.interpolator.interpolate(action.message, context)
        body = {
            "text": message,
            "channel": action.channel,
            "username": action.username or SLACK_DEFAULT_USERNAME,
            "icon_emoji": action.icon or SLACK_DEFAULT_ICON,
        }
        try:
            response = self.http.call(
                "POST",
                action.webhook_url,
                {"Content-Type": "application/json"},
                body,
                self.slack_timeout_ms,
            )
        except HttpCallError as exc:
            return ActionResult(
                action_type="slack",
                success=False,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
            )
        if response.status // 100 != 2:
            return ActionResult(
                action_type="slack",
                success=False,
                duration_ms=_elapsed_ms(started),
                error=f"Slack webhook returned status {response.status}",
                output={"status_code": response.status, "response": response.body},
            )
        return ActionResult(
            action_type="slack",
            success=True,
            duration_ms=_elapsed_ms(started),
            output={"message": message, "channel": action.channel, "response": response.body},
        )
