"""
``{{path}}`` substitution for action URLs, messages and payloads.

Paths are dotted lookups into the evaluation context
(``record.fields.amount``, ``tenant.name``). A path that does not resolve is
left in place as the literal placeholder so misconfigured templates stay
visible downstream.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from ..core.errors import TemplateError
from .rule_types import EvaluationContext
from .values import Value

PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def _resolve(scope: Mapping[str, Any], path: str) -> Any:
    current: Any = scope
    for key in path.strip().split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        else:
            return _MISSING
    return current


class TemplateInterpolator:
    def interpolate(self, template: str, context: EvaluationContext) -> str:
        scope = context.as_scope()

        def _replace(match: re.Match) -> str:
            value = _resolve(scope, match.group(1))
            if value is _MISSING:
                return match.group(0)
            return Value.of(value).as_text()

        return PLACEHOLDER.sub(_replace, template)

    def interpolate_payload(self, payload: Any, context: EvaluationContext) -> Any:
        """Serialize, interpolate and parse back a structured payload."""
        if payload is None:
            return {}
        rendered = self.interpolate(json.dumps(payload, default=str), context)
        try:
            return json.loads(rendered)
        except json.JSONDecodeError as exc:
            raise TemplateError(f"Interpolated payload is not valid JSON: {exc}") from exc


interpolator = TemplateInterpolator()


def interpolate(template: str, context: EvaluationContext) -> str:
    return interpolator.interpolate(template, context)
