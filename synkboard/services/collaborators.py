"""
Contracts for the collaborators the engines consume.

The engines only talk to these interfaces. `sql_store` provides the
SQLAlchemy-backed implementations and `http_client` the outbound HTTP one;
tests substitute in-memory fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .rule_types import EntityRef, RuleDefinition, TenantRef, UserRef


@dataclass(frozen=True)
class FieldMeta:
    key: str
    type: str = "text"
    is_filterable: bool = True
    is_sortable: bool = True
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.key


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: Any = None


class HttpCallError(RuntimeError):
    """Network failure or timeout. `status`/`body` are set when a response arrived."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class RuleRepository:
    def fetch_active_rules(self, tenant_id: str, entity_id: str, operation: str) -> List[RuleDefinition]:
        raise NotImplementedError

    def persist_rule_execution_log(
        self,
        tenant_id: str,
        rule_id: str,
        record_id: str,
        status: str,
        duration_ms: float,
        output: Dict[str, Any],
    ) -> None:
        raise NotImplementedError


class Directory:
    def fetch_tenant(self, tenant_id: str) -> Optional[TenantRef]:
        raise NotImplementedError

    def fetch_user(self, user_id: str) -> Optional[UserRef]:
        raise NotImplementedError

    def fetch_entity(self, entity_id: str) -> Optional[EntityRef]:
        raise NotImplementedError

    def fetch_entity_fields(self, entity_id: str) -> List[FieldMeta]:
        raise NotImplementedError


class HttpClient:
    def call(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Any,
        timeout_ms: int,
    ) -> HttpResponse:
        raise NotImplementedError


class RecordStore:
    def run_aggregate(self, query: Any) -> Any:
        """Scalar float for an ungrouped query, a list of AggregateRow when grouped."""
        raise NotImplementedError

    def fetch_page(self, query: Any) -> Tuple[Sequence[Dict[str, Any]], int]:
        """Rows for the requested window plus the total matching row count."""
        raise NotImplementedError


class NotificationSink:
    def record(
        self,
        *,
        tenant_id: str,
        rule_id: str,
        record_id: str,
        level: str,
        message: str,
        channels: Sequence[str],
    ) -> None:
        raise NotImplementedError


class LogNotificationSink(NotificationSink):
    """Records the intent only; delivery belongs to the notification service."""

    def __init__(self) -> None:
        self.logger = logging.getLogger("notifications")

    def record(self, *, tenant_id, rule_id, record_id, level, message, channels) -> None:
        self.logger.info(
            "Rule notification tenant=%s rule=%s record=%s level=%s channels=%s message=%s",
            tenant_id,
            rule_id,
            record_id,
            level,
            ",".join(channels),
            message,
        )
