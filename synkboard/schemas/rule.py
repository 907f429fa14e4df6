"""
Pydantic schemas for automation rules.

Actions form a closed union discriminated by ``type``; every variant carries
the defaults a tenant admin gets when a key is omitted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


RunOn = Literal["create", "update", "both"]
RuleLogStatus = Literal["matched", "skipped", "failed"]


class RuleCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    # Kept as a plain string: an unknown operator is a non-match, not a parse error.
    operator: str
    value: Any = None


class WebhookAction(BaseModel):
    type: Literal["webhook"] = "webhook"
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH"] = "POST"
    headers: Optional[Dict[str, str]] = None
    payload: Optional[Dict[str, Any]] = None
    # Falls back to RULE_HTTP_TIMEOUT_MS (10 s) when omitted.
    timeout_ms: Optional[int] = Field(default=None, ge=1000, le=30000)


class NotifyAction(BaseModel):
    type: Literal["notify"] = "notify"
    message: str
    level: Literal["info", "warning", "error"] = "info"
    channels: List[Literal["ui", "email", "sms"]] = Field(default_factory=lambda: ["ui"])


class TagAction(BaseModel):
    type: Literal["tag"] = "tag"
    field: str
    value: str
    operation: Literal["set", "add", "remove"] = "set"


class RateAction(BaseModel):
    type: Literal["rate"] = "rate"
    field: str
    value: float = Field(ge=1, le=5)


class SlackAction(BaseModel):
    type: Literal["slack"] = "slack"
    webhook_url: str
    message: str
    channel: Optional[str] = None
    username: Optional[str] = None
    # Stored as ``icon_emoji`` by older rule definitions.
    icon: Optional[str] = Field(default=None, alias="icon_emoji")

    model_config = ConfigDict(populate_by_name=True)


RuleAction = Annotated[
    Union[WebhookAction, NotifyAction, TagAction, RateAction, SlackAction],
    Field(discriminator="type"),
]

rule_action_adapter: TypeAdapter = TypeAdapter(RuleAction)
rule_conditions_adapter: TypeAdapter = TypeAdapter(List[RuleCondition])


class RuleTestRequest(BaseModel):
    conditions: List[RuleCondition]
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    test_data: Dict[str, Any] = Field(default_factory=dict)
    entity_id: Optional[str] = None


class ConditionDetailOut(BaseModel):
    condition: RuleCondition
    matched: bool
    reason: Optional[str] = None


class RuleTestResponse(BaseModel):
    matched: bool
    conditions_met: int
    total_conditions: int
    actions_would_execute: int
    evaluation_details: List[ConditionDetailOut]
    warnings: List[str] = Field(default_factory=list)


class RuleLogOut(BaseModel):
    id: str
    rule_id: str
    record_id: str
    status: RuleLogStatus
    duration_ms: float
    output: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RecordIn(BaseModel):
    fields: Dict[str, Any]


class RecordOut(BaseModel):
    id: str
    entity_id: str
    fields: Dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    triggered_rules: int = 0
