# --- src/newsbeacon/infrastructure/messaging/messages.py ---
"""
Wire format of the two queues.

Bodies are JSON objects with camelCase keys. Alert messages come in a grouped
form (`isGrouped: true`, an `events` list) and a single-event form whose news
fields sit at the top level; both decode to `AlertMessage`.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from newsbeacon.domain.entities import AlertTiming, Market, NewsEvent, TimeDisplay
from newsbeacon.domain.value_objects import Destination
from newsbeacon.errors import MessageDecodeError


class DeliveryResult(Enum):
    """Outcome a queue handler reports back to the consumer."""
    ACK = "ACK"
    REQUEUE = "REQUEUE"


def _to_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    if hasattr(v, "value"):
        return str(v.value)
    return str(v)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class NewsPayload(_WireModel):
    id: Optional[int] = None
    title: str
    country: str
    impact: str
    date: datetime
    forecast: Optional[str] = None
    previous: Optional[str] = None

    @field_validator("country", "impact", mode="before")
    def _v_code(cls, v):
        return (_to_str(v) or "").upper()

    @field_validator("forecast", "previous", mode="before")
    def _v_optional(cls, v):
        v = _to_str(v)
        return v or None

    @field_validator("date")
    def _v_date(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @classmethod
    def from_event(cls, event: NewsEvent) -> "NewsPayload":
        return cls(
            id=event.id,
            title=event.title,
            country=event.currency,
            impact=event.impact,
            date=event.scheduled_at,
            forecast=event.forecast,
            previous=event.previous,
        )


class _Addressed(_WireModel):
    server_id: str = Field(alias="serverId")
    channel_id: str = Field(alias="channelId")
    role_id: Optional[str] = Field(default=None, alias="roleId")

    @field_validator("server_id", "channel_id", mode="before")
    def _v_snowflake(cls, v):
        return _to_str(v)

    @field_validator("role_id", mode="before")
    def _v_role(cls, v):
        return _to_str(v) or None

    @property
    def destination(self) -> Destination:
        return Destination(self.server_id, self.channel_id)


class AlertMessage(_Addressed):
    alert_type: AlertTiming = Field(alias="alertType")
    events: List[NewsPayload]
    is_grouped: bool = Field(default=True, alias="isGrouped")

    @model_validator(mode="before")
    @classmethod
    def _lift_single_form(cls, data):
        # single-event bodies carry the news fields at top level
        if isinstance(data, dict) and "events" not in data and "title" in data:
            data = dict(data)
            news = {k: data.pop(k) for k in list(NewsPayload.model_fields) if k in data}
            data["events"] = [news]
            data.setdefault("isGrouped", False)
        return data

    def to_wire(self) -> Dict[str, Any]:
        head = {
            "alertType": self.alert_type.value,
            "serverId": self.server_id,
            "channelId": self.channel_id,
            "roleId": self.role_id,
        }
        if not self.is_grouped and len(self.events) == 1:
            body = self.events[0].model_dump(mode="json")
            return {"isGrouped": False, **body, **head}
        return {
            "isGrouped": True,
            "events": [e.model_dump(mode="json") for e in self.events],
            **head,
        }


class ScheduleTask(_Addressed):
    schedule_id: int = Field(alias="scheduleId")
    market: Market = Market.FOREX
    timezone: str = "UTC"
    time_display: TimeDisplay = Field(default=TimeDisplay.FIXED, alias="timeDisplay")
    news: List[NewsPayload] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def encode_message(message: AlertMessage | ScheduleTask) -> str:
    return json.dumps(message.to_wire(), ensure_ascii=False)


def _decode(model_cls, raw: str | bytes):
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MessageDecodeError(f"Body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MessageDecodeError("Body must be a JSON object.")
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise MessageDecodeError(f"Invalid {model_cls.__name__}: {e.error_count()} error(s)") from e


def decode_alert_message(raw: str | bytes) -> AlertMessage:
    return _decode(AlertMessage, raw)


def decode_schedule_task(raw: str | bytes) -> ScheduleTask:
    return _decode(ScheduleTask, raw)
