"""Event payloads sent to outbound integrations."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, Dict, Mapping

from sqlalchemy import inspect

from ..models import utcnow

INTEGRATION_EVENTS = (
    "lead_captured",
    "call_completed",
    "chat_completed",
    "appointment_booked",
    "escalation_detected",
)


def json_safe(value: Any) -> Any:
    """Recursively coerce ``value`` into JSON-serialisable primitives."""

    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Mapping):
        return {str(key): json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(item) for item in value]
    return str(value)


def model_to_dict(obj: Any) -> Dict[str, Any]:
    """Snapshot the column attributes of an ORM instance."""

    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def sanitize(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop private (``_``-prefixed) keys and embedding vectors."""

    return {
        key: json_safe(value)
        for key, value in record.items()
        if not key.startswith("_") and key != "embedding"
    }


def build_event_payload(
    event: str,
    *,
    agent_id: uuid.UUID | str,
    agent_name: str = "",
    conversation_id: uuid.UUID | str | None = None,
    conversation: Mapping[str, Any] | None = None,
    lead: Mapping[str, Any] | None = None,
    appointment: Mapping[str, Any] | None = None,
    summary: str | None = None,
    now: dt.datetime | None = None,
) -> Dict[str, Any]:
    """Build the ``{event, timestamp, agent, data}`` envelope for one event."""

    data: Dict[str, Any] = {}
    if conversation:
        data["conversation"] = sanitize(conversation)
    if lead:
        data["lead"] = sanitize(lead)
    if summary:
        data["summary"] = summary
    if appointment:
        data["appointment"] = sanitize(appointment)
    if conversation_id:
        data["conversation_id"] = str(conversation_id)

    return {
        "event": event,
        "timestamp": (now or utcnow()).isoformat(),
        "agent": {"id": str(agent_id), "name": agent_name or ""},
        "data": data,
    }


__all__ = [
    "INTEGRATION_EVENTS",
    "build_event_payload",
    "json_safe",
    "model_to_dict",
    "sanitize",
]
