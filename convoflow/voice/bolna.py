"""Bolna webhook adapter."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..conversations.models import CallAnalyzed, CallEnded, CallStarted, NormalizedCallEvent
from .base import VoiceProviderAdapter, optional_int, optional_str

STARTED_EVENTS = frozenset({"call.started", "call_initiated"})
ENDED_EVENTS = frozenset({"call.ended", "call_ended"})
ANALYZED_EVENTS = frozenset({"call.analyzed", "call_analyzed"})


class BolnaAdapter(VoiceProviderAdapter):
    """Events carry their fields either at the top level or under ``data``."""

    provider_name = "bolna"
    signature_header = "x-bolna-signature"

    def parse_event(self, payload: Mapping[str, Any]) -> NormalizedCallEvent | None:
        event = payload.get("event")
        data = payload.get("data")
        if not isinstance(data, Mapping):
            data = payload
        call_id = optional_str(data.get("call_id") or data.get("conversation_id"))
        if not call_id:
            return None

        common = {
            "call_id": call_id,
            "provider": self.provider_name,
            "provider_agent_id": optional_str(data.get("agent_id")),
            "from_number": optional_str(data.get("from_number") or data.get("user_number")),
            "to_number": optional_str(data.get("to_number") or data.get("agent_number")),
        }
        if event in STARTED_EVENTS:
            return CallStarted(**common)
        if event in ENDED_EVENTS:
            return CallEnded(duration=optional_int(data.get("duration")), **common)
        if event in ANALYZED_EVENTS:
            return CallAnalyzed(
                duration=optional_int(data.get("duration")),
                recording_url=optional_str(data.get("recording_url")),
                transcript=optional_str(data.get("transcript")),
                **common,
            )
        return None


__all__ = ["BolnaAdapter"]
