"""Retell webhook adapter."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..conversations.models import CallAnalyzed, CallEnded, CallStarted, NormalizedCallEvent
from .base import VoiceProviderAdapter, optional_int, optional_str

STARTED_EVENTS = frozenset({"call.started", "call_started"})
ENDED_EVENTS = frozenset({"call.ended", "call_ended"})
ANALYZED_EVENTS = frozenset({"call.analyzed", "call_analyzed"})


def _duration(call: Mapping[str, Any]) -> int | None:
    duration_ms = optional_int(call.get("duration_ms"))
    if duration_ms is not None:
        return optional_int(duration_ms / 1000)
    return optional_int(call.get("call_duration"))


class RetellAdapter(VoiceProviderAdapter):
    """Events arrive as ``{"event": ..., "call": {"call_id": ..., ...}}``."""

    provider_name = "retell"
    signature_header = "x-retell-signature"

    def parse_event(self, payload: Mapping[str, Any]) -> NormalizedCallEvent | None:
        event = payload.get("event")
        call = payload.get("call")
        if not isinstance(call, Mapping):
            return None
        call_id = optional_str(call.get("call_id"))
        if not call_id:
            return None

        common = {
            "call_id": call_id,
            "provider": self.provider_name,
            "provider_agent_id": optional_str(call.get("agent_id")),
            "from_number": optional_str(call.get("from_number")),
            "to_number": optional_str(call.get("to_number")),
        }
        if event in STARTED_EVENTS:
            return CallStarted(**common)
        if event in ENDED_EVENTS:
            return CallEnded(duration=_duration(call), **common)
        if event in ANALYZED_EVENTS:
            return CallAnalyzed(
                duration=_duration(call),
                recording_url=optional_str(call.get("recording_url")),
                transcript=optional_str(call.get("transcript")),
                **common,
            )
        return None


__all__ = ["RetellAdapter"]
