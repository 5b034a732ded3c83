"""Domain models used by the call lifecycle service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class CallStarted:
    """A provider reported that a call began."""

    kind: ClassVar[str] = "call.started"

    call_id: str
    provider: str
    provider_agent_id: str | None = None
    from_number: str | None = None
    to_number: str | None = None


@dataclass(frozen=True)
class CallEnded:
    kind: ClassVar[str] = "call.ended"

    call_id: str
    provider: str
    duration: int | None = None
    provider_agent_id: str | None = None
    from_number: str | None = None
    to_number: str | None = None


@dataclass(frozen=True)
class CallAnalyzed:
    """Final call record with recording and transcript, sent after ``ended``."""

    kind: ClassVar[str] = "call.analyzed"

    call_id: str
    provider: str
    duration: int | None = None
    recording_url: str | None = None
    transcript: str | None = None
    provider_agent_id: str | None = None
    from_number: str | None = None
    to_number: str | None = None


NormalizedCallEvent = Union[CallStarted, CallEnded, CallAnalyzed]


@dataclass(frozen=True)
class LifecycleOutcome:
    """Result of applying one event; ``conversation_id`` is ``None`` when ignored."""

    action: str
    conversation_id: object | None = None
    changed: bool = False


__all__ = [
    "CallAnalyzed",
    "CallEnded",
    "CallStarted",
    "LifecycleOutcome",
    "NormalizedCallEvent",
]
