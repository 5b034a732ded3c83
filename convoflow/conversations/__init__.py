"""Conversation records and the call lifecycle state machine."""

from .lifecycle import CallLifecycleService
from .models import CallAnalyzed, CallEnded, CallStarted, LifecycleOutcome, NormalizedCallEvent
from .repository import ConversationRepository

__all__ = [
    "CallAnalyzed",
    "CallEnded",
    "CallLifecycleService",
    "CallStarted",
    "ConversationRepository",
    "LifecycleOutcome",
    "NormalizedCallEvent",
]
