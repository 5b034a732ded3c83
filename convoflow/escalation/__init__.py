"""Escalation detection, notification and de-duplication."""

from .detector import EscalationResult, build_escalation_note, evaluate
from .notifier import AgentContact, EscalationEvent, EscalationNotifier
from .service import ConversationNotFoundError, EscalationOutcome, EscalationService

__all__ = [
    "AgentContact",
    "ConversationNotFoundError",
    "EscalationEvent",
    "EscalationNotifier",
    "EscalationOutcome",
    "EscalationResult",
    "EscalationService",
    "build_escalation_note",
    "evaluate",
]
