"""Keyword-driven escalation detection for inbound user messages.

Patterns are compiled once at import time and only read afterwards, so
:func:`evaluate` is safe to call from any number of threads. Universal
triggers are checked before the vertical table; within each list the first
match wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence, Tuple

_Trigger = Tuple["re.Pattern[str]", str]


def _compile(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern, re.IGNORECASE)


UNIVERSAL_TRIGGERS: Sequence[_Trigger] = (
    (_compile(r"\b(emergency|urgent|911|police|fire department|ambulance)\b"), "Emergency mentioned"),
    (
        _compile(
            r"\b(speak to|talk to|transfer to|connect me with)\s+(a\s+)?"
            r"(human|person|agent|manager|supervisor|representative)\b"
        ),
        "Requested human agent",
    ),
    (_compile(r"\b(sue|lawsuit|legal action|attorney|lawyer)\b"), "Legal threat"),
    (_compile(r"\b(complaint|complain|report|BBB|better business)\b"), "Complaint filed"),
)

VERTICAL_TRIGGERS: Mapping[str, Sequence[_Trigger]] = {
    "home_services": (
        (
            _compile(r"\b(gas leak|carbon monoxide|flooding|burst pipe|electrical fire|power outage)\b"),
            "Home emergency",
        ),
        (_compile(r"\b(mold|asbestos|structural damage)\b"), "Health/safety hazard"),
    ),
    "dental": (
        (
            _compile(
                r"\b(severe pain|swelling|bleeding won't stop|knocked out tooth|abscess|infection)\b"
            ),
            "Dental emergency",
        ),
        (_compile(r"\b(allergic reaction|difficulty breathing|chest pain)\b"), "Medical emergency"),
    ),
    "medical": (
        (
            _compile(
                r"\b(chest pain|difficulty breathing|stroke|heart attack|unconscious|seizure"
                r"|suicide|self.?harm)\b"
            ),
            "Medical emergency",
        ),
        (_compile(r"\b(overdose|poisoning|severe bleeding)\b"), "Medical emergency"),
    ),
    "legal": (
        (_compile(r"\b(arrested|custody|court date tomorrow|warrant|detained)\b"), "Urgent legal matter"),
        (_compile(r"\b(statute of limitations|deadline today)\b"), "Time-sensitive legal issue"),
    ),
    "real_estate": (
        (
            _compile(r"\b(closing tomorrow|lost earnest money|contract dispute|eviction)\b"),
            "Urgent real estate issue",
        ),
    ),
    "restaurant": (
        (_compile(r"\b(food poisoning|allergic reaction|sick after eating)\b"), "Food safety concern"),
    ),
    "ecommerce": (
        (
            _compile(r"\b(fraud|unauthorized charge|identity theft|stolen card)\b"),
            "Fraud/security issue",
        ),
    ),
}


@dataclass(frozen=True)
class EscalationResult:
    escalate: bool
    reason: str | None = None


NO_ESCALATION = EscalationResult(escalate=False, reason=None)


def evaluate(message: str, vertical: str | None) -> EscalationResult:
    """Classify ``message`` as escalation-worthy for the given vertical.

    Args:
        message: Raw inbound user message.
        vertical: Business category of the agent; unknown values only get the
            universal triggers.

    Returns:
        EscalationResult: ``escalate`` with the matched trigger's reason, or
        :data:`NO_ESCALATION`.
    """

    for pattern, reason in UNIVERSAL_TRIGGERS:
        if pattern.search(message):
            return EscalationResult(escalate=True, reason=reason)
    for pattern, reason in VERTICAL_TRIGGERS.get(vertical or "", ()):
        if pattern.search(message):
            return EscalationResult(escalate=True, reason=reason)
    return NO_ESCALATION


class AgentContact(Protocol):
    name: str
    escalation_email: str | None
    escalation_phone: str | None


def build_escalation_note(agent: AgentContact, reason: str, channel: str = "chat") -> str:
    """Return the instruction block a reply generator appends on escalation."""

    contacts = []
    if agent.escalation_email:
        contacts.append(f"email: {agent.escalation_email}")
    if agent.escalation_phone:
        contacts.append(f"phone: {agent.escalation_phone}")
    if contacts:
        contact_line = f"Provide the customer with these contact details: {' or '.join(contacts)}."
    else:
        contact_line = "Let the customer know a team member will follow up with them shortly."

    if channel == "voice":
        return (
            f"\n\nESCALATION: This caller requires human assistance ({reason}). "
            "Tell them you are connecting them with a team member and keep your "
            f"response brief and reassuring. {contact_line}"
        )
    return (
        "\n\n## Escalation Required\n"
        f"The customer's message has triggered an escalation ({reason}).\n"
        "You MUST:\n"
        "1. Acknowledge their concern with empathy\n"
        "2. Clearly let them know they will be connected with a human team member\n"
        f"3. {contact_line}\n"
        "4. Do not attempt to resolve this yourself, this requires human attention"
    )


__all__ = [
    "EscalationResult",
    "NO_ESCALATION",
    "UNIVERSAL_TRIGGERS",
    "VERTICAL_TRIGGERS",
    "build_escalation_note",
    "evaluate",
]
