"""Human notification for escalated conversations.

Notification is best-effort: each channel's failure is logged on its own and
:meth:`EscalationNotifier.notify` never raises. Callers own the at-most-once
guarantee (see :mod:`convoflow.escalation.service`).
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Tuple

from ..delivery.base import DeliveryResult, EmailSender, SMSSender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentContact:
    """Snapshot of the agent fields needed to notify a human."""

    id: uuid.UUID | str
    name: str
    escalation_email: str | None = None
    escalation_phone: str | None = None

    @classmethod
    def from_agent(cls, agent: Any) -> "AgentContact":
        return cls(
            id=agent.id,
            name=agent.name,
            escalation_email=agent.escalation_email,
            escalation_phone=agent.escalation_phone,
        )

    @property
    def has_contact(self) -> bool:
        return bool(self.escalation_email or self.escalation_phone)


@dataclass(frozen=True)
class EscalationEvent:
    """In-memory description of one escalation; never persisted directly."""

    conversation_id: uuid.UUID | str
    reason: str
    channel: str
    agent: AgentContact


def dashboard_url(app_url: str, conversation_id: uuid.UUID | str) -> str:
    return f"{app_url.rstrip('/')}/conversations?id={conversation_id}"


def compose_email(agent: AgentContact, reason: str, channel: str, url: str) -> Tuple[str, str]:
    """Return ``(subject, body)`` for the escalation e-mail."""

    subject = f"[Action Required] {reason} — {agent.name}"
    body = "\n".join(
        [
            f"A {channel} conversation needs human attention.",
            "",
            f"Agent:   {agent.name}",
            f"Reason:  {reason}",
            f"Channel: {channel}",
            "",
            f"View conversation: {url}",
            "",
            "Please follow up with this customer as soon as possible.",
        ]
    )
    return subject, body


def compose_sms(agent: AgentContact, reason: str, url: str) -> str:
    return f"{agent.name}: {reason} — customer needs help. {url}"


class EscalationNotifier:
    """Fan out escalation notices to the agent's configured contacts."""

    def __init__(self, sms_sender: SMSSender, email_sender: EmailSender, app_url: str = ""):
        self.sms_sender = sms_sender
        self.email_sender = email_sender
        self.app_url = app_url

    def notify(
        self,
        agent: AgentContact,
        conversation_id: uuid.UUID | str,
        reason: str,
        channel: str,
    ) -> None:
        if not agent.has_contact:
            logger.debug("Agent %s has no escalation contact; skipping notify", agent.id)
            return

        url = dashboard_url(self.app_url, conversation_id)
        tasks: List[Tuple[str, Callable[[], DeliveryResult]]] = []
        if agent.escalation_email:
            subject, body = compose_email(agent, reason, channel, url)
            email_to = agent.escalation_email
            tasks.append(
                ("email", lambda: self.email_sender.send_email(email_to, subject, body))
            )
        if agent.escalation_phone:
            sms_body = compose_sms(agent, reason, url)
            sms_to = agent.escalation_phone
            tasks.append(("sms", lambda: self.sms_sender.send_sms(sms_to, sms_body)))

        if len(tasks) == 1:
            self._run(conversation_id, *tasks[0])
            return
        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="escalation") as pool:
            for label, send in tasks:
                pool.submit(self._run, conversation_id, label, send)

    def notify_event(self, event: EscalationEvent) -> None:
        self.notify(event.agent, event.conversation_id, event.reason, event.channel)

    @staticmethod
    def _run(
        conversation_id: uuid.UUID | str, label: str, send: Callable[[], DeliveryResult]
    ) -> None:
        try:
            result = send()
        except Exception:
            logger.exception(
                "Escalation %s notification raised for conversation %s", label, conversation_id
            )
            return
        if result.success:
            logger.info(
                "Escalation %s notification sent for conversation %s (%s)",
                label,
                conversation_id,
                result.message_id,
            )
        else:
            logger.warning(
                "Escalation %s notification failed for conversation %s: %s",
                label,
                conversation_id,
                result.error,
            )


__all__ = [
    "AgentContact",
    "EscalationEvent",
    "EscalationNotifier",
    "compose_email",
    "compose_sms",
    "dashboard_url",
]
