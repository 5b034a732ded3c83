"""Inbound SMS conversation handling."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from sqlalchemy.orm import Session, sessionmaker

from ..conversations.repository import ConversationRepository
from ..core.background import Dispatcher
from ..delivery.base import SMSSender
from ..escalation.detector import build_escalation_note, evaluate
from ..escalation.service import EscalationService
from ..models import Agent, AnalyticsEvent

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_REPLY = "Thanks for your message. A member of our team will get back to you shortly."
HISTORY_LIMIT = 20


@dataclass(frozen=True)
class ReplyContext:
    """Everything a reply generator needs to answer one inbound SMS."""

    agent: Agent
    conversation_id: uuid.UUID
    history: Sequence[tuple[str, str]]
    message: str
    visitor_id: str
    escalation_note: str | None = None


class ReplyGenerator(Protocol):
    def generate(self, context: ReplyContext) -> str: ...


class FallbackReplyGenerator:
    """Reply with the agent's configured fallback message."""

    def generate(self, context: ReplyContext) -> str:
        return context.agent.fallback_message or DEFAULT_FALLBACK_REPLY


@dataclass(frozen=True)
class SMSHandleResult:
    conversation_id: uuid.UUID | None
    replied: bool = False
    escalated: bool = False


class SMSInboundHandler:
    """Persist an inbound SMS, check escalation, reply and persist the reply."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sms_sender: SMSSender,
        dispatcher: Dispatcher,
        escalation_service: EscalationService | None = None,
        reply_generator: ReplyGenerator | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.sms_sender = sms_sender
        self.dispatcher = dispatcher
        self.escalation_service = escalation_service
        self.reply_generator = reply_generator or FallbackReplyGenerator()

    def handle(self, to: str, from_: str, body: str, message_sid: str) -> SMSHandleResult:
        with self.session_factory.begin() as session:
            repo = ConversationRepository(session)
            agent = repo.find_sms_agent(to)
            if agent is None:
                logger.warning("No SMS-enabled agent found for number %s", to)
                return SMSHandleResult(conversation_id=None)

            conversation = repo.find_open_conversation(agent.id, "sms", from_)
            if conversation is None:
                conversation = repo.create_conversation(
                    agent_id=agent.id,
                    channel="sms",
                    visitor_id=from_,
                    call_from=from_,
                    call_to=agent.phone_number,
                    status="in_progress",
                )
                session.add(
                    AnalyticsEvent(
                        agent_id=agent.id,
                        conversation_id=conversation.id,
                        event_type="sms_started",
                        event_data={"visitor_id": from_},
                    )
                )
            conversation_id = conversation.id
            repo.add_message(conversation_id, "user", body, {"message_sid": message_sid})
            history = [(m.role, m.content) for m in repo.list_messages(conversation_id)]
            history = history[-HISTORY_LIMIT:]

        escalation = evaluate(body, agent.vertical)
        escalation_note = None
        if escalation.escalate and escalation.reason:
            escalation_note = build_escalation_note(agent, escalation.reason, "chat")
            if self.escalation_service is not None:
                self.dispatcher.submit(
                    "sms-escalation",
                    self.escalation_service.handle,
                    conversation_id,
                    escalation.reason,
                    "sms",
                    agent.id,
                )

        reply = self.reply_generator.generate(
            ReplyContext(
                agent=agent,
                conversation_id=conversation_id,
                history=history,
                message=body,
                visitor_id=from_,
                escalation_note=escalation_note,
            )
        )
        result = self.sms_sender.send_sms(from_, reply, from_=agent.phone_number)
        if not result.success:
            logger.error("Failed to send SMS reply to %s: %s", from_, result.error)

        metadata: dict[str, Any] = {
            "channel": "sms",
            "external_id": result.message_id,
            "send_error": result.error,
        }
        with self.session_factory.begin() as session:
            ConversationRepository(session).add_message(conversation_id, "agent", reply, metadata)

        return SMSHandleResult(
            conversation_id=conversation_id,
            replied=result.success,
            escalated=escalation.escalate,
        )


__all__ = [
    "DEFAULT_FALLBACK_REPLY",
    "FallbackReplyGenerator",
    "ReplyContext",
    "ReplyGenerator",
    "SMSHandleResult",
    "SMSInboundHandler",
]
