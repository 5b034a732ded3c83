"""At-most-once escalation handling.

The ``escalated`` flag is flipped with a conditional update; only the caller
whose update touched the row goes on to notify humans and emit the
``escalation_detected`` integration event. Both side effects are handed to
the background dispatcher so they never fail the calling request.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import update
from sqlalchemy.engine import CursorResult
from sqlalchemy.orm import Session, sessionmaker

from ..core.background import Dispatcher
from ..integrations.dispatcher import IntegrationDispatcher
from ..models import Agent, AnalyticsEvent, Conversation, utcnow
from .notifier import AgentContact, EscalationEvent, EscalationNotifier

logger = logging.getLogger(__name__)


class ConversationNotFoundError(LookupError):
    """Raised when an operation targets a conversation that does not exist."""


@dataclass(frozen=True)
class EscalationOutcome:
    status: str
    reason: str | None = None

    @property
    def handled(self) -> bool:
        return self.status == "handled"

    def as_dict(self) -> dict[str, Any]:
        if self.status == "handled":
            return {"handled": True}
        return {"skipped": True, "reason": self.reason}


HANDLED = EscalationOutcome("handled")
ALREADY_ESCALATED = EscalationOutcome("skipped", "already_escalated")


class EscalationService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        notifier: EscalationNotifier,
        dispatcher: Dispatcher,
        integrations: IntegrationDispatcher | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.integrations = integrations

    def handle(
        self,
        conversation_id: uuid.UUID,
        reason: str,
        channel: str | None = None,
        agent_id: uuid.UUID | None = None,
    ) -> EscalationOutcome:
        """Escalate ``conversation_id`` unless it already is.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
        """

        with self.session_factory.begin() as session:
            result = session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id, Conversation.escalated.is_(False))
                .values(escalated=True, escalation_reason=reason, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            won = cast(CursorResult[Any], result).rowcount == 1
            conversation = session.get(Conversation, conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(str(conversation_id))
            if not won:
                logger.info("Conversation %s already escalated; skipping", conversation_id)
                return ALREADY_ESCALATED

            channel = channel or conversation.channel or "unknown"
            agent = session.get(Agent, agent_id or conversation.agent_id)
            if agent is None:
                logger.warning(
                    "Conversation %s escalated but agent %s not found",
                    conversation_id,
                    agent_id or conversation.agent_id,
                )
                return HANDLED
            session.add(
                AnalyticsEvent(
                    agent_id=agent.id,
                    conversation_id=conversation_id,
                    event_type="escalation",
                    event_data={"reason": reason, "channel": channel},
                )
            )
            event = EscalationEvent(
                conversation_id=conversation_id,
                reason=reason,
                channel=channel,
                agent=AgentContact.from_agent(agent),
            )
            snapshot = {
                "id": str(conversation_id),
                "escalation_reason": reason,
                "channel": channel,
            }

        logger.info("Conversation %s escalated: %s", conversation_id, reason)
        self.dispatcher.submit("escalation-notify", self.notifier.notify_event, event)
        if self.integrations is not None:
            self.dispatcher.submit(
                "escalation-integrations",
                self.integrations.dispatch,
                "escalation_detected",
                event.agent.id,
                conversation_id=conversation_id,
                conversation=snapshot,
            )
        return HANDLED


__all__ = [
    "ALREADY_ESCALATED",
    "ConversationNotFoundError",
    "EscalationOutcome",
    "EscalationService",
    "HANDLED",
]
