"""Fan an event out to every matching integration of an agent."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..followups.summary import get_conversation_summary
from ..models import Agent, Integration, Lead
from .payload import build_event_payload, model_to_dict
from .webhook import WebhookSender

logger = logging.getLogger(__name__)


def listens_to(integration: Integration, event: str) -> bool:
    events = integration.enabled_events or []
    return not events or event in events


class IntegrationDispatcher:
    """Deliver integration events; every failure is logged, none raised."""

    def __init__(self, session_factory: sessionmaker[Session], sender: WebhookSender):
        self.session_factory = session_factory
        self.sender = sender

    def dispatch(
        self,
        event: str,
        agent_id: uuid.UUID,
        *,
        conversation_id: uuid.UUID | None = None,
        conversation: Mapping[str, Any] | None = None,
        lead: Mapping[str, Any] | None = None,
        appointment: Mapping[str, Any] | None = None,
    ) -> int:
        """Send ``event`` to the agent's integrations and return how many succeeded."""

        with self.session_factory() as session:
            integrations = [
                item
                for item in session.scalars(
                    select(Integration).where(
                        Integration.agent_id == agent_id, Integration.enabled.is_(True)
                    )
                )
                if listens_to(item, event)
            ]
            if not integrations:
                return 0
            agent = session.get(Agent, agent_id)
            summary = None
            if conversation_id is not None:
                summary = get_conversation_summary(session, conversation_id)
                if lead is None:
                    lead_row = session.scalar(
                        select(Lead).where(Lead.conversation_id == conversation_id).limit(1)
                    )
                    lead = model_to_dict(lead_row) if lead_row is not None else None

        payload = build_event_payload(
            event,
            agent_id=agent_id,
            agent_name=agent.name if agent is not None else "",
            conversation_id=conversation_id,
            conversation=conversation,
            lead=lead,
            appointment=appointment,
            summary=summary,
        )

        delivered = 0
        for integration in integrations:
            if integration.provider != "webhook":
                logger.info(
                    "Skipping %s for integration %s: provider %r not supported",
                    event,
                    integration.id,
                    integration.provider,
                )
                continue
            try:
                success, _ = self.sender.send(integration, event, payload)
            except Exception:
                logger.exception(
                    "Dispatching %s to integration %s failed", event, integration.id
                )
                continue
            delivered += int(success)
        return delivered


__all__ = ["IntegrationDispatcher", "listens_to"]
