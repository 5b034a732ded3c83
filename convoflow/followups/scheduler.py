"""Create follow-up deliveries with their content rendered up front."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Callable, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..models import Agent, Conversation, FollowupConfig, FollowupDelivery, Lead, utcnow
from .summary import get_conversation_summary
from .templates import interpolate

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Valued Customer"
DEFAULT_BUSINESS_NAME = "Our Business"
DEFAULT_AGENT_NAME = "AI Assistant"


def build_variables(
    agent: Agent,
    conversation: Conversation,
    lead: Lead | None,
    summary: str,
    appointment_time: str | None = None,
) -> Dict[str, str]:
    variables = {
        "customer_name": (lead.name if lead else None) or DEFAULT_CUSTOMER_NAME,
        "business_name": agent.name or DEFAULT_BUSINESS_NAME,
        "agent_name": agent.name or DEFAULT_AGENT_NAME,
        "summary": summary,
        "customer_email": (lead.email if lead else None) or "",
        "customer_phone": (lead.phone if lead else None) or conversation.call_from or "",
    }
    if appointment_time:
        variables["appointment_time"] = appointment_time
    return variables


def resolve_recipient(channel: str, variables: Mapping[str, str]) -> str:
    if channel == "sms":
        return variables.get("customer_phone", "")
    if channel == "email":
        return variables.get("customer_email", "")
    return ""


class FollowupScheduler:
    """Insert ``pending`` deliveries whose body and subject never change again."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    def schedule(
        self,
        config: FollowupConfig,
        recipient: str,
        variables: Mapping[str, str | None],
        conversation_id: uuid.UUID | None = None,
        now: dt.datetime | None = None,
    ) -> FollowupDelivery:
        """Render ``config`` for ``recipient`` and insert a pending delivery.

        ``scheduled_for`` is ``now + delay_minutes``. The channel and sender
        details are copied from the config so later edits to the template do
        not alter what is sent.

        Raises:
            IntegrityError: If a delivery already exists for this config and
                conversation.
        """

        moment = now or self.clock()
        delivery = FollowupDelivery(
            followup_config_id=config.id,
            conversation_id=conversation_id,
            channel=config.channel,
            recipient=recipient,
            rendered_body=interpolate(config.template_body, variables),
            rendered_subject=(
                interpolate(config.template_subject, variables)
                if config.template_subject
                else None
            ),
            from_name=config.from_name,
            from_email=config.from_email,
            scheduled_for=moment + dt.timedelta(minutes=config.delay_minutes or 0),
            status="pending",
        )
        with self.session_factory.begin() as session:
            session.add(delivery)
        logger.info(
            "Scheduled %s follow-up %s for %s",
            delivery.channel,
            delivery.id,
            delivery.scheduled_for.isoformat(),
        )
        return delivery

    def schedule_for_conversation(
        self,
        conversation_id: uuid.UUID,
        *,
        appointment_time: str | None = None,
        now: dt.datetime | None = None,
    ) -> List[FollowupDelivery]:
        """Schedule every enabled follow-up of the conversation's agent once.

        Configs that already have a delivery for this conversation are
        skipped, which makes a re-run after a partial failure harmless.
        """

        with self.session_factory() as session:
            conversation = session.get(Conversation, conversation_id)
            if conversation is None:
                logger.warning("Follow-ups skipped: conversation %s not found", conversation_id)
                return []
            agent = session.get(Agent, conversation.agent_id)
            if agent is None:
                return []
            configs = list(
                session.scalars(
                    select(FollowupConfig).where(
                        FollowupConfig.agent_id == agent.id,
                        FollowupConfig.enabled.is_(True),
                    )
                )
            )
            if not configs:
                return []
            existing = set(
                session.scalars(
                    select(FollowupDelivery.followup_config_id).where(
                        FollowupDelivery.conversation_id == conversation_id
                    )
                )
            )
            lead: Optional[Lead] = session.scalar(
                select(Lead).where(Lead.conversation_id == conversation_id).limit(1)
            )
            summary = get_conversation_summary(session, conversation_id)
            variables = build_variables(agent, conversation, lead, summary, appointment_time)

        created: List[FollowupDelivery] = []
        for config in configs:
            if config.id in existing:
                continue
            recipient = resolve_recipient(config.channel, variables)
            if not recipient:
                logger.info(
                    "No recipient for %s follow-up on %s", config.channel, conversation_id
                )
                continue
            try:
                created.append(
                    self.schedule(config, recipient, variables, conversation_id, now=now)
                )
            except IntegrityError:
                logger.info(
                    "Follow-up %s already scheduled for %s", config.id, conversation_id
                )
        return created


__all__ = ["FollowupScheduler", "build_variables", "resolve_recipient"]
