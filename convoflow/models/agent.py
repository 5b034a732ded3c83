"""Agent snapshot model.

Agent configuration is owned by the dashboard; the core only reads the
fields it needs for routing webhooks, escalation rules and notifications.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import DateTime, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, utcnow


class Agent(Base):
    """A configured AI agent belonging to an organization.

    Attributes:
        name: Display name, also used as the business name in templates.
        vertical: Business category selecting escalation trigger rules.
        escalation_email: Optional e-mail address notified on escalation.
        escalation_phone: Optional phone number notified on escalation.
        phone_number: Number the agent answers calls and SMS on.
        provider_agent_id: Identifier of the agent at the voice provider.
    """

    __tablename__ = "agents"
    __table_args__ = (
        Index("ix_agents_phone_number", "phone_number"),
        Index("ix_agents_provider_agent_id", "provider_agent_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    vertical: Mapped[str] = mapped_column(
        String(length=64),
        nullable=False,
        default="other",
        server_default=text("'other'"),
    )
    escalation_email: Mapped[str | None] = mapped_column(String(length=320))
    escalation_phone: Mapped[str | None] = mapped_column(String(length=32))
    phone_number: Mapped[str | None] = mapped_column(String(length=32))
    provider_agent_id: Mapped[str | None] = mapped_column(String(length=255))
    sms_enabled: Mapped[bool] = mapped_column(
        nullable=False, default=False, server_default=text("false")
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False, default=True, server_default=text("true")
    )
    fallback_message: Mapped[str | None] = mapped_column(Text())
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = ["Agent"]
