"""Follow-up templates and scheduled deliveries."""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, utcnow

DELIVERY_CHANNELS = ("sms", "email")
DELIVERY_STATUSES = ("pending", "sending", "sent", "failed")


class FollowupConfig(Base):
    """Operator-managed template; read-only to the core."""

    __tablename__ = "followup_configs"
    __table_args__ = (Index("ix_followup_configs_agent_id", "agent_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
    )
    channel: Mapped[str] = mapped_column(String(length=16), nullable=False)
    template_body: Mapped[str] = mapped_column(Text(), nullable=False)
    template_subject: Mapped[str | None] = mapped_column(Text())
    delay_minutes: Mapped[int] = mapped_column(
        Integer(), nullable=False, default=0, server_default=text("0")
    )
    from_name: Mapped[str | None] = mapped_column(String(length=255))
    from_email: Mapped[str | None] = mapped_column(String(length=320))
    enabled: Mapped[bool] = mapped_column(
        nullable=False, default=True, server_default=text("true")
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class FollowupDelivery(Base):
    """One scheduled send with its rendered content frozen at creation.

    ``status`` moves ``pending -> sending -> sent|failed``. ``sending`` is the
    in-flight claim taken by a runner tick before dispatch; ``sent`` and
    ``failed`` are terminal.
    """

    __tablename__ = "followup_deliveries"
    __table_args__ = (
        Index("ix_followup_deliveries_status_scheduled", "status", "scheduled_for"),
        Index(
            "ix_followup_deliveries_config_conversation_unique",
            "followup_config_id",
            "conversation_id",
            unique=True,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    followup_config_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("followup_configs.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="SET NULL"),
    )
    channel: Mapped[str] = mapped_column(String(length=16), nullable=False)
    recipient: Mapped[str | None] = mapped_column(String(length=320))
    rendered_body: Mapped[str | None] = mapped_column(Text())
    rendered_subject: Mapped[str | None] = mapped_column(Text())
    from_name: Mapped[str | None] = mapped_column(String(length=255))
    from_email: Mapped[str | None] = mapped_column(String(length=320))
    scheduled_for: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(length=16),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    external_id: Mapped[str | None] = mapped_column(String(length=255))
    error_message: Mapped[str | None] = mapped_column(Text())
    sent_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = ["DELIVERY_CHANNELS", "DELIVERY_STATUSES", "FollowupConfig", "FollowupDelivery"]
