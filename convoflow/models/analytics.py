"""Analytics events and daily per-agent aggregates."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, JSONType, utcnow


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"
    __table_args__ = (
        Index("ix_analytics_events_agent_type", "agent_id", "event_type"),
    )

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
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="SET NULL"),
    )
    event_type: Mapped[str] = mapped_column(String(length=64), nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class AnalyticsAggregate(Base):
    """Daily rollup for one agent; unique per ``(agent_id, day)``."""

    __tablename__ = "analytics_aggregates"
    __table_args__ = (
        Index("ix_analytics_aggregates_agent_day_unique", "agent_id", "day", unique=True),
    )

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
    day: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    total_conversations: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    avg_duration: Mapped[float | None] = mapped_column(Float())
    resolution_rate: Mapped[float | None] = mapped_column(Float())
    escalation_rate: Mapped[float | None] = mapped_column(Float())
    avg_sentiment: Mapped[float | None] = mapped_column(Float())
    top_topics: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    channel_breakdown: Mapped[dict[str, int]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    total_leads: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


__all__ = ["AnalyticsAggregate", "AnalyticsEvent"]
