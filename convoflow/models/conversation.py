"""Conversation, message and analysis models.

A conversation is created on the first inbound event for a session and is
only ever mutated through conditional updates (status transitions, the
monotonic ``escalated`` flag, post-processing status). Messages are
append-only; their ``created_at`` order is the transcript order.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base, JSONType, utcnow

CHANNELS = ("chat", "sms", "voice")
CONVERSATION_STATUSES = ("in_progress", "completed", "failed")
PROCESSING_STATUSES = ("pending", "processing", "completed", "failed")
MESSAGE_ROLES = ("user", "agent")


class Conversation(Base):
    """One interaction session between an end user and an agent.

    Attributes:
        call_id: External call or session identifier supplied by the provider.
            Unique when present so that concurrent ``call.started`` deliveries
            resolve to a single row.
        visitor_id: Channel-specific identity of the end user (phone number
            for SMS, browser id for chat).
        escalated: Monotonic flag; flipped once by a conditional update.
        analyzed_at: Set by the first ``call.analyzed`` delivery only.
        post_processing_status: Progress of the offline analysis pipeline.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_call_id_unique", "call_id", unique=True),
        Index("ix_conversations_agent_id", "agent_id"),
        Index("ix_conversations_visitor", "agent_id", "channel", "visitor_id"),
        CheckConstraint(
            "satisfaction_rating IS NULL OR satisfaction_rating BETWEEN 1 AND 5",
            name="ck_conversations_satisfaction_rating",
        ),
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
    channel: Mapped[str] = mapped_column(String(length=16), nullable=False)
    call_id: Mapped[str | None] = mapped_column(String(length=255))
    visitor_id: Mapped[str | None] = mapped_column(String(length=255))
    call_from: Mapped[str | None] = mapped_column(String(length=32))
    call_to: Mapped[str | None] = mapped_column(String(length=32))
    status: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default="in_progress",
        server_default=text("'in_progress'"),
    )
    call_duration: Mapped[int | None] = mapped_column(Integer())
    recording_url: Mapped[str | None] = mapped_column(Text())
    transcript: Mapped[str | None] = mapped_column(Text())
    ended_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    analyzed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    escalated: Mapped[bool] = mapped_column(
        nullable=False, default=False, server_default=text("false")
    )
    escalation_reason: Mapped[str | None] = mapped_column(Text())
    satisfaction_rating: Mapped[int | None] = mapped_column(Integer())
    post_processing_status: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    messages: Mapped[List["Message"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )


class Message(Base):
    """A single append-only turn within a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(length=16), nullable=False)
    content: Mapped[str] = mapped_column(Text(), nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages")


class ConversationAnalysis(Base):
    """Structured analysis produced once per conversation by post-processing."""

    __tablename__ = "conversation_analysis"
    __table_args__ = (
        Index(
            "ix_conversation_analysis_conversation_unique",
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
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sentiment: Mapped[str] = mapped_column(String(length=16), nullable=False)
    sentiment_score: Mapped[float] = mapped_column(Float(), nullable=False)
    topics: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    summary: Mapped[str] = mapped_column(Text(), nullable=False)
    resolution_status: Mapped[str] = mapped_column(String(length=16), nullable=False)
    knowledge_gaps: Mapped[list[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    key_phrases: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    customer_intent: Mapped[str | None] = mapped_column(Text())
    confidence_avg: Mapped[float] = mapped_column(Float(), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = [
    "CHANNELS",
    "CONVERSATION_STATUSES",
    "Conversation",
    "ConversationAnalysis",
    "MESSAGE_ROLES",
    "Message",
    "PROCESSING_STATUSES",
]
