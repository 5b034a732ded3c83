"""SQLAlchemy declarative base and conversation-core models.

This package hosts the SQLAlchemy models used across the backend.  It exposes a
single declarative ``Base`` class that other modules can import when creating
tables.  Individual models live in dedicated modules within this package.
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Normalise ``value`` to an aware UTC datetime.

    SQLite hands back naive values for ``DateTime(timezone=True)`` columns;
    everything the core writes is UTC, so a naive value is read as UTC.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


# Re-export models for convenience so callers can import them via
# ``from convoflow.models import Conversation`` instead of touching private modules.
from .agent import Agent  # noqa: E402
from .analytics import AnalyticsAggregate, AnalyticsEvent  # noqa: E402
from .conversation import Conversation, ConversationAnalysis, Message  # noqa: E402
from .followup import FollowupConfig, FollowupDelivery  # noqa: E402
from .integration import Integration, WebhookDelivery  # noqa: E402
from .lead import Lead  # noqa: E402
from .training import DocumentChunk, TrainingSource  # noqa: E402

__all__ = [
    "Agent",
    "AnalyticsAggregate",
    "AnalyticsEvent",
    "Base",
    "Conversation",
    "ConversationAnalysis",
    "DocumentChunk",
    "FollowupConfig",
    "FollowupDelivery",
    "Integration",
    "JSONType",
    "Lead",
    "Message",
    "TrainingSource",
    "WebhookDelivery",
    "as_utc",
    "utcnow",
]
