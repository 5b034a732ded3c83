"""Short conversation summaries for templates and integration payloads."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ConversationAnalysis, Message

FALLBACK_SUMMARY = "A conversation took place."
SUMMARY_MAX_CHARS = 200


def get_conversation_summary(session: Session, conversation_id: uuid.UUID) -> str:
    """Return the analysed summary, else the first user message, else a stock line."""

    summary = session.scalar(
        select(ConversationAnalysis.summary).where(
            ConversationAnalysis.conversation_id == conversation_id
        )
    )
    if summary:
        return summary

    first_question = session.scalar(
        select(Message.content)
        .where(Message.conversation_id == conversation_id, Message.role == "user")
        .order_by(Message.created_at, Message.id)
        .limit(1)
    )
    if not first_question:
        return FALLBACK_SUMMARY
    if len(first_question) > SUMMARY_MAX_CHARS:
        return first_question[:SUMMARY_MAX_CHARS] + "..."
    return first_question


__all__ = ["FALLBACK_SUMMARY", "get_conversation_summary"]
