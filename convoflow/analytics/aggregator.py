"""Daily per-agent rollups of conversations and their analyses."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from ..models import Agent, AnalyticsAggregate, Conversation, ConversationAnalysis, Lead, utcnow

logger = logging.getLogger(__name__)

TOP_TOPICS = 10


def _day_bounds(day: dt.date) -> tuple[dt.datetime, dt.datetime]:
    start = dt.datetime.combine(day, dt.time.min, tzinfo=dt.timezone.utc)
    return start, start + dt.timedelta(days=1)


def aggregate_daily(
    session: Session, agent_id: uuid.UUID, day: dt.date
) -> Optional[AnalyticsAggregate]:
    """Upsert the ``analytics_aggregates`` row for ``agent_id`` on ``day``.

    Returns ``None`` without writing when the agent had no conversations
    that day. The caller owns the transaction.
    """

    start, end = _day_bounds(day)
    conversations = session.execute(
        select(Conversation.id, Conversation.channel, Conversation.call_duration).where(
            Conversation.agent_id == agent_id,
            Conversation.created_at >= start,
            Conversation.created_at < end,
        )
    ).all()
    if not conversations:
        return None

    analyses = session.execute(
        select(
            ConversationAnalysis.sentiment_score,
            ConversationAnalysis.resolution_status,
            ConversationAnalysis.topics,
        ).where(ConversationAnalysis.conversation_id.in_([row.id for row in conversations]))
    ).all()

    durations = [row.call_duration for row in conversations if row.call_duration is not None]
    avg_duration = round(sum(durations) / len(durations)) if durations else None

    resolved = sum(1 for row in analyses if row.resolution_status == "resolved")
    escalated = sum(1 for row in analyses if row.resolution_status == "escalated")
    resolution_rate = resolved / len(analyses) if analyses else 0.0
    escalation_rate = escalated / len(analyses) if analyses else 0.0
    avg_sentiment = (
        sum(row.sentiment_score for row in analyses) / len(analyses) if analyses else 0.0
    )

    topic_counts: Counter[str] = Counter()
    for row in analyses:
        topic_counts.update(row.topics or [])
    top_topics: List[Dict[str, Any]] = [
        {"topic": topic, "count": count} for topic, count in topic_counts.most_common(TOP_TOPICS)
    ]
    channel_breakdown: Dict[str, int] = dict(Counter(row.channel for row in conversations))

    total_leads = session.scalar(
        select(func.count(Lead.id)).where(
            Lead.agent_id == agent_id, Lead.created_at >= start, Lead.created_at < end
        )
    )

    aggregate = session.scalar(
        select(AnalyticsAggregate).where(
            AnalyticsAggregate.agent_id == agent_id, AnalyticsAggregate.day == day
        )
    )
    if aggregate is None:
        aggregate = AnalyticsAggregate(agent_id=agent_id, day=day)
        session.add(aggregate)
    aggregate.total_conversations = len(conversations)
    aggregate.avg_duration = avg_duration
    aggregate.resolution_rate = resolution_rate
    aggregate.escalation_rate = escalation_rate
    aggregate.avg_sentiment = avg_sentiment
    aggregate.top_topics = top_topics
    aggregate.channel_breakdown = channel_breakdown
    aggregate.total_leads = int(total_leads or 0)
    aggregate.updated_at = utcnow()
    session.flush()
    return aggregate


def run_nightly_aggregation(
    session_factory: sessionmaker[Session], today: dt.date | None = None
) -> int:
    """Aggregate yesterday for every active agent; return how many succeeded."""

    day = (today or utcnow().date()) - dt.timedelta(days=1)
    with session_factory() as session:
        agent_ids = list(session.scalars(select(Agent.id).where(Agent.is_active.is_(True))))

    succeeded = 0
    for agent_id in agent_ids:
        try:
            with session_factory.begin() as session:
                aggregate_daily(session, agent_id, day)
        except Exception:
            logger.exception("Aggregation failed for agent %s on %s", agent_id, day)
            continue
        succeeded += 1
    logger.info("Nightly aggregation for %s: %d/%d agents", day, succeeded, len(agent_ids))
    return succeeded


__all__ = ["aggregate_daily", "run_nightly_aggregation"]
