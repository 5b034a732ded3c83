"""Offline processing of finished conversations.

``process`` runs analysis, follow-up scheduling and integration dispatch for
one conversation and records the result in ``post_processing_status``. Every
step can be repeated: the analysis is upserted per conversation and
follow-ups are scheduled at most once per config. A failed run is picked up
again by :meth:`ConversationPostProcessor.retry_failed_processing`.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..conversations.repository import ConversationRepository
from ..core.background import Dispatcher
from ..integrations.payload import model_to_dict
from ..models import AnalyticsEvent, Conversation, ConversationAnalysis, utcnow
from .analyzer import AnalysisPayload, ConversationAnalyzer

logger = logging.getLogger(__name__)

RETRY_WINDOW = dt.timedelta(hours=24)
MIN_TURNS = 2


class FollowupScheduling(Protocol):
    def schedule_for_conversation(self, conversation_id: uuid.UUID) -> Any: ...


class EventDispatch(Protocol):
    def dispatch(self, event: str, agent_id: uuid.UUID, **kwargs: Any) -> Any: ...


def completion_event(channel: str | None) -> str:
    return "call_completed" if channel == "voice" else "chat_completed"


class ConversationPostProcessor:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        analyzer: ConversationAnalyzer,
        scheduler: Optional[FollowupScheduling] = None,
        integrations: Optional[EventDispatch] = None,
        dispatcher: Optional[Dispatcher] = None,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.analyzer = analyzer
        self.scheduler = scheduler
        self.integrations = integrations
        self.dispatcher = dispatcher
        self.clock = clock

    def _set_status(self, conversation_id: uuid.UUID, status: str) -> bool:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(post_processing_status=status, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return bool(getattr(result, "rowcount", 0))

    def process(self, conversation_id: uuid.UUID) -> str | None:
        """Post-process one conversation and return its final processing status.

        Returns ``None`` when the conversation does not exist. Failures are
        logged and leave the conversation ``failed``; they are not raised.
        """

        if not self._set_status(conversation_id, "processing"):
            logger.warning("Post-processing skipped: conversation %s not found", conversation_id)
            return None

        try:
            with self.session_factory() as session:
                conversation = session.get(Conversation, conversation_id)
                if conversation is None:
                    return None
                turns = ConversationRepository(session).transcript_turns(conversation)
                agent_id = conversation.agent_id
                channel = conversation.channel
                snapshot = model_to_dict(conversation)

            if len(turns) < MIN_TURNS:
                logger.info(
                    "Post-processing %s: %d message(s), nothing to analyze",
                    conversation_id,
                    len(turns),
                )
                self._set_status(conversation_id, "completed")
                return "completed"

            analysis = self.analyzer.analyze(turns)
            self._store_analysis(conversation_id, agent_id, analysis)
            if self.scheduler is not None:
                self.scheduler.schedule_for_conversation(conversation_id)
        except Exception:
            logger.exception("Post-processing failed for %s", conversation_id)
            self._set_status(conversation_id, "failed")
            return "failed"

        if self.integrations is not None and self.dispatcher is not None:
            submitted = self.dispatcher.submit(
                "integration-dispatch",
                self.integrations.dispatch,
                completion_event(channel),
                agent_id,
                conversation_id=conversation_id,
                conversation=snapshot,
            )
            if not submitted:
                logger.error("Could not enqueue integrations for %s", conversation_id)

        self._set_status(conversation_id, "completed")
        logger.info("Post-processing completed for %s", conversation_id)
        return "completed"

    def _store_analysis(
        self, conversation_id: uuid.UUID, agent_id: uuid.UUID, analysis: AnalysisPayload
    ) -> None:
        """Upsert the analysis row; knowledge gaps are logged on first insert only."""

        values: Dict[str, Any] = analysis.model_dump()
        if self._update_analysis(conversation_id, values):
            return
        try:
            self._insert_analysis(conversation_id, agent_id, analysis, values)
        except IntegrityError:
            # A concurrent run inserted first.
            if not self._update_analysis(conversation_id, values):
                raise

    def _update_analysis(self, conversation_id: uuid.UUID, values: Dict[str, Any]) -> bool:
        with self.session_factory.begin() as session:
            row = session.scalar(
                select(ConversationAnalysis).where(
                    ConversationAnalysis.conversation_id == conversation_id
                )
            )
            if row is None:
                return False
            for key, value in values.items():
                setattr(row, key, value)
            return True

    def _insert_analysis(
        self,
        conversation_id: uuid.UUID,
        agent_id: uuid.UUID,
        analysis: AnalysisPayload,
        values: Dict[str, Any],
    ) -> None:
        with self.session_factory.begin() as session:
            session.add(ConversationAnalysis(conversation_id=conversation_id, **values))
            for gap in analysis.knowledge_gaps:
                session.add(
                    AnalyticsEvent(
                        agent_id=agent_id,
                        conversation_id=conversation_id,
                        event_type="knowledge_gap",
                        event_data={"question": gap},
                    )
                )

    def retry_failed_processing(self, limit: int = 10, now: dt.datetime | None = None) -> int:
        """Re-run ``failed`` conversations created in the last 24 hours."""

        moment = now or self.clock()
        with self.session_factory() as session:
            failed: List[uuid.UUID] = list(
                session.scalars(
                    select(Conversation.id)
                    .where(
                        Conversation.post_processing_status == "failed",
                        Conversation.created_at >= moment - RETRY_WINDOW,
                    )
                    .order_by(Conversation.created_at)
                    .limit(limit)
                )
            )

        retried = 0
        for conversation_id in failed:
            status = self.process(conversation_id)
            if status is not None:
                retried += 1
            logger.info("Retried post-processing for %s: %s", conversation_id, status)
        return retried


__all__ = ["ConversationPostProcessor", "completion_event"]
