"""Provider-agnostic call lifecycle state machine.

Every transition is a conditional ``UPDATE`` so that duplicated and
reordered provider deliveries converge on the same record:

* ``started`` moves a fresh conversation to ``in_progress`` and never touches
  one that is already in progress or terminal.
* ``ended`` and ``analyzed`` both finalise the call as ``completed``;
  duration and recording fields are last-write-wins, ``ended_at`` is only
  set once.
* Only the first ``analyzed`` delivery (``analyzed_at IS NULL``) records the
  ``call_completed`` analytics event and enqueues post-processing.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Callable, Protocol, cast

from sqlalchemy import func, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..core.background import Dispatcher
from ..models import AnalyticsEvent, Conversation, utcnow
from .models import CallAnalyzed, CallEnded, CallStarted, LifecycleOutcome, NormalizedCallEvent
from .repository import ConversationRepository

logger = logging.getLogger(__name__)

_NOT_RESTARTABLE = ("in_progress", "completed", "failed")


class PostProcessor(Protocol):
    def process(self, conversation_id: uuid.UUID) -> Any: ...


def _rowcount(result: Any) -> int:
    return int(cast(CursorResult[Any], result).rowcount or 0)


class CallLifecycleService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        dispatcher: Dispatcher,
        post_processor: PostProcessor | None = None,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.post_processor = post_processor
        self.clock = clock

    # ------------------------------------------------------------------
    def apply(self, event: NormalizedCallEvent) -> LifecycleOutcome:
        """Apply ``event`` to the conversation keyed by its call id."""

        conversation_id = self._ensure_conversation(event)
        if conversation_id is None:
            logger.info(
                "Ignoring %s for unknown call %s from %s: no matching agent",
                event.kind,
                event.call_id,
                event.provider,
            )
            return LifecycleOutcome("ignored")

        if isinstance(event, CallStarted):
            return self._started(conversation_id)
        if isinstance(event, CallEnded):
            return self._ended(conversation_id, event)
        if isinstance(event, CallAnalyzed):
            return self._analyzed(conversation_id, event)
        raise TypeError(f"Unsupported call event: {event!r}")

    # ------------------------------------------------------------------
    def _ensure_conversation(self, event: NormalizedCallEvent) -> uuid.UUID | None:
        with self.session_factory() as session:
            repo = ConversationRepository(session)
            existing = repo.get_by_call_id(event.call_id)
            if existing is not None:
                return existing.id
            agent = repo.resolve_voice_agent(event.provider_agent_id, event.to_number)
            if agent is None:
                return None
            agent_id = agent.id

        status = "in_progress" if isinstance(event, CallStarted) else "completed"
        try:
            with self.session_factory.begin() as session:
                conversation = ConversationRepository(session).create_call_conversation(
                    agent_id=agent_id,
                    call_id=event.call_id,
                    from_number=event.from_number,
                    to_number=event.to_number,
                    status=status,
                )
                conversation_id = conversation.id
                session.add(
                    AnalyticsEvent(
                        agent_id=agent_id,
                        conversation_id=conversation_id,
                        event_type="call_started",
                        event_data={"call_id": event.call_id, "provider": event.provider},
                    )
                )
        except IntegrityError:
            with self.session_factory() as session:
                existing = ConversationRepository(session).get_by_call_id(event.call_id)
                if existing is None:
                    raise
                return existing.id
        logger.info("Created voice conversation %s for call %s", conversation_id, event.call_id)
        return conversation_id

    def _started(self, conversation_id: uuid.UUID) -> LifecycleOutcome:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    Conversation.status.not_in(_NOT_RESTARTABLE),
                )
                .values(status="in_progress", updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
        return LifecycleOutcome("started", conversation_id, _rowcount(result) == 1)

    def _finalize_values(
        self, now: dt.datetime, event: CallEnded | CallAnalyzed
    ) -> dict[str, Any]:
        values: dict[str, Any] = {
            "status": "completed",
            "ended_at": func.coalesce(Conversation.ended_at, now),
            "updated_at": now,
        }
        if event.duration is not None:
            values["call_duration"] = event.duration
        return values

    def _ended(self, conversation_id: uuid.UUID, event: CallEnded) -> LifecycleOutcome:
        now = self.clock()
        with self.session_factory.begin() as session:
            result = session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(**self._finalize_values(now, event))
                .execution_options(synchronize_session=False)
            )
        return LifecycleOutcome("ended", conversation_id, _rowcount(result) == 1)

    def _analyzed(self, conversation_id: uuid.UUID, event: CallAnalyzed) -> LifecycleOutcome:
        now = self.clock()
        values = self._finalize_values(now, event)
        if event.recording_url is not None:
            values["recording_url"] = event.recording_url
        if event.transcript is not None:
            values["transcript"] = event.transcript

        with self.session_factory.begin() as session:
            session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            first = session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id, Conversation.analyzed_at.is_(None))
                .values(analyzed_at=now)
                .execution_options(synchronize_session=False)
            )
            is_first = _rowcount(first) == 1
            if is_first:
                conversation = session.get(Conversation, conversation_id)
                if conversation is not None:
                    session.add(
                        AnalyticsEvent(
                            agent_id=conversation.agent_id,
                            conversation_id=conversation_id,
                            event_type="call_completed",
                            event_data={
                                "call_id": event.call_id,
                                "duration": event.duration,
                                "has_recording": bool(event.recording_url),
                                "provider": event.provider,
                                "visitor_id": conversation.call_from,
                            },
                        )
                    )

        if not is_first:
            logger.info("Duplicate analyzed event for call %s; skipping side effects", event.call_id)
            return LifecycleOutcome("analyzed", conversation_id, False)

        if self.post_processor is None:
            logger.warning("No post-processor configured; conversation %s not queued", conversation_id)
        elif not self.dispatcher.submit(
            "post-process", self.post_processor.process, conversation_id
        ):
            logger.error("Failed to enqueue post-processing for conversation %s", conversation_id)
        return LifecycleOutcome("analyzed", conversation_id, True)


__all__ = ["CallLifecycleService", "PostProcessor"]
