"""Database repository for conversations and their messages."""

from __future__ import annotations

import re
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Agent, Conversation, Lead, Message

_TRANSCRIPT_LINE = re.compile(r"^\s*(agent|assistant|bot|user|customer|caller)\s*:\s*(.*)$", re.I)
_AGENT_SPEAKERS = {"agent", "assistant", "bot"}


def parse_transcript(transcript: str) -> List[Tuple[str, str]]:
    """Split a ``Speaker: text`` transcript into ``(role, content)`` turns.

    Lines without a speaker prefix continue the previous turn.
    """

    turns: List[Tuple[str, str]] = []
    for line in transcript.splitlines():
        match = _TRANSCRIPT_LINE.match(line)
        if match:
            role = "agent" if match.group(1).lower() in _AGENT_SPEAKERS else "user"
            turns.append((role, match.group(2).strip()))
        elif turns and line.strip():
            role, content = turns[-1]
            turns[-1] = (role, f"{content} {line.strip()}".strip())
    return [(role, content) for role, content in turns if content]


class ConversationRepository:
    """SQLAlchemy-backed access to conversations within one session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # Agent lookups ------------------------------------------------------------
    def get_agent(self, agent_id: uuid.UUID) -> Optional[Agent]:
        return self._session.get(Agent, agent_id)

    def resolve_voice_agent(
        self, provider_agent_id: str | None, to_number: str | None
    ) -> Optional[Agent]:
        if provider_agent_id:
            agent = self._session.scalar(
                select(Agent)
                .where(Agent.provider_agent_id == provider_agent_id, Agent.is_active.is_(True))
                .limit(1)
            )
            if agent is not None:
                return agent
        if to_number:
            return self._session.scalar(
                select(Agent)
                .where(Agent.phone_number == to_number, Agent.is_active.is_(True))
                .limit(1)
            )
        return None

    def find_sms_agent(self, to_number: str) -> Optional[Agent]:
        return self._session.scalar(
            select(Agent)
            .where(
                Agent.phone_number == to_number,
                Agent.sms_enabled.is_(True),
                Agent.is_active.is_(True),
            )
            .limit(1)
        )

    # Conversation operations --------------------------------------------------
    def get(self, conversation_id: uuid.UUID) -> Optional[Conversation]:
        return self._session.get(Conversation, conversation_id)

    def get_by_call_id(self, call_id: str) -> Optional[Conversation]:
        return self._session.scalar(select(Conversation).where(Conversation.call_id == call_id))

    def find_open_conversation(
        self, agent_id: uuid.UUID, channel: str, visitor_id: str
    ) -> Optional[Conversation]:
        return self._session.scalar(
            select(Conversation)
            .where(
                Conversation.agent_id == agent_id,
                Conversation.channel == channel,
                Conversation.visitor_id == visitor_id,
                Conversation.status == "in_progress",
            )
            .order_by(Conversation.created_at.desc())
            .limit(1)
        )

    def create_conversation(self, **values: Any) -> Conversation:
        conversation = Conversation(**values)
        self._session.add(conversation)
        self._session.flush()
        return conversation

    def create_call_conversation(
        self,
        *,
        agent_id: uuid.UUID,
        call_id: str,
        from_number: str | None,
        to_number: str | None,
        status: str = "in_progress",
    ) -> Conversation:
        """Insert a voice conversation for ``call_id``.

        Raises:
            IntegrityError: If another transaction already inserted the same
                ``call_id``; callers re-read the winner's row.
        """

        return self.create_conversation(
            agent_id=agent_id,
            channel="voice",
            call_id=call_id,
            visitor_id=from_number,
            call_from=from_number,
            call_to=to_number,
            status=status,
        )

    # Message operations -------------------------------------------------------
    def add_message(
        self,
        conversation_id: uuid.UUID,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        message = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            metadata_=metadata,
        )
        self._session.add(message)
        self._session.flush()
        return message

    def list_messages(self, conversation_id: uuid.UUID) -> List[Message]:
        return list(
            self._session.scalars(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at, Message.id)
            )
        )

    def transcript_turns(self, conversation: Conversation) -> List[Tuple[str, str]]:
        """Return ordered ``(role, content)`` turns for analysis.

        Stored messages win; a voice call without enough stored turns falls
        back to the provider transcript.
        """

        turns = [(m.role, m.content) for m in self.list_messages(conversation.id)]
        if len(turns) < 2 and conversation.transcript:
            parsed = parse_transcript(conversation.transcript)
            if len(parsed) > len(turns):
                return parsed
        return turns

    def get_lead(self, conversation_id: uuid.UUID) -> Optional[Lead]:
        return self._session.scalar(
            select(Lead)
            .where(Lead.conversation_id == conversation_id)
            .order_by(Lead.created_at.desc())
            .limit(1)
        )


__all__ = ["ConversationRepository", "parse_transcript"]
