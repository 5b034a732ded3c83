import uuid

import pytest
from sqlalchemy import func, select

from convoflow.conversations import (
    CallAnalyzed,
    CallEnded,
    CallLifecycleService,
    CallStarted,
)
from convoflow.core.background import InlineDispatcher
from convoflow.models import AnalyticsEvent, Conversation


class RecordingProcessor:
    def __init__(self):
        self.calls = []

    def process(self, conversation_id):
        self.calls.append(conversation_id)
        return "completed"


@pytest.fixture
def processor():
    return RecordingProcessor()


@pytest.fixture
def lifecycle(session_factory, processor):
    return CallLifecycleService(session_factory, InlineDispatcher(), processor)


@pytest.fixture
def agent(make_agent):
    return make_agent(provider_agent_id="retell-agent-1", phone_number="+15550002222")


def _conversation(session_factory, call_id):
    with session_factory() as session:
        return session.scalar(select(Conversation).where(Conversation.call_id == call_id))


def _event_count(session_factory, event_type):
    with session_factory() as session:
        return session.scalar(
            select(func.count()).select_from(AnalyticsEvent).where(
                AnalyticsEvent.event_type == event_type
            )
        )


def test_started_creates_in_progress_conversation(lifecycle, agent, session_factory):
    outcome = lifecycle.apply(
        CallStarted(
            call_id="call-1",
            provider="retell",
            provider_agent_id="retell-agent-1",
            from_number="+15551230000",
        )
    )

    conversation = _conversation(session_factory, "call-1")
    assert outcome.conversation_id == conversation.id
    assert conversation.agent_id == agent.id
    assert conversation.channel == "voice"
    assert conversation.status == "in_progress"
    assert conversation.call_from == "+15551230000"
    assert _event_count(session_factory, "call_started") == 1


def test_duplicate_started_keeps_single_conversation(lifecycle, agent, session_factory):
    event = CallStarted(call_id="call-1", provider="retell", provider_agent_id="retell-agent-1")
    lifecycle.apply(event)
    second = lifecycle.apply(event)

    assert second.changed is False
    with session_factory() as session:
        assert session.scalar(select(func.count()).select_from(Conversation)) == 1
    assert _conversation(session_factory, "call-1").status == "in_progress"


def test_agent_resolved_by_called_number(lifecycle, agent, session_factory):
    lifecycle.apply(CallStarted(call_id="call-2", provider="bolna", to_number="+15550002222"))

    assert _conversation(session_factory, "call-2").agent_id == agent.id


def test_unknown_agent_is_ignored(lifecycle, agent, session_factory):
    outcome = lifecycle.apply(
        CallStarted(call_id="call-3", provider="retell", provider_agent_id="nobody")
    )

    assert outcome.action == "ignored"
    assert _conversation(session_factory, "call-3") is None


def test_ended_completes_call_and_sets_duration(lifecycle, agent, session_factory):
    lifecycle.apply(CallStarted(call_id="call-1", provider="retell", provider_agent_id="retell-agent-1"))
    lifecycle.apply(CallEnded(call_id="call-1", provider="retell", duration=95))

    conversation = _conversation(session_factory, "call-1")
    assert conversation.status == "completed"
    assert conversation.call_duration == 95
    assert conversation.ended_at is not None


def test_first_analyzed_enqueues_post_processing_once(
    lifecycle, agent, processor, session_factory
):
    lifecycle.apply(CallStarted(call_id="call-1", provider="retell", provider_agent_id="retell-agent-1"))
    analyzed = CallAnalyzed(
        call_id="call-1",
        provider="retell",
        duration=120,
        recording_url="https://cdn.example.com/rec.wav",
        transcript="Agent: Hello\nUser: Hi",
    )

    first = lifecycle.apply(analyzed)
    second = lifecycle.apply(analyzed)

    assert first.changed is True
    assert second.changed is False
    conversation = _conversation(session_factory, "call-1")
    assert processor.calls == [conversation.id]
    assert conversation.recording_url == "https://cdn.example.com/rec.wav"
    assert conversation.analyzed_at is not None
    assert _event_count(session_factory, "call_completed") == 1


def test_ended_after_analyzed_does_not_regress(lifecycle, agent, session_factory):
    lifecycle.apply(CallStarted(call_id="call-1", provider="retell", provider_agent_id="retell-agent-1"))
    lifecycle.apply(CallAnalyzed(call_id="call-1", provider="retell", duration=60))
    ended_at = _conversation(session_factory, "call-1").ended_at

    lifecycle.apply(CallEnded(call_id="call-1", provider="retell", duration=60))
    lifecycle.apply(CallStarted(call_id="call-1", provider="retell"))

    conversation = _conversation(session_factory, "call-1")
    assert conversation.status == "completed"
    assert conversation.ended_at == ended_at
    assert conversation.analyzed_at is not None


def test_out_of_order_analyzed_creates_completed_conversation(
    lifecycle, agent, processor, session_factory
):
    lifecycle.apply(
        CallAnalyzed(call_id="call-9", provider="retell", provider_agent_id="retell-agent-1")
    )

    conversation = _conversation(session_factory, "call-9")
    assert conversation.status == "completed"
    assert processor.calls == [conversation.id]


def test_post_processor_failure_does_not_fail_the_event(session_factory, agent):
    class Exploding:
        def process(self, conversation_id):
            raise RuntimeError("boom")

    lifecycle = CallLifecycleService(session_factory, InlineDispatcher(), Exploding())
    outcome = lifecycle.apply(
        CallAnalyzed(call_id=str(uuid.uuid4()), provider="retell", provider_agent_id="retell-agent-1")
    )

    assert outcome.changed is True
