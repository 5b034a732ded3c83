import threading
import uuid

import pytest
from sqlalchemy import select

from convoflow.core.background import InlineDispatcher
from convoflow.escalation import ConversationNotFoundError, EscalationNotifier, EscalationService
from convoflow.models import AnalyticsEvent, Conversation


class RecordingIntegrations:
    def __init__(self):
        self.calls = []

    def dispatch(self, event, agent_id, **kwargs):
        self.calls.append((event, agent_id, kwargs))
        return []


@pytest.fixture
def integrations():
    return RecordingIntegrations()


@pytest.fixture
def service(session_factory, sms_sender, email_sender, integrations):
    notifier = EscalationNotifier(sms_sender, email_sender, "https://app.example.com")
    return EscalationService(session_factory, notifier, InlineDispatcher(), integrations)


@pytest.fixture
def conversation(make_agent, make_conversation):
    agent = make_agent(escalation_email="desk@example.com", escalation_phone="+15550009999")
    return make_conversation(agent, channel="sms", status="in_progress")


def test_first_escalation_notifies_and_records(
    service, conversation, session_factory, sms_sender, email_sender, integrations
):
    outcome = service.handle(conversation.id, "Dental emergency")

    assert outcome.as_dict() == {"handled": True}
    assert len(sms_sender.calls) == 1
    assert len(email_sender.calls) == 1
    assert integrations.calls[0][0] == "escalation_detected"
    assert integrations.calls[0][2]["conversation"]["channel"] == "sms"

    with session_factory() as session:
        stored = session.get(Conversation, conversation.id)
        assert stored.escalated is True
        assert stored.escalation_reason == "Dental emergency"
        events = session.scalars(
            select(AnalyticsEvent).where(AnalyticsEvent.event_type == "escalation")
        ).all()
        assert [e.event_data for e in events] == [{"reason": "Dental emergency", "channel": "sms"}]


def test_second_escalation_is_skipped(service, conversation, sms_sender, email_sender):
    service.handle(conversation.id, "Dental emergency")
    outcome = service.handle(conversation.id, "Complaint filed")

    assert outcome.as_dict() == {"skipped": True, "reason": "already_escalated"}
    assert len(sms_sender.calls) == 1
    assert len(email_sender.calls) == 1


def test_concurrent_escalations_notify_once(service, conversation, sms_sender, email_sender):
    barrier = threading.Barrier(4)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        outcome = service.handle(conversation.id, "Requested human agent")
        with lock:
            outcomes.append(outcome.status)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["handled", "skipped", "skipped", "skipped"]
    assert len(sms_sender.calls) == 1
    assert len(email_sender.calls) == 1


def test_missing_conversation_raises(service):
    with pytest.raises(ConversationNotFoundError):
        service.handle(uuid.uuid4(), "Emergency mentioned")
