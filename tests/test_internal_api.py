import datetime as dt
import uuid

import pytest
from sqlalchemy import select

from convoflow.models import (
    AnalyticsAggregate,
    Conversation,
    FollowupDelivery,
    TrainingSource,
)
from convoflow.tools import ToolResult

HEADERS = {"X-Internal-Secret": "internal-secret"}
DIALOGUE = [("user", "Do you take walk-ins?"), ("agent", "Yes, until 4pm.")]


def test_wrong_secret_is_unauthorized(client):
    resp = client.post(
        "/api/internal/process-followups", headers={"X-Internal-Secret": "nope"}
    )

    assert resp.status_code == 401


def test_missing_secret_is_unauthorized(client):
    assert client.post("/api/internal/retry-webhooks").status_code == 401


def test_unconfigured_secret_in_production_is_server_error(client, runtime, monkeypatch):
    monkeypatch.setattr(runtime, "settings", runtime.settings.__class__())
    monkeypatch.setenv("APP_ENV", "production")

    assert client.post("/api/internal/process-followups").status_code == 500


def test_unconfigured_secret_is_open_outside_production(client, runtime, monkeypatch):
    monkeypatch.setattr(runtime, "settings", runtime.settings.__class__())

    resp = client.post("/api/internal/process-followups")

    assert resp.status_code == 200


def test_process_conversation(client, make_agent, make_conversation, analyzer):
    conversation = make_conversation(make_agent(), DIALOGUE)

    resp = client.post(
        "/api/internal/process-conversation",
        json={"conversationId": str(conversation.id)},
        headers=HEADERS,
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "status": "completed"}
    assert len(analyzer.calls) == 1


def test_process_unknown_conversation_is_not_found(client):
    resp = client.post(
        "/api/internal/process-conversation",
        json={"conversationId": str(uuid.uuid4())},
        headers=HEADERS,
    )

    assert resp.status_code == 404


def test_process_conversation_requires_id(client):
    resp = client.post("/api/internal/process-conversation", json={}, headers=HEADERS)

    assert resp.status_code == 422


def test_process_training_upload(client, make_agent, session_factory):
    agent = make_agent()
    with session_factory.begin() as session:
        source = TrainingSource(agent_id=agent.id, source_type="document", name="faq.txt")
        session.add(source)

    resp = client.post(
        "/api/internal/process-training",
        json={
            "type": "upload",
            "sourceId": str(source.id),
            "agentId": str(agent.id),
            "fileName": "faq.txt",
            "extractedText": "We are open Monday to Friday.",
        },
        headers=HEADERS,
    )

    assert resp.json() == {"success": True}
    with session_factory() as session:
        assert session.get(TrainingSource, source.id).status == "completed"


@pytest.mark.parametrize(
    "body",
    [
        {"type": "upload", "agentId": str(uuid.uuid4())},
        {"type": "scrape", "sourceId": str(uuid.uuid4()), "agentId": str(uuid.uuid4())},
        {"type": "upload", "sourceId": str(uuid.uuid4()), "agentId": str(uuid.uuid4())},
    ],
)
def test_process_training_missing_fields(client, body):
    resp = client.post("/api/internal/process-training", json=body, headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing required fields"


def test_execute_tool(client, runtime, make_agent):
    agent = make_agent()
    runtime.tools.register(
        "check_hours", lambda args, ctx: {"open": "9am", "agent": ctx.agent.name}
    )
    runtime.tools.register(
        "book", lambda args, ctx: ToolResult(False, error="No slots for " + args["day"])
    )

    ok = client.post(
        "/api/internal/execute-tool",
        json={"toolName": "check_hours", "agentId": str(agent.id)},
        headers=HEADERS,
    )
    failed = client.post(
        "/api/internal/execute-tool",
        json={"toolName": "book", "agentId": str(agent.id), "args": {"day": "Sunday"}},
        headers=HEADERS,
    )
    unknown = client.post(
        "/api/internal/execute-tool",
        json={"toolName": "nope", "agentId": str(agent.id)},
        headers=HEADERS,
    )

    assert ok.json() == {"success": True, "data": {"open": "9am", "agent": agent.name}}
    assert failed.json() == {"success": False, "error": "No slots for Sunday"}
    assert unknown.json() == {"success": False, "error": "Unknown tool: nope"}


def test_execute_tool_for_unknown_agent(client):
    resp = client.post(
        "/api/internal/execute-tool",
        json={"toolName": "check_hours", "agentId": str(uuid.uuid4())},
        headers=HEADERS,
    )

    assert resp.json() == {"success": False, "error": "Agent not found"}


def test_handle_escalation_dedupes(client, make_agent, make_conversation, email_sender):
    agent = make_agent(escalation_email="desk@example.com")
    conversation = make_conversation(agent, status="in_progress")
    body = {
        "conversationId": str(conversation.id),
        "agentId": str(agent.id),
        "reason": "Requested human agent",
        "channel": "chat",
    }

    first = client.post("/api/internal/handle-escalation", json=body, headers=HEADERS)
    second = client.post("/api/internal/handle-escalation", json=body, headers=HEADERS)

    assert first.json() == {"handled": True}
    assert second.json() == {"skipped": True, "reason": "already_escalated"}
    assert len(email_sender.calls) == 1


def test_handle_escalation_unknown_conversation(client):
    resp = client.post(
        "/api/internal/handle-escalation",
        json={
            "conversationId": str(uuid.uuid4()),
            "agentId": str(uuid.uuid4()),
            "reason": "Legal threat",
        },
        headers=HEADERS,
    )

    assert resp.status_code == 404


def test_process_followups(client, make_agent, make_followup_config, session_factory, sms_sender):
    config = make_followup_config(make_agent())
    with session_factory.begin() as session:
        session.add(
            FollowupDelivery(
                followup_config_id=config.id,
                channel="sms",
                recipient="+15551230000",
                rendered_body="Thanks!",
                scheduled_for=dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=5),
            )
        )

    resp = client.post("/api/internal/process-followups", headers=HEADERS)

    assert resp.json() == {"processed": 1, "sent": 1, "failed": 0, "skipped": 0}
    assert len(sms_sender.calls) == 1


def test_retry_processing(client, make_agent, make_conversation, session_factory):
    conversation = make_conversation(
        make_agent(), DIALOGUE, post_processing_status="failed"
    )

    resp = client.post("/api/internal/retry-processing", headers=HEADERS)

    assert resp.json() == {"retried": 1}
    with session_factory() as session:
        stored = session.get(Conversation, conversation.id)
    assert stored.post_processing_status == "completed"


def test_retry_webhooks_with_nothing_due(client):
    resp = client.post("/api/internal/retry-webhooks", headers=HEADERS)

    assert resp.json() == {"retried": 0}


def test_aggregate_analytics(client, make_agent, make_conversation, session_factory):
    agent = make_agent()
    yesterday = dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=1)
    make_conversation(agent, created_at=yesterday)

    resp = client.post("/api/internal/aggregate-analytics", headers=HEADERS)

    assert resp.json() == {"success": True, "agents": 1}
    with session_factory() as session:
        aggregate = session.scalar(select(AnalyticsAggregate))
    assert aggregate.agent_id == agent.id
    assert aggregate.total_conversations == 1


def test_health_and_version(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/api/version").json()["version"] == "0.1.0"
