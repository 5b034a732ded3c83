import datetime as dt

import pytest
from sqlalchemy import select

import jobs
from convoflow.models import AnalyticsAggregate, Conversation

DIALOGUE = [("user", "Do you take walk-ins?"), ("agent", "Yes, until 4pm.")]


@pytest.fixture
def cli_runtime(runtime, monkeypatch):
    monkeypatch.setattr(jobs, "build_runtime", lambda **kwargs: runtime)
    return runtime


def test_cli_process_runs_post_processing(cli_runtime, make_agent, make_conversation, session_factory):
    conversation = make_conversation(make_agent(), DIALOGUE)

    assert jobs.main(["process", str(conversation.id)]) == 0

    with session_factory() as session:
        stored = session.get(Conversation, conversation.id)
    assert stored.post_processing_status == "completed"


def test_cli_aggregate_for_explicit_day(cli_runtime, make_agent, make_conversation, session_factory):
    agent = make_agent()
    make_conversation(agent, created_at=dt.datetime(2024, 5, 1, 9, tzinfo=dt.timezone.utc))

    jobs.main(["aggregate", "--day", "2024-05-01"])

    with session_factory() as session:
        aggregate = session.scalar(select(AnalyticsAggregate))
    assert aggregate.day == dt.date(2024, 5, 1)
    assert aggregate.total_conversations == 1


def test_cli_followups_and_retries(cli_runtime, caplog):
    caplog.set_level("INFO", logger="convoflow.jobs")

    for job in (["followups"], ["retry-webhooks"], ["retry-processing", "--limit", "5"]):
        assert jobs.main(job) == 0

    assert '"retried": 0' in caplog.text


def test_cli_rejects_bad_conversation_id(cli_runtime):
    with pytest.raises(SystemExit):
        jobs.main(["process", "not-a-uuid"])
    with pytest.raises(SystemExit):
        jobs.main([])
