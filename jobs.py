"""Command line runner for the periodic maintenance jobs.

Each subcommand performs one tick of a job that is otherwise triggered over
``/api/internal/*`` by a scheduler. Background work runs inline so the
process exits only after every side effect has been attempted.

Usage::

    python jobs.py followups
    python jobs.py retry-webhooks
    python jobs.py retry-processing --limit 10
    python jobs.py aggregate --day 2024-05-01
    python jobs.py process <conversation-id>
"""

from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import sys
import uuid

from dotenv import load_dotenv
from sqlalchemy import select

from convoflow.analytics import aggregate_daily, run_nightly_aggregation
from convoflow.core.background import InlineDispatcher
from convoflow.models import Agent
from convoflow.runtime import Runtime, build_runtime


def _aggregate(runtime: Runtime, day: dt.date | None) -> int:
    if day is None:
        return run_nightly_aggregation(runtime.session_factory)
    with runtime.session_factory() as session:
        agent_ids = list(session.scalars(select(Agent.id)))
    for agent_id in agent_ids:
        with runtime.session_factory.begin() as session:
            aggregate_daily(session, agent_id, day)
    return len(agent_ids)


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and run the requested job once."""

    parser = argparse.ArgumentParser(description="Run convoflow maintenance jobs")
    sub = parser.add_subparsers(dest="job", required=True)
    sub.add_parser("followups", help="Deliver due follow-ups")
    sub.add_parser("retry-webhooks", help="Re-send failed integration webhooks")
    retry = sub.add_parser("retry-processing", help="Re-run failed post-processing")
    retry.add_argument("--limit", type=int, default=None)
    aggregate = sub.add_parser("aggregate", help="Aggregate daily analytics")
    aggregate.add_argument(
        "--day",
        type=dt.date.fromisoformat,
        default=None,
        help="Day to aggregate (YYYY-MM-DD); defaults to yesterday for active agents",
    )
    process = sub.add_parser("process", help="Post-process one conversation")
    process.add_argument("conversation_id", type=uuid.UUID)

    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    log = logging.getLogger("convoflow.jobs")

    runtime = build_runtime(dispatcher=InlineDispatcher())
    try:
        if args.job == "followups":
            result: object = runtime.delivery_runner.run().as_dict()
        elif args.job == "retry-webhooks":
            result = {"retried": runtime.webhook_sweep.retry_failed()}
        elif args.job == "retry-processing":
            limit = args.limit or runtime.settings.processing_retry_batch_size
            result = {"retried": runtime.post_processor.retry_failed_processing(limit)}
        elif args.job == "aggregate":
            result = {"agents": _aggregate(runtime, args.day)}
        else:
            result = {"status": runtime.post_processor.process(args.conversation_id)}
    finally:
        runtime.close()

    log.info("%s: %s", args.job, json.dumps(result))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI execution
    sys.exit(main())
