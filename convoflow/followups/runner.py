"""Periodic delivery of due follow-ups.

A tick selects a bounded batch of due ``pending`` rows and claims each one by
moving it to ``sending`` with a conditional update. Only the caller whose
update matched dispatches the message, so overlapping ticks never send the
same row twice. Every claimed row ends ``sent`` or ``failed``.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.orm import Session, sessionmaker

from ..delivery.base import DeliveryResult, EmailSender, SMSSender
from ..models import Agent, FollowupConfig, FollowupDelivery, utcnow
from ..models.followup import DELIVERY_CHANNELS
from .scheduler import DEFAULT_BUSINESS_NAME

logger = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class RunReport:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class DeliveryRunner:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sms_sender: SMSSender,
        email_sender: EmailSender,
        *,
        batch_size: int = 50,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.sms_sender = sms_sender
        self.email_sender = email_sender
        self.batch_size = batch_size
        self.clock = clock

    def run(self, now: dt.datetime | None = None) -> RunReport:
        """Deliver up to ``batch_size`` due rows and report what happened."""

        moment = now or self.clock()
        with self.session_factory() as session:
            due = list(
                session.scalars(
                    select(FollowupDelivery.id)
                    .where(
                        FollowupDelivery.status == "pending",
                        FollowupDelivery.scheduled_for <= moment,
                    )
                    .order_by(FollowupDelivery.scheduled_for)
                    .limit(self.batch_size)
                )
            )

        report = RunReport()
        for delivery_id in due:
            outcome = self._process_one(delivery_id, moment)
            if outcome == SKIPPED:
                report.skipped += 1
                continue
            report.processed += 1
            if outcome == SENT:
                report.sent += 1
            else:
                report.failed += 1
        if due:
            logger.info("Follow-up run: %s", report.as_dict())
        return report

    def _claim(self, delivery_id: uuid.UUID) -> bool:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(FollowupDelivery)
                .where(FollowupDelivery.id == delivery_id, FollowupDelivery.status == "pending")
                .values(status="sending")
                .execution_options(synchronize_session=False)
            )
            return cast(CursorResult[Any], result).rowcount == 1

    def _finalize(
        self, delivery_id: uuid.UUID, result: DeliveryResult, moment: dt.datetime
    ) -> None:
        with self.session_factory.begin() as session:
            session.execute(
                update(FollowupDelivery)
                .where(FollowupDelivery.id == delivery_id, FollowupDelivery.status == "sending")
                .values(
                    status=SENT if result.success else FAILED,
                    external_id=result.message_id,
                    error_message=result.error,
                    sent_at=moment if result.success else None,
                )
                .execution_options(synchronize_session=False)
            )

    def _process_one(self, delivery_id: uuid.UUID, moment: dt.datetime) -> str:
        if not self._claim(delivery_id):
            logger.debug("Follow-up %s claimed by another run", delivery_id)
            return SKIPPED
        try:
            result = self._dispatch(delivery_id)
        except Exception as exc:
            logger.exception("Follow-up %s dispatch raised", delivery_id)
            result = DeliveryResult(False, error=str(exc) or type(exc).__name__)
        self._finalize(delivery_id, result, moment)
        return SENT if result.success else FAILED

    def _dispatch(self, delivery_id: uuid.UUID) -> DeliveryResult:
        with self.session_factory() as session:
            delivery = session.get(FollowupDelivery, delivery_id)
            if delivery is None:
                return DeliveryResult(False, error="Delivery not found")
            business_name = session.scalar(
                select(Agent.name)
                .join(FollowupConfig, FollowupConfig.agent_id == Agent.id)
                .where(FollowupConfig.id == delivery.followup_config_id)
            )

        channel = delivery.channel
        if channel not in DELIVERY_CHANNELS:
            logger.warning("Follow-up %s has unknown channel %r", delivery_id, channel)
            return DeliveryResult(False, error=f"Unknown channel: {channel}")
        if not delivery.recipient or not delivery.rendered_body:
            return DeliveryResult(False, error="Missing delivery data")

        if channel == "sms":
            result = self.sms_sender.send_sms(delivery.recipient, delivery.rendered_body)
        else:
            subject = delivery.rendered_subject or (
                f"Follow-up from {business_name or DEFAULT_BUSINESS_NAME}"
            )
            result = self.email_sender.send_email(
                delivery.recipient,
                subject,
                delivery.rendered_body,
                from_name=delivery.from_name,
                from_email=delivery.from_email,
            )
        logger.info(
            "Follow-up %s %s to %s: %s",
            delivery_id,
            channel,
            delivery.recipient,
            "sent" if result.success else result.error,
        )
        return result


__all__ = ["DeliveryRunner", "RunReport"]
