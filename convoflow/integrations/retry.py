"""Periodic re-delivery of failed outbound integration webhooks."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, cast

import requests
from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.orm import Session, sessionmaker

from ..models import Integration, WebhookDelivery, utcnow
from .webhook import (
    MAX_ATTEMPTS,
    WEBHOOK_TIMEOUT,
    AttemptResult,
    attempt_delivery,
    encode_payload,
    next_retry_at,
    webhook_target,
)

logger = logging.getLogger(__name__)


class WebhookRetrySweep:
    """Re-attempt ``failed`` webhook deliveries whose retry time has come.

    Each row is claimed with a conditional update on its observed
    ``(status, attempts)`` pair before the HTTP call, so overlapping sweeps
    never re-send the same attempt.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        http: requests.Session | None = None,
        batch_size: int = 20,
        timeout: float = WEBHOOK_TIMEOUT,
    ) -> None:
        self.session_factory = session_factory
        self.http = http or requests.Session()
        self.batch_size = batch_size
        self.timeout = timeout

    def _due(self, now: dt.datetime) -> list[tuple[Any, int]]:
        with self.session_factory() as session:
            rows = session.execute(
                select(WebhookDelivery.id, WebhookDelivery.attempts)
                .where(
                    WebhookDelivery.status == "failed",
                    WebhookDelivery.next_retry_at.is_not(None),
                    WebhookDelivery.next_retry_at <= now,
                    WebhookDelivery.attempts < MAX_ATTEMPTS,
                )
                .order_by(WebhookDelivery.next_retry_at)
                .limit(self.batch_size)
            ).all()
        return [(row.id, row.attempts) for row in rows]

    def _claim(self, delivery_id: Any, attempts: int) -> bool:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.id == delivery_id,
                    WebhookDelivery.status == "failed",
                    WebhookDelivery.attempts == attempts,
                )
                .values(status="sending")
                .execution_options(synchronize_session=False)
            )
            return cast(CursorResult[Any], result).rowcount == 1

    def _finalize(
        self, delivery_id: Any, attempts: int, result: AttemptResult, now: dt.datetime
    ) -> None:
        with self.session_factory.begin() as session:
            session.execute(
                update(WebhookDelivery)
                .where(WebhookDelivery.id == delivery_id, WebhookDelivery.status == "sending")
                .values(
                    status="sent" if result.success else "failed",
                    attempts=attempts,
                    response_code=result.status_code,
                    response_body=result.response_body,
                    error_message=result.error,
                    next_retry_at=None if result.success else next_retry_at(attempts, now),
                )
                .execution_options(synchronize_session=False)
            )

    def retry_failed(self, now: dt.datetime | None = None) -> int:
        """Re-send due failed deliveries and return how many were re-attempted."""

        moment = now or utcnow()
        retried = 0
        for delivery_id, attempts in self._due(moment):
            if not self._claim(delivery_id, attempts):
                logger.debug("Webhook delivery %s claimed elsewhere", delivery_id)
                continue
            try:
                with self.session_factory() as session:
                    delivery = session.get(WebhookDelivery, delivery_id)
                    integration = (
                        session.get(Integration, delivery.integration_id) if delivery else None
                    )
                    payload = dict(delivery.payload) if delivery else {}
                    url, secret = (
                        webhook_target(integration) if integration else (None, None)
                    )
                if url:
                    result = attempt_delivery(
                        self.http,
                        url,
                        encode_payload(payload),
                        secret=secret,
                        timeout=self.timeout,
                    )
                else:
                    result = AttemptResult(False, error="Webhook URL not configured")
            except Exception as exc:
                logger.exception("Retrying webhook delivery %s raised", delivery_id)
                result = AttemptResult(False, error=str(exc) or type(exc).__name__)

            self._finalize(delivery_id, attempts + 1, result, moment)
            retried += 1
            logger.info(
                "Webhook delivery %s retry %d: %s",
                delivery_id,
                attempts + 1,
                "sent" if result.success else result.error,
            )
        return retried


__all__ = ["WebhookRetrySweep"]
