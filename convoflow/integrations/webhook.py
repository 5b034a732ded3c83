"""Signed outbound webhook delivery with a persisted attempt log."""

from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

import requests
from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from ..models import Integration, WebhookDelivery, utcnow

logger = logging.getLogger(__name__)

RETRY_DELAYS = tuple(dt.timedelta(minutes=m) for m in (1, 5, 15, 60, 240))
MAX_ATTEMPTS = len(RETRY_DELAYS)
RESPONSE_BODY_LIMIT = 1000
WEBHOOK_TIMEOUT = 10
SIGNATURE_HEADER = "X-Webhook-Signature"


@dataclass(frozen=True)
class AttemptResult:
    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error: str | None = None


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    """Return the ``sha256=<hex>`` signature header value for ``body``."""

    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def next_retry_at(attempts: int, now: dt.datetime) -> dt.datetime | None:
    """Schedule the retry that follows attempt number ``attempts``.

    Returns ``None`` once ``attempts`` reaches :data:`MAX_ATTEMPTS`; the row
    is then permanently failed.
    """

    if attempts < 1 or attempts >= MAX_ATTEMPTS:
        return None
    return now + RETRY_DELAYS[attempts - 1]


def attempt_delivery(
    http: requests.Session,
    url: str,
    body: bytes,
    *,
    secret: str | None = None,
    timeout: float = WEBHOOK_TIMEOUT,
) -> AttemptResult:
    """POST ``body`` once; timeouts and transport errors count as failures."""

    headers = {"Content-Type": "application/json"}
    if secret:
        headers[SIGNATURE_HEADER] = sign_payload(secret, body)
    try:
        response = http.post(url, data=body, headers=headers, timeout=timeout)
    except requests.Timeout:
        return AttemptResult(False, error=f"Timed out after {timeout}s")
    except requests.RequestException as exc:
        return AttemptResult(False, error=str(exc) or "Webhook delivery failed")

    success = 200 <= response.status_code < 300
    return AttemptResult(
        success,
        status_code=response.status_code,
        response_body=(response.text or "")[:RESPONSE_BODY_LIMIT],
        error=None if success else f"HTTP {response.status_code}",
    )


def webhook_target(integration: Integration) -> tuple[str | None, str | None]:
    config = integration.config or {}
    return config.get("url"), config.get("hmac_secret")


class WebhookSender:
    """Deliver one event to one webhook integration and log the attempt.

    The delivery row is committed as ``pending`` before the HTTP call so a
    crash mid-request still leaves a trace; the outcome is written in a
    second transaction guarded on the ``pending`` status.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        http: requests.Session | None = None,
        timeout: float = WEBHOOK_TIMEOUT,
    ) -> None:
        self.session_factory = session_factory
        self.http = http or requests.Session()
        self.timeout = timeout

    def send(
        self,
        integration: Integration,
        event: str,
        payload: Mapping[str, Any],
        *,
        now: dt.datetime | None = None,
    ) -> tuple[bool, uuid.UUID]:
        url, secret = webhook_target(integration)
        delivery_id = uuid.uuid4()
        with self.session_factory.begin() as session:
            session.add(
                WebhookDelivery(
                    id=delivery_id,
                    integration_id=integration.id,
                    event=event,
                    payload=dict(payload),
                    status="pending",
                    attempts=0,
                )
            )

        if url:
            result = attempt_delivery(
                self.http, url, encode_payload(payload), secret=secret, timeout=self.timeout
            )
        else:
            result = AttemptResult(False, error="Webhook URL not configured")

        moment = now or utcnow()
        with self.session_factory.begin() as session:
            session.execute(
                update(WebhookDelivery)
                .where(WebhookDelivery.id == delivery_id, WebhookDelivery.status == "pending")
                .values(
                    status="sent" if result.success else "failed",
                    attempts=1,
                    response_code=result.status_code,
                    response_body=result.response_body,
                    error_message=result.error,
                    next_retry_at=None if result.success else next_retry_at(1, moment),
                )
                .execution_options(synchronize_session=False)
            )

        if result.success:
            logger.info("Webhook %s delivered for integration %s", event, integration.id)
        else:
            logger.warning(
                "Webhook %s failed for integration %s: %s", event, integration.id, result.error
            )
        return result.success, delivery_id


__all__ = [
    "AttemptResult",
    "MAX_ATTEMPTS",
    "RESPONSE_BODY_LIMIT",
    "RETRY_DELAYS",
    "SIGNATURE_HEADER",
    "WebhookSender",
    "attempt_delivery",
    "encode_payload",
    "next_retry_at",
    "sign_payload",
]
