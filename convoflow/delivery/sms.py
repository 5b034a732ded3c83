"""Twilio-backed SMS sender."""

from __future__ import annotations

import logging

import requests

from ..core.config import Settings, get_settings
from .base import DEFAULT_TIMEOUT, DeliveryResult, error_message

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioSMSSender:
    """Send SMS through the Twilio Messages REST API.

    Never raises: missing credentials, non-2xx responses and transport
    errors all come back as a failed :class:`DeliveryResult`.
    """

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> "TwilioSMSSender":
        settings = settings or get_settings()
        return cls(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_from_number,
            **kwargs,
        )

    def send_sms(self, to: str, body: str, from_: str | None = None) -> DeliveryResult:
        if not self.account_sid or not self.auth_token:
            return DeliveryResult(False, error="Twilio credentials not configured")
        sender = from_ or self.from_number
        if not sender:
            return DeliveryResult(False, error="Twilio from number not configured")

        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        try:
            response = self.session.post(
                url,
                data={"To": to, "From": sender, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self.logger.warning("Twilio request failed: %s", exc)
            return DeliveryResult(False, error=str(exc) or "SMS send failed")

        if not response.ok:
            return DeliveryResult(False, error=error_message(response, "Twilio"))
        try:
            sid = response.json().get("sid")
        except ValueError:
            return DeliveryResult(False, error="Twilio returned an invalid response")
        return DeliveryResult(True, message_id=sid)


__all__ = ["TwilioSMSSender"]
