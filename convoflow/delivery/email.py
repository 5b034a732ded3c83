"""Resend-backed e-mail sender."""

from __future__ import annotations

import logging

import requests

from ..core.config import Settings, get_settings
from .base import DEFAULT_TIMEOUT, DeliveryResult, error_message

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_NAME = "VoiceBot AI"


class ResendEmailSender:
    """Send plain-text bodies as HTML e-mail through Resend."""

    def __init__(
        self,
        api_key: str | None,
        default_from_email: str = "noreply@example.com",
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.api_key = api_key
        self.default_from_email = default_from_email
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> "ResendEmailSender":
        settings = settings or get_settings()
        return cls(settings.resend_api_key, settings.resend_from_email, **kwargs)

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        from_name: str | None = None,
        from_email: str | None = None,
    ) -> DeliveryResult:
        if not self.api_key:
            return DeliveryResult(False, error="Resend API key not configured")

        sender = f"{from_name or DEFAULT_FROM_NAME} <{from_email or self.default_from_email}>"
        payload = {
            "from": sender,
            "to": [to],
            "subject": subject,
            "html": body.replace("\n", "<br>"),
        }
        try:
            response = self.session.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self.logger.warning("Resend request failed: %s", exc)
            return DeliveryResult(False, error=str(exc) or "Email send failed")

        if not response.ok:
            return DeliveryResult(False, error=error_message(response, "Resend"))
        try:
            message_id = response.json().get("id")
        except ValueError:
            return DeliveryResult(False, error="Resend returned an invalid response")
        return DeliveryResult(True, message_id=message_id)


__all__ = ["DEFAULT_FROM_NAME", "ResendEmailSender"]
