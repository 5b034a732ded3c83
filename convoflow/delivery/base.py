"""Shared types for outbound message senders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

DEFAULT_TIMEOUT = 10


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class SMSSender(Protocol):
    def send_sms(self, to: str, body: str, from_: str | None = None) -> DeliveryResult: ...


class EmailSender(Protocol):
    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        from_name: str | None = None,
        from_email: str | None = None,
    ) -> DeliveryResult: ...


def error_message(response: requests.Response, vendor: str) -> str:
    """Extract the vendor's error message, falling back to the status code."""

    try:
        data: Any = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"{vendor} error: {response.status_code}"


__all__ = ["DEFAULT_TIMEOUT", "DeliveryResult", "EmailSender", "SMSSender", "error_message"]
