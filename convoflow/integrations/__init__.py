"""Outbound integration events (CRM/automation webhooks)."""

from .dispatcher import IntegrationDispatcher
from .payload import INTEGRATION_EVENTS, build_event_payload
from .retry import WebhookRetrySweep
from .webhook import WebhookSender, sign_payload

__all__ = [
    "INTEGRATION_EVENTS",
    "IntegrationDispatcher",
    "WebhookRetrySweep",
    "WebhookSender",
    "build_event_payload",
    "sign_payload",
]
