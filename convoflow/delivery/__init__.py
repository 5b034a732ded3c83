"""Outbound SMS and e-mail channels."""

from .base import DeliveryResult, EmailSender, SMSSender
from .email import ResendEmailSender
from .sms import TwilioSMSSender

__all__ = [
    "DeliveryResult",
    "EmailSender",
    "ResendEmailSender",
    "SMSSender",
    "TwilioSMSSender",
]
