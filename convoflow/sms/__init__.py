"""Inbound SMS over Twilio."""

from .handler import FallbackReplyGenerator, ReplyContext, ReplyGenerator, SMSInboundHandler
from .signature import compute_twilio_signature, verify_twilio_signature

__all__ = [
    "FallbackReplyGenerator",
    "ReplyContext",
    "ReplyGenerator",
    "SMSInboundHandler",
    "compute_twilio_signature",
    "verify_twilio_signature",
]
