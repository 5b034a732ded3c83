"""Templated follow-up scheduling and delivery."""

from .runner import DeliveryRunner, RunReport
from .scheduler import FollowupScheduler
from .summary import get_conversation_summary
from .templates import interpolate

__all__ = [
    "DeliveryRunner",
    "FollowupScheduler",
    "RunReport",
    "get_conversation_summary",
    "interpolate",
]
