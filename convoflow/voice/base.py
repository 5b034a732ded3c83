"""Base abstractions for voice provider webhook adapters."""

from __future__ import annotations

import hashlib
import hmac
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from ..conversations.models import NormalizedCallEvent


class SignatureError(Exception):
    """Raised when a webhook signature is missing or does not match."""


def hmac_sha256_hex(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def optional_int(value: Any) -> int | None:
    """Coerce provider numbers to ``int``; zero, blanks and junk become ``None``."""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number == 0:
        return None
    return int(round(number))


class VoiceProviderAdapter(ABC):
    """Translate one provider's webhook dialect into normalized call events."""

    #: Lowercase provider identifier used in routes and configuration.
    provider_name: str
    #: Request header carrying the provider's signature.
    signature_header: str

    def __init__(self, secret: str | None = None) -> None:
        self.secret = secret

    def verify_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """Check ``signature`` against an HMAC-SHA256 hex digest of the raw body.

        Returns ``False`` when no secret is configured or the header is
        missing; the caller decides whether an unconfigured secret is fatal.
        """

        if not self.secret or not signature:
            return False
        expected = hmac_sha256_hex(self.secret, raw_body)
        return hmac.compare_digest(expected, signature.strip())

    def authenticate(self, raw_body: bytes, signature: str | None) -> None:
        """Raise :class:`SignatureError` unless ``signature`` is valid."""

        if not signature:
            raise SignatureError("Missing signature")
        if not self.verify_signature(raw_body, signature):
            raise SignatureError("Invalid signature")

    @abstractmethod
    def parse_event(self, payload: Mapping[str, Any]) -> NormalizedCallEvent | None:
        """Convert a webhook payload into a normalized event or ``None``."""


__all__ = [
    "SignatureError",
    "VoiceProviderAdapter",
    "hmac_sha256_hex",
    "optional_int",
    "optional_str",
]
