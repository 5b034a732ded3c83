"""Twilio request signature validation."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Mapping

SIGNATURE_HEADER = "x-twilio-signature"


def compute_twilio_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    """Return the base64 HMAC-SHA1 of ``url`` followed by sorted key+value pairs."""

    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_twilio_signature(
    auth_token: str, signature: str | None, url: str, params: Mapping[str, str]
) -> bool:
    if not signature:
        return False
    expected = compute_twilio_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


__all__ = ["SIGNATURE_HEADER", "compute_twilio_signature", "verify_twilio_signature"]
