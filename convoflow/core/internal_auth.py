"""Shared-secret guard for internal trigger endpoints."""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, HTTPException, Request, status

from ..runtime import Runtime, get_runtime
from .config import is_production

__all__ = ["INTERNAL_SECRET_HEADER", "require_internal_secret", "secrets_match"]

INTERNAL_SECRET_HEADER = "x-internal-secret"

logger = logging.getLogger(__name__)


def secrets_match(provided: str | None, expected: str) -> bool:
    """Compare ``provided`` with ``expected`` in constant time."""

    return hmac.compare_digest((provided or "").encode("utf-8"), expected.encode("utf-8"))


def require_internal_secret(
    request: Request, runtime: Runtime = Depends(get_runtime)
) -> None:
    """Reject callers that do not present ``INTERNAL_API_SECRET``.

    Without a configured secret the endpoints are open outside production
    and fail with 500 in production.

    Raises:
        HTTPException: 500 when unconfigured in production, 401 on mismatch.
    """

    expected = runtime.settings.internal_api_secret
    if not expected:
        if is_production():
            logger.error("INTERNAL_API_SECRET is not configured in production")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Not configured"
            )
        return
    if not secrets_match(request.headers.get(INTERNAL_SECRET_HEADER), expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
