"""Webhook ingestion routes for voice providers."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from ..core.config import is_production
from ..core.rate_limit import WEBHOOK_RATE_LIMIT, limiter
from ..runtime import Runtime, get_runtime
from ..voice import SignatureError, get_adapter

router = APIRouter(tags=["voice"])

logger = logging.getLogger(__name__)

RECEIVED = {"received": True}


@router.post("/api/voice/{provider}/webhook")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def voice_webhook(
    provider: str, request: Request, runtime: Runtime = Depends(get_runtime)
) -> dict:
    """Apply one provider lifecycle event to its conversation.

    Unparsable bodies and events we do not handle are acknowledged so the
    provider does not keep redelivering them.
    """

    try:
        adapter_cls = get_adapter(provider)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    body_bytes = await request.body()
    secret = runtime.settings.voice_webhook_secret(adapter_cls.provider_name)
    adapter = adapter_cls(secret)
    if secret:
        try:
            adapter.authenticate(body_bytes, request.headers.get(adapter.signature_header))
        except SignatureError as exc:
            logger.error("Rejected %s webhook: %s", adapter.provider_name, exc)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)
            ) from exc
    elif is_production():
        logger.error("%s webhook secret is not configured in production", provider)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook not configured",
        )
    else:
        logger.warning("%s webhook secret not configured; skipping verification", provider)

    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Ignoring unparsable %s webhook body", provider)
        return RECEIVED
    if not isinstance(payload, dict):
        return RECEIVED

    event = adapter.parse_event(payload)
    if event is None:
        logger.info("Ignoring unrecognised %s event %r", provider, payload.get("event"))
        return RECEIVED

    try:
        outcome = await run_in_threadpool(runtime.lifecycle.apply, event)
    except Exception as exc:
        logger.exception("Failed to apply %s for call %s", event.kind, event.call_id)
        raise HTTPException(status_code=500, detail="Webhook processing failed") from exc
    logger.info(
        "%s %s for call %s: %s", provider, event.kind, event.call_id, outcome.action
    )
    return RECEIVED
