"""Twilio inbound SMS webhook."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from starlette.concurrency import run_in_threadpool

from ..core.config import is_production
from ..core.rate_limit import WEBHOOK_RATE_LIMIT, limiter
from ..runtime import Runtime, get_runtime
from ..sms.signature import SIGNATURE_HEADER, verify_twilio_signature

router = APIRouter(tags=["sms"])

logger = logging.getLogger(__name__)

SMS_WEBHOOK_PATH = "/api/sms/webhook"
EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'
REQUIRED_FIELDS = ("From", "To", "Body", "MessageSid")


def _twiml() -> Response:
    return Response(content=EMPTY_TWIML, media_type="text/xml", status_code=200)


def signed_url(request: Request, public_app_url: str) -> str:
    """URL Twilio signed: the public app URL when known, else the request URL."""

    if public_app_url:
        return f"{public_app_url.rstrip('/')}{SMS_WEBHOOK_PATH}"
    return str(request.url)


@router.post(SMS_WEBHOOK_PATH)
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def sms_webhook(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    """Persist an inbound SMS and reply through the Twilio REST API.

    Once the request is authenticated the response is always 200 with empty
    TwiML; processing errors are logged so Twilio never retries them.
    """

    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    missing = [name for name in REQUIRED_FIELDS if name not in params]
    if missing or not params["From"] or not params["To"] or not params["MessageSid"]:
        raise HTTPException(status_code=400, detail="Missing required fields")

    auth_token = runtime.settings.twilio_auth_token
    if auth_token:
        url = signed_url(request, runtime.settings.public_app_url)
        if not verify_twilio_signature(
            auth_token, request.headers.get(SIGNATURE_HEADER), url, params
        ):
            logger.error("Invalid Twilio signature")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    elif is_production():
        logger.error("TWILIO_AUTH_TOKEN not configured in production")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook not configured",
        )

    try:
        result = await run_in_threadpool(
            runtime.sms_handler.handle,
            params["To"],
            params["From"],
            params["Body"],
            params["MessageSid"],
        )
        if result.conversation_id is None:
            logger.warning("No SMS-enabled agent found for number: %s", params["To"])
    except Exception:
        logger.exception("SMS webhook processing failed for %s", params["MessageSid"])
    return _twiml()
