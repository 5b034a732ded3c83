"""Process-wide collaborators built once at application startup."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

import requests
from fastapi import HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from .conversations import CallLifecycleService
from .core.background import BackgroundDispatcher, Dispatcher
from .core.config import Settings, get_settings
from .delivery import ResendEmailSender, TwilioSMSSender
from .delivery.base import EmailSender, SMSSender
from .escalation import EscalationNotifier, EscalationService
from .followups import DeliveryRunner, FollowupScheduler
from .integrations import IntegrationDispatcher, WebhookRetrySweep, WebhookSender
from .models.session import get_sessionmaker
from .processing import ConversationAnalyzer, ConversationPostProcessor, OpenAIConversationAnalyzer
from .sms import ReplyGenerator, SMSInboundHandler
from .tools import ToolRegistry

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Runtime:
    settings: Settings
    session_factory: sessionmaker[Session]
    dispatcher: Dispatcher
    sms_sender: SMSSender
    email_sender: EmailSender
    notifier: EscalationNotifier
    integrations: IntegrationDispatcher
    escalation: EscalationService
    scheduler: FollowupScheduler
    post_processor: ConversationPostProcessor
    lifecycle: CallLifecycleService
    sms_handler: SMSInboundHandler
    delivery_runner: DeliveryRunner
    webhook_sweep: WebhookRetrySweep
    tools: ToolRegistry

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)


def build_runtime(
    settings: Settings | None = None,
    *,
    session_factory: Optional[sessionmaker[Session]] = None,
    dispatcher: Optional[Dispatcher] = None,
    http: Optional[requests.Session] = None,
    sms_sender: Optional[SMSSender] = None,
    email_sender: Optional[EmailSender] = None,
    analyzer: Optional[ConversationAnalyzer] = None,
    reply_generator: Optional[ReplyGenerator] = None,
    tools: Optional[ToolRegistry] = None,
) -> Runtime:
    """Wire every service from ``settings``; any collaborator can be injected."""

    settings = settings or get_settings()
    session_factory = session_factory or get_sessionmaker(settings.database_url)
    dispatcher = dispatcher or BackgroundDispatcher(max_workers=settings.background_workers)
    http = http or requests.Session()
    sms_sender = sms_sender or TwilioSMSSender.from_settings(settings, session=http)
    email_sender = email_sender or ResendEmailSender.from_settings(settings, session=http)
    analyzer = analyzer or OpenAIConversationAnalyzer(
        api_key=settings.openai_api_key, model=settings.analysis_model
    )

    notifier = EscalationNotifier(sms_sender, email_sender, settings.public_app_url)
    integrations = IntegrationDispatcher(session_factory, WebhookSender(session_factory, http=http))
    escalation = EscalationService(session_factory, notifier, dispatcher, integrations)
    scheduler = FollowupScheduler(session_factory)
    post_processor = ConversationPostProcessor(
        session_factory, analyzer, scheduler, integrations, dispatcher
    )
    registry = tools or ToolRegistry()
    registry.load(settings.tool_modules)

    return Runtime(
        settings=settings,
        session_factory=session_factory,
        dispatcher=dispatcher,
        sms_sender=sms_sender,
        email_sender=email_sender,
        notifier=notifier,
        integrations=integrations,
        escalation=escalation,
        scheduler=scheduler,
        post_processor=post_processor,
        lifecycle=CallLifecycleService(session_factory, dispatcher, post_processor),
        sms_handler=SMSInboundHandler(
            session_factory, sms_sender, dispatcher, escalation, reply_generator
        ),
        delivery_runner=DeliveryRunner(
            session_factory,
            sms_sender,
            email_sender,
            batch_size=settings.followup_batch_size,
        ),
        webhook_sweep=WebhookRetrySweep(
            session_factory, http=http, batch_size=settings.webhook_retry_batch_size
        ),
        tools=registry,
    )


def get_runtime(request: Request) -> Runtime:
    """FastAPI dependency returning the runtime attached at startup."""

    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return runtime


__all__ = ["Runtime", "build_runtime", "get_runtime"]
