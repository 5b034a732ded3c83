"""FastAPI application wiring for the conversation core.

This module bootstraps the HTTP surface:

- Configures logging, Prometheus metrics and webhook rate limiting.
- Builds the runtime (database session factory, background dispatcher,
  channel senders, tool registry) once in the lifespan hook and shuts the
  dispatcher down on exit.
- Mounts the voice provider webhooks, the Twilio SMS webhook and the
  internal trigger endpoints, plus health and version probes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.rate_limit import limiter
from .routers import internal, sms, voice
from .runtime import Runtime, build_runtime

load_dotenv()

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[], Runtime]


def create_app(runtime_factory: RuntimeFactory | None = None) -> FastAPI:
    """Create the application; ``runtime_factory`` overrides service wiring."""

    factory = runtime_factory or build_runtime

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = factory()
        app.state.runtime = runtime
        logger.info("convoflow %s started", __version__)
        try:
            yield
        finally:
            runtime.close()
            logger.info("convoflow stopped")

    app = FastAPI(title="convoflow", version=__version__, lifespan=lifespan)
    init_logging(app)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.include_router(voice.router)
    app.include_router(sms.router)
    app.include_router(internal.router)

    @app.get("/api/health")
    async def health():
        """Liveness/readiness probe with a minimal JSON body."""
        return {"status": "ok"}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    # Expose Prometheus metrics
    Instrumentator().instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )
    return app


app = create_app()
