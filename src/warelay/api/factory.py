"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from warelay.config import Settings
from warelay.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from warelay.observability.logging import get_logger
from warelay.relay import Relay

from .routes import bot_messages, public, webhooks_whatsapp

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, relay: Relay | None = None) -> FastAPI:
    """Create FastAPI app.

    Args:
        settings: Explicit settings. If None, read from the environment at startup.
        relay: Prebuilt relay (tests). Attached immediately and not closed
               on shutdown.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if relay is not None:
            yield
            return

        owned = Relay.from_settings(settings or Settings.from_env())
        app.state.relay = owned
        logger.info("relay started")
        try:
            yield
        finally:
            await owned.aclose()
            logger.info("relay stopped")

    app = FastAPI(
        title="WhatsApp Relay",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    if relay is not None:
        app.state.relay = relay

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(bot_messages.router)

    return app
