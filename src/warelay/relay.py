"""Relay wiring: one instance per process, built at startup.

Owns the in-memory state (dedupe set, menu store, delivery queue) and the
HTTP clients, and exposes the two flows:
- handle_webhook: WhatsApp webhook -> canonical messages -> bot backend
- handle_bot_reply: bot reply -> WhatsApp payload -> delivery queue
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from warelay.bot.models import BotReply
from warelay.bot.webhook_client import BotDeliveryError, BotWebhookClient
from warelay.config import Settings
from warelay.infra.blob_store import BlobStore, create_blob_store
from warelay.infra.dedupe import ExpiringSet
from warelay.infra.menu_store import MenuStore
from warelay.infra.time import Clock, monotonic
from warelay.observability.logging import get_logger
from warelay.observability.redaction import safe_log_context
from warelay.whatsapp.attachments import AttachmentPipeline
from warelay.whatsapp.composer import OutboundComposer
from warelay.whatsapp.delivery_queue import DeliveryQueue, OutboundQueueItem
from warelay.whatsapp.meta_sender import MetaCloudClient
from warelay.whatsapp.normalizer import InboundNormalizer

logger = get_logger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    """Counts for one webhook delivery."""

    forwarded: int
    failed: int


class Relay:
    """Process-wide relay service."""

    def __init__(
        self,
        *,
        settings: Settings,
        meta: MetaCloudClient,
        blob_store: BlobStore,
        bot: BotWebhookClient,
        clock: Clock = monotonic,
    ) -> None:
        self.settings = settings
        self.meta = meta
        self.bot = bot
        self.menu_store = MenuStore(
            ttl=settings.menu_session_ttl,
            max_entries=settings.menu_max_entries,
            clock=clock,
        )
        self.dedupe = ExpiringSet(settings.dedupe_ttl, clock=clock)
        self.attachments = AttachmentPipeline(
            meta,
            blob_store,
            signed_url_ttl=settings.signed_url_ttl,
            native_upload=settings.native_media_upload,
        )
        self.composer = OutboundComposer(
            self.menu_store,
            self.attachments,
            list_button_label=settings.list_button_label,
        )
        self.queue = DeliveryQueue(meta.send_message, send_timeout=settings.send_timeout)
        self.normalizer = InboundNormalizer(
            dedupe=self.dedupe,
            menu_store=self.menu_store,
            attachments=self.attachments,
            dispatch=self.dispatch,
            notice_window=settings.notice_window,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Relay:
        return cls(
            settings=settings,
            meta=MetaCloudClient.from_settings(settings),
            blob_store=create_blob_store(settings),
            bot=BotWebhookClient.from_settings(settings),
        )

    async def dispatch(self, conversation_key: str, payload: dict[str, Any]) -> OutboundQueueItem:
        """Hand a composed payload to the delivery queue."""
        return self.queue.enqueue(conversation_key, payload)

    async def handle_webhook(self, payload: dict[str, Any]) -> WebhookResult:
        """Normalize a WhatsApp webhook body and forward the result to the bot.

        A failed forward is logged and counted; later messages are still sent.
        """
        messages = await self.normalizer.normalize(payload)
        forwarded = failed = 0
        for message in messages:
            try:
                await self.bot.forward(message)
            except BotDeliveryError:
                failed += 1
                continue
            forwarded += 1

        if messages:
            logger.info(
                "webhook relayed",
                extra={"extra_fields": safe_log_context(forwarded=forwarded, failed=failed)},
            )
        return WebhookResult(forwarded=forwarded, failed=failed)

    async def handle_bot_reply(self, reply: BotReply) -> OutboundQueueItem:
        """Compose a bot reply and queue it for delivery.

        Raises:
            UnsupportedReplyError: If the reply cannot be represented.
        """
        payload = await self.composer.compose(reply)
        return await self.dispatch(reply.conversation_key, payload)

    async def aclose(self) -> None:
        await self.queue.aclose()
        await self.meta.aclose()
        await self.bot.aclose()
