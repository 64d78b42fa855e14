"""Inbound normalization: Meta webhook body -> canonical messages.

Per event:
1. Dedupe by WhatsApp message id (webhook retries).
2. Convert by variant; media is relocated to blob storage first.
3. Interactive replies go through the menu policy: only the first option
   picked on a given menu is forwarded. Picking a different option shortly
   after triggers one notice plus a resend of the user's last menu.

One bad event never aborts the batch.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from warelay.infra.dedupe import ExpiringSet
from warelay.infra.menu_store import MenuSession, MenuStore
from warelay.infra.time import Clock, monotonic
from warelay.observability.logging import get_logger
from warelay.observability.redaction import recipient_context, safe_log_context

from . import meta_adapter, templates
from .attachments import AttachmentPipeline
from .composer import MENU_ID_SEPARATOR
from .models import (
    CanonicalMessage,
    InboundEvent,
    InteractiveEvent,
    LocationEvent,
    MediaEvent,
    SenderProfile,
    TextEvent,
    UnsupportedEvent,
)
from .wire import text_payload

logger = get_logger(__name__)

# Sends a payload to a conversation through the outbound path
Dispatch = Callable[[str, dict[str, Any]], Awaitable[Any]]

DEFAULT_NOTICE_WINDOW = 60.0


def split_reply_id(reply_id: str) -> tuple[str | None, str]:
    """Split ``<menuId>|<actionId>``; a bare id has no menu."""
    menu_id, separator, action_id = reply_id.partition(MENU_ID_SEPARATOR)
    if not separator:
        return None, reply_id
    return menu_id or None, action_id


class InboundNormalizer:
    """Converts webhook deliveries into canonical messages for the bot backend."""

    def __init__(
        self,
        *,
        dedupe: ExpiringSet,
        menu_store: MenuStore,
        attachments: AttachmentPipeline,
        dispatch: Dispatch,
        notice_window: float = DEFAULT_NOTICE_WINDOW,
        clock: Clock = monotonic,
    ) -> None:
        self._dedupe = dedupe
        self._menu_store = menu_store
        self._attachments = attachments
        self._dispatch = dispatch
        self._notice_window = notice_window
        self._clock = clock

    async def normalize(self, payload: dict[str, Any] | list[Any]) -> list[CanonicalMessage]:
        """Normalize one webhook delivery, preserving event order.

        Raises:
            InvalidPayloadError: If the body has no usable entry list.
        """
        messages: list[CanonicalMessage] = []
        for event in meta_adapter.iter_events(payload):
            if event.message_id and not self._dedupe.add_if_absent(event.message_id):
                logger.debug(
                    "duplicate message id ignored",
                    extra={"extra_fields": safe_log_context(message_id_prefix=event.message_id[:12])},
                )
                continue

            try:
                message = await self._convert(event)
            except Exception:
                logger.exception(
                    "inbound event processing failed",
                    extra={
                        "extra_fields": safe_log_context(
                            message_id_prefix=event.message_id[:12],
                            event_type=type(event).__name__,
                        )
                    },
                )
                continue

            if message is not None:
                messages.append(message)
        return messages

    async def _convert(self, event: InboundEvent) -> CanonicalMessage | None:
        if isinstance(event, TextEvent):
            return self._canonical(event, "text", {"text": event.body})

        if isinstance(event, LocationEvent):
            location: dict[str, Any] = {
                "latitude": event.latitude,
                "longitude": event.longitude,
            }
            if event.name:
                location["title"] = event.name
            if event.address:
                location["address"] = event.address
            return self._canonical(event, "location", {"location": location})

        if isinstance(event, MediaEvent):
            attachment = await self._attachments.relocate_inbound(event)
            if attachment is None:
                logger.error(
                    "attachment unavailable, message dropped",
                    extra={
                        "extra_fields": recipient_context(
                            event.sender_id, kind=event.kind, message_id_prefix=event.message_id[:12]
                        )
                    },
                )
                return None
            return self._canonical(event, "attachment", {"attachment": attachment.to_payload()})

        if isinstance(event, InteractiveEvent):
            return await self._interactive(event)

        if isinstance(event, UnsupportedEvent):
            logger.warning(
                "unsupported inbound message skipped",
                extra={
                    "extra_fields": safe_log_context(
                        message_type=event.type,
                        reason=event.reason,
                        message_id_prefix=event.message_id[:12],
                    )
                },
            )
            return None

        raise TypeError(f"unknown inbound event {type(event).__name__}")

    async def _interactive(self, event: InteractiveEvent) -> CanonicalMessage | None:
        menu_id, action_id = split_reply_id(event.reply_id)

        if menu_id is not None:
            session, recorded = self._menu_store.record_first_choice(
                menu_id, action_id, event.title, self._clock()
            )
            if not recorded:
                await self._handle_repeat_choice(event, menu_id, action_id, session)
                return None
            if session.payload is None:
                logger.info(
                    "reply to unknown menu forwarded as bare action",
                    extra={"extra_fields": recipient_context(event.sender_id, menu_id=menu_id)},
                )

        return self._canonical(event, "postback", {"postback": {"action": action_id}})

    async def _handle_repeat_choice(
        self, event: InteractiveEvent, menu_id: str, action_id: str, session: MenuSession
    ) -> None:
        log_ctx = recipient_context(event.sender_id, menu_id=menu_id)

        if action_id == session.first_action_id:
            logger.info("repeated menu choice ignored", extra={"extra_fields": log_ctx})
            return

        self._menu_store.record_changed_choice(menu_id)
        elapsed = self._clock() - session.first_chosen_at
        if elapsed > self._notice_window or not self._menu_store.mark_notice_sent(menu_id):
            logger.info(
                "changed menu choice ignored",
                extra={"extra_fields": {**log_ctx, **safe_log_context(elapsed=round(elapsed, 1))}},
            )
            return

        notice = templates.menu_changed_notice(session.first_label, event.title)
        await self._dispatch(event.sender_id, text_payload(event.sender_id, notice))

        last_menu = self._menu_store.get_last_menu(event.sender_id) or session.payload
        if last_menu:
            await self._dispatch(event.sender_id, last_menu)

        logger.info(
            "changed menu choice, notice sent",
            extra={"extra_fields": {**log_ctx, **safe_log_context(menu_resent=bool(last_menu))}},
        )

    @staticmethod
    def _canonical(event: InboundEvent, type_: str, payload: dict[str, Any]) -> CanonicalMessage:
        return CanonicalMessage(
            conversation_key=event.sender_id,
            type=type_,  # type: ignore[arg-type]
            payload=payload,
            sender_profile=SenderProfile(
                whatsapp_number=event.sender_id, contact_name=event.sender_name
            ),
            source_message_id=event.message_id,
        )
