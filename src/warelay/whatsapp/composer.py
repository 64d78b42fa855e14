"""Outbound composition: bot reply -> WhatsApp Cloud API payload.

Shape selection by number of postback actions:
- 1-3: reply buttons
- 4-10: single-section list
- 0 or 11+: plain text (postbacks enumerated as numbered lines)

URL/call actions are never interactive; they are appended to the text.
Every interactive payload gets a fresh menu id, prefixed to each option id
(``<menuId>|<actionId>``), and is registered in the MenuStore.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from typing import Any

from warelay.bot.models import BotAction, BotCard, BotReply
from warelay.config import DEFAULT_LIST_BUTTON_LABEL
from warelay.infra.menu_store import MenuStore
from warelay.observability.logging import get_logger
from warelay.observability.redaction import recipient_context

from .attachments import AttachmentPipeline
from .wire import envelope, text_payload, truncate_label

logger = get_logger(__name__)

MAX_BUTTONS = 3
MAX_LIST_ROWS = 10

# WhatsApp display limits: (max length kept as is, length kept when truncating)
BUTTON_LABEL_LIMITS = (20, 16)
LIST_LABEL_LIMITS = (24, 20)

MENU_ID_SEPARATOR = "|"


class UnsupportedReplyError(Exception):
    """Raised when a bot reply has no WhatsApp representation."""

    pass


def new_menu_id() -> str:
    return f"menu_{uuid.uuid4().hex}"


def _action_line(action: BotAction) -> str | None:
    """Inline text for a non-postback action; None for actions with no text form."""
    if action.type == "url" and action.url:
        return f"{action.label}: {action.url}" if action.label else action.url
    if action.type == "call" and action.phone_number:
        return f"{action.label}: {action.phone_number}" if action.label else action.phone_number
    if action.type == "location":
        return action.label or None
    return None


def _join_text(header: str | None, body: str, lines: list[str], footer: str | None) -> str:
    text = f"{header}\n\n" if header else ""
    text += body
    if lines:
        text += ("\n\n" if body else "") + "\n".join(lines)
    if footer:
        text += f"\n\n{footer}"
    return text


def _cards_text(cards: list[BotCard]) -> str:
    blocks = []
    for card in cards:
        lines = [line for line in (card.title, card.description, card.url) if line]
        if lines:
            blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class OutboundComposer:
    """Builds WhatsApp payloads from bot replies."""

    def __init__(
        self,
        menu_store: MenuStore,
        attachments: AttachmentPipeline,
        *,
        list_button_label: str = DEFAULT_LIST_BUTTON_LABEL,
        menu_id_factory: Callable[[], str] = new_menu_id,
    ) -> None:
        self._menu_store = menu_store
        self._attachments = attachments
        self._list_button_label = list_button_label
        self._menu_id_factory = menu_id_factory

    async def compose(self, reply: BotReply) -> dict[str, Any]:
        """Select the wire representation for ``reply``.

        Raises:
            UnsupportedReplyError: If the reply type/content has no mapping.
        """
        to = reply.conversation_key

        if reply.type == "text":
            actions = reply.actions + reply.global_actions
            if not actions:
                return self._plain_text(to, reply)
            return self._with_actions(
                to,
                body=reply.text or "",
                header=reply.header_text,
                footer=reply.footer_text,
                actions=actions,
            )

        if reply.type == "card" and reply.cards:
            first = reply.cards[0]
            card_actions = [action for card in reply.cards for action in card.actions]
            actions = card_actions + reply.global_actions
            if any(action.type == "postback" for action in actions):
                body = first.title or reply.header_text or ""
            else:
                body = _cards_text(reply.cards) or reply.text or ""
            return self._with_actions(
                to,
                body=body,
                header=reply.header_text,
                footer=reply.footer_text,
                actions=actions,
                image=first.image_url,
            )

        if reply.type == "attachment" and reply.attachment:
            attachment = reply.attachment
            wire_type, media = await self._attachments.outbound_media(
                attachment.type, attachment.url, attachment.title
            )
            return {**envelope(to), "type": wire_type, wire_type: media}

        raise UnsupportedReplyError(f"cannot compose reply of type {reply.type!r}")

    def _plain_text(self, to: str, reply: BotReply) -> dict[str, Any]:
        extensions = reply.channel_extensions or {}
        if extensions.get("special_field_type") == "location":
            location = self._location_from_extensions(extensions)
            if location is not None:
                return {**envelope(to), "type": "location", "location": location}
        return text_payload(to, reply.text or "")

    @staticmethod
    def _location_from_extensions(extensions: dict[str, Any]) -> dict[str, Any] | None:
        raw = extensions.get("location")
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
            location = {
                "latitude": float(data["latitude"]),
                "longitude": float(data["longitude"]),
            }
        except (ValueError, KeyError, TypeError):
            logger.warning("invalid location in channel extensions, sending text")
            return None
        for key in ("name", "address"):
            if data.get(key):
                location[key] = data[key]
        return location

    def _with_actions(
        self,
        to: str,
        *,
        body: str,
        header: str | None,
        footer: str | None,
        actions: list[BotAction],
        image: str | None = None,
    ) -> dict[str, Any]:
        postbacks = [action for action in actions if action.type == "postback"]
        other_lines = [
            line
            for line in (_action_line(action) for action in actions if action.type != "postback")
            if line
        ]
        preview_url = any(action.type == "url" and action.url for action in actions)

        if 0 < len(postbacks) <= MAX_LIST_ROWS:
            interactive_body = body
            if other_lines:
                interactive_body = _join_text(None, body, other_lines, None)
            kind = "button" if len(postbacks) <= MAX_BUTTONS else "list"
            return self._interactive(
                to,
                kind=kind,
                body=interactive_body or header or self._list_button_label,
                header=header,
                footer=footer,
                postbacks=postbacks,
                image=image,
            )

        numbered = [f"{index}. {action.label}" for index, action in enumerate(postbacks, start=1)]
        text = _join_text(header, body, numbered + other_lines, footer)
        logger.info(
            "reply composed as text",
            extra={
                "extra_fields": recipient_context(
                    to, postback_count=len(postbacks), other_count=len(other_lines)
                )
            },
        )
        return text_payload(to, text, preview_url=preview_url)

    def _interactive(
        self,
        to: str,
        *,
        kind: str,
        body: str,
        header: str | None,
        footer: str | None,
        postbacks: list[BotAction],
        image: str | None,
    ) -> dict[str, Any]:
        menu_id = self._menu_id_factory()

        def option_id(action: BotAction) -> str:
            return f"{menu_id}{MENU_ID_SEPARATOR}{action.action_id}"

        interactive: dict[str, Any] = {"type": kind, "body": {"text": body}}
        if kind == "button":
            interactive["action"] = {
                "buttons": [
                    {
                        "type": "reply",
                        "reply": {
                            "id": option_id(action),
                            "title": truncate_label(action.label, *BUTTON_LABEL_LIMITS),
                        },
                    }
                    for action in postbacks
                ]
            }
        else:
            interactive["action"] = {
                "button": self._list_button_label,
                "sections": [
                    {
                        "rows": [
                            {
                                "id": option_id(action),
                                "title": truncate_label(action.label, *LIST_LABEL_LIMITS),
                            }
                            for action in postbacks
                        ]
                    }
                ],
            }

        # List messages only accept text headers
        if image and kind == "button":
            interactive["header"] = {"type": "image", "image": {"link": image}}
        elif header:
            interactive["header"] = {"type": "text", "text": header}
        if footer:
            interactive["footer"] = {"text": footer}

        payload = {**envelope(to), "type": "interactive", "interactive": interactive}

        self._menu_store.create_session(menu_id, payload)
        self._menu_store.remember_last_menu(to, payload)

        logger.info(
            "reply composed as interactive menu",
            extra={
                "extra_fields": recipient_context(
                    to, interactive_type=kind, option_count=len(postbacks), menu_id=menu_id
                )
            },
        )
        return payload
