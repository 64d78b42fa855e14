"""Meta Cloud API adapter - validate and parse webhook payloads.

Turns a Meta WhatsApp Business webhook body into a flat, ordered stream of
InboundEvent variants. Per-message shape problems become UnsupportedEvent
so one bad message never hides its siblings.
"""

from collections.abc import Iterator
from typing import Any

from .models import (
    MEDIA_KINDS,
    InboundEvent,
    InteractiveEvent,
    LocationEvent,
    MediaEvent,
    TextEvent,
    UnsupportedEvent,
)

WHATSAPP_OBJECT = "whatsapp_business_account"


class InvalidPayloadError(Exception):
    """Raised when Meta payload has invalid top-level shape."""

    pass


def is_whatsapp_payload(payload: Any) -> bool:
    """True for WhatsApp Business webhooks (as opposed to other Graph objects)."""
    return isinstance(payload, dict) and payload.get("object") == WHATSAPP_OBJECT


def get_phone_number_id(payload: dict[str, Any]) -> str | None:
    """Extract phone_number_id from the first change of a Meta payload.

    Args:
        payload: Raw webhook payload from Meta Cloud API.

    Returns:
        phone_number_id if found, None otherwise.
    """
    try:
        entry = payload.get("entry", [])
        if not entry:
            return None
        changes = entry[0].get("changes", [])
        if not changes:
            return None
        value = changes[0].get("value", {})
        metadata = value.get("metadata", {})
        return metadata.get("phone_number_id")
    except (AttributeError, IndexError, KeyError, TypeError):
        return None


def iter_events(payload: dict[str, Any] | list[Any]) -> Iterator[InboundEvent]:
    """Yield every message of a webhook body, in delivery order.

    Meta payload structure:
    {
      "object": "whatsapp_business_account",
      "entry": [{
        "changes": [{
          "value": {
            "contacts": [{"wa_id": "PHONE", "profile": {"name": "..."}}],
            "messages": [{"from": "PHONE", "id": "MSG_ID", "type": "text", ...}]
          },
          "field": "messages"
        }]
      }]
    }

    Changes without ``messages`` (delivery statuses, errors) are skipped.

    Args:
        payload: Whole webhook body, or its ``entry`` list.

    Raises:
        InvalidPayloadError: If the entry list itself is malformed.
    """
    entries = payload.get("entry", []) if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise InvalidPayloadError("entry must be a list")

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            value = change.get("value") if isinstance(change, dict) else None
            if not isinstance(value, dict):
                continue
            messages = value.get("messages")
            if not isinstance(messages, list):
                continue

            contact_id, contact_name = _first_contact(value.get("contacts"))
            for message in messages:
                if not isinstance(message, dict):
                    continue
                sender_id = contact_id or str(message.get("from") or "")
                yield parse_message(message, sender_id, contact_name)


def parse_message(message: dict[str, Any], sender_id: str, sender_name: str) -> InboundEvent:
    """Convert one Meta message object into its InboundEvent variant."""
    message_id = str(message.get("id") or "")
    message_type = str(message.get("type") or "unknown")
    base = {"message_id": message_id, "sender_id": sender_id, "sender_name": sender_name}

    if not sender_id:
        return UnsupportedEvent(**base, type=message_type, reason="missing sender")

    body = message.get(message_type)

    if message_type == "text":
        text = body.get("body") if isinstance(body, dict) else None
        if not isinstance(text, str):
            return UnsupportedEvent(**base, type=message_type, reason="missing text body")
        return TextEvent(**base, body=text)

    if message_type == "location":
        if not isinstance(body, dict):
            return UnsupportedEvent(**base, type=message_type, reason="missing location")
        try:
            latitude = float(body["latitude"])
            longitude = float(body["longitude"])
        except (KeyError, TypeError, ValueError):
            return UnsupportedEvent(**base, type=message_type, reason="invalid coordinates")
        return LocationEvent(
            **base,
            latitude=latitude,
            longitude=longitude,
            name=body.get("name"),
            address=body.get("address"),
        )

    if message_type in MEDIA_KINDS:
        media_id = body.get("id") if isinstance(body, dict) else None
        if not media_id:
            return UnsupportedEvent(**base, type=message_type, reason="missing media id")
        return MediaEvent(
            **base,
            kind=message_type,  # type: ignore[arg-type]
            media_id=str(media_id),
            mime_type=body.get("mime_type"),
            caption=body.get("caption"),
            filename=body.get("filename"),
        )

    if message_type == "interactive":
        return _parse_interactive(body, base)

    return UnsupportedEvent(**base, type=message_type, reason="unsupported message type")


def _parse_interactive(body: Any, base: dict[str, str]) -> InboundEvent:
    if not isinstance(body, dict):
        return UnsupportedEvent(**base, type="interactive", reason="missing interactive body")

    kind = body.get("type")
    if kind not in ("button_reply", "list_reply"):
        return UnsupportedEvent(
            **base, type=f"interactive.{kind or 'unknown'}", reason="unsupported interactive type"
        )

    reply = body.get(kind)
    reply_id = reply.get("id") if isinstance(reply, dict) else None
    if not reply_id:
        return UnsupportedEvent(**base, type=f"interactive.{kind}", reason="missing reply id")

    return InteractiveEvent(
        **base,
        kind=kind,
        reply_id=str(reply_id),
        title=str(reply.get("title") or ""),
    )


def _first_contact(contacts: Any) -> tuple[str, str]:
    if not isinstance(contacts, list) or not contacts or not isinstance(contacts[0], dict):
        return "", ""
    contact = contacts[0]
    profile = contact.get("profile")
    name = profile.get("name") if isinstance(profile, dict) else None
    return str(contact.get("wa_id") or ""), str(name or "")
