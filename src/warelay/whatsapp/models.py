"""WhatsApp message models.

Inbound events are a closed set of variants parsed from the Meta webhook.
Canonical messages are what the bot backend receives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

MediaKind = Literal["image", "audio", "video", "document"]
InteractiveKind = Literal["button_reply", "list_reply"]
CanonicalType = Literal["text", "postback", "location", "attachment"]
AttachmentType = Literal["image", "audio", "video", "file"]

MEDIA_KINDS: tuple[MediaKind, ...] = ("image", "audio", "video", "document")


@dataclass(frozen=True)
class TextEvent:
    message_id: str
    sender_id: str
    sender_name: str
    body: str


@dataclass(frozen=True)
class LocationEvent:
    message_id: str
    sender_id: str
    sender_name: str
    latitude: float
    longitude: float
    name: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class MediaEvent:
    """Image/audio/video/document. ``media_id`` is a Graph API media reference."""

    message_id: str
    sender_id: str
    sender_name: str
    kind: MediaKind
    media_id: str
    mime_type: str | None = None
    caption: str | None = None
    filename: str | None = None


@dataclass(frozen=True)
class InteractiveEvent:
    """Button or list reply. ``reply_id`` is ``<menuId>|<actionId>`` or a bare action id."""

    message_id: str
    sender_id: str
    sender_name: str
    kind: InteractiveKind
    reply_id: str
    title: str


@dataclass(frozen=True)
class UnsupportedEvent:
    """Anything the relay cannot normalize (unknown type, missing fields)."""

    message_id: str
    sender_id: str
    sender_name: str
    type: str
    reason: str


InboundEvent = Union[TextEvent, LocationEvent, MediaEvent, InteractiveEvent, UnsupportedEvent]


@dataclass(frozen=True)
class SenderProfile:
    whatsapp_number: str
    contact_name: str = ""


@dataclass(frozen=True)
class Attachment:
    """Media reachable by the bot backend through ``url`` (signed, time-limited)."""

    type: AttachmentType
    url: str
    title: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "url": self.url}
        if self.title:
            payload["title"] = self.title
        return payload


@dataclass(frozen=True)
class CanonicalMessage:
    """Channel-agnostic message exchanged with the bot backend.

    ``payload`` holds the type-specific body: ``{"text": ...}``,
    ``{"postback": {"action": ...}}``, ``{"location": {...}}`` or
    ``{"attachment": {...}}``.
    """

    conversation_key: str
    type: CanonicalType
    payload: dict[str, Any]
    sender_profile: SenderProfile
    source_message_id: str = field(default="", compare=False)

    def channel_extensions(self) -> dict[str, Any]:
        extensions: dict[str, Any] = {
            "source": "whatsapp",
            "conversationKey": self.conversation_key,
            "externalUserId": self.conversation_key,
        }
        if self.sender_profile.contact_name:
            extensions["externalUserName"] = self.sender_profile.contact_name
        return extensions

    def to_bot_payload(self) -> dict[str, Any]:
        """Render the JSON body POSTed to the bot backend webhook."""
        return {
            "userId": self.conversation_key,
            "messagePayload": {
                "type": self.type,
                **self.payload,
                "channelExtensions": self.channel_extensions(),
            },
            "profile": {
                "whatsAppNumber": self.sender_profile.whatsapp_number,
                "contactName": self.sender_profile.contact_name,
            },
        }
