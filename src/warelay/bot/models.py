"""Bot backend reply schema.

Replies are camelCase JSON (``headerText``, ``globalActions``...). The
conversation key may be given as ``conversationKey`` or ``userId``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ActionType = Literal["postback", "url", "call", "share", "location"]
ReplyType = Literal["text", "card", "attachment"]


class _BotModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BotAction(_BotModel):
    """One action offered by the bot. Only postback actions become menu options."""

    type: ActionType
    label: str = ""
    postback: dict[str, Any] | None = None
    url: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @property
    def action_id(self) -> str:
        """Identifier sent back by WhatsApp when this option is picked."""
        if self.postback and self.postback.get("action") is not None:
            return str(self.postback["action"])
        return self.label


class BotCard(_BotModel):
    title: str = ""
    description: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    url: str | None = None
    actions: list[BotAction] = Field(default_factory=list)


class BotAttachment(_BotModel):
    type: str
    url: str
    title: str | None = None


class BotReply(_BotModel):
    """A message from the bot backend to one WhatsApp conversation."""

    conversation_key: str = Field(
        min_length=1,
        validation_alias=AliasChoices("conversationKey", "userId", "conversation_key"),
    )
    type: ReplyType
    text: str | None = None
    header_text: str | None = Field(default=None, alias="headerText")
    footer_text: str | None = Field(default=None, alias="footerText")
    actions: list[BotAction] = Field(default_factory=list)
    global_actions: list[BotAction] = Field(default_factory=list, alias="globalActions")
    cards: list[BotCard] = Field(default_factory=list)
    attachment: BotAttachment | None = None
    channel_extensions: dict[str, Any] | None = Field(default=None, alias="channelExtensions")

    @classmethod
    def from_envelope(cls, body: dict[str, Any]) -> BotReply:
        """Accept either a flat reply or ``{"userId": ..., "messagePayload": {...}}``."""
        message_payload = body.get("messagePayload")
        if isinstance(message_payload, dict):
            merged = dict(message_payload)
            merged.setdefault("userId", body.get("userId"))
            return cls.model_validate(merged)
        return cls.model_validate(body)
