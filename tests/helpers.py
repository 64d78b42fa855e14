"""Shared builders and fakes for relay tests."""

from __future__ import annotations

from typing import Any

import httpx

from warelay.bot.webhook_client import BotWebhookClient
from warelay.config import Settings
from warelay.infra.blob_store import BlobStoreError
from warelay.relay import Relay
from warelay.whatsapp.meta_sender import MetaCloudClient

TEST_SENDER = "5511888888888"
TEST_SENDER_NAME = "Test User"


def make_settings(**overrides: Any) -> Settings:
    """Settings with required fields filled in."""
    values: dict[str, Any] = {
        "access_token": "test-access-token",
        "phone_number_id": "123456789",
        "bot_webhook_url": "https://bot.example.com/webhook",
        "storage_bucket": "relay-media",
        "graph_api_url": "https://graph.example.com",
    }
    values.update(overrides)
    return Settings(**values)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBlobStore:
    """In-memory BlobStore with switchable failures."""

    def __init__(self, fail_put: bool = False, fail_sign: bool = False) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_put = fail_put
        self.fail_sign = fail_sign

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put:
            raise BlobStoreError("put failed")
        self.objects[key] = (data, content_type)

    async def signed_get_url(self, key: str, ttl_seconds: int) -> str:
        if self.fail_sign:
            raise BlobStoreError("sign failed")
        return f"https://storage.example.com/{key}?expires={ttl_seconds}"


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((level, args, kwargs))

    def info(self, *args: Any, **kwargs: Any) -> None:
        self._record("info", *args, **kwargs)

    def warning(self, *args: Any, **kwargs: Any) -> None:
        self._record("warning", *args, **kwargs)

    def error(self, *args: Any, **kwargs: Any) -> None:
        self._record("error", *args, **kwargs)

    def exception(self, *args: Any, **kwargs: Any) -> None:
        self._record("exception", *args, **kwargs)

    def debug(self, *args: Any, **kwargs: Any) -> None:
        self._record("debug", *args, **kwargs)

    def levels(self) -> list[str]:
        return [level for level, _, _ in self.calls]

    def get_all_logged_content(self) -> str:
        """Concatenate all args and kwargs from all calls into one string."""
        parts = []
        for _, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)


# -- Meta webhook builders --


def webhook(*messages: dict[str, Any], sender: str = TEST_SENDER, name: str = TEST_SENDER_NAME) -> dict:
    """Meta webhook body with one entry/change carrying ``messages``."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WHATSAPP_BUSINESS_ACCOUNT_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "5511999999999",
                                "phone_number_id": "123456789",
                            },
                            "contacts": [{"profile": {"name": name}, "wa_id": sender}],
                            "messages": list(messages),
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def text_message(message_id: str, body: str = "hello", sender: str = TEST_SENDER) -> dict:
    return {
        "from": sender,
        "id": message_id,
        "timestamp": "1704067200",
        "type": "text",
        "text": {"body": body},
    }


def reply_message(
    message_id: str,
    reply_id: str,
    title: str,
    kind: str = "button_reply",
    sender: str = TEST_SENDER,
) -> dict:
    return {
        "from": sender,
        "id": message_id,
        "type": "interactive",
        "interactive": {"type": kind, kind: {"id": reply_id, "title": title}},
    }


def media_message(message_id: str, kind: str = "image", **fields: Any) -> dict:
    media = {"id": f"media-{message_id}", **fields}
    return {"from": TEST_SENDER, "id": message_id, "type": kind, kind: media}


def location_message(message_id: str, latitude: float = -23.55, longitude: float = -46.63) -> dict:
    return {
        "from": TEST_SENDER,
        "id": message_id,
        "type": "location",
        "location": {"latitude": latitude, "longitude": longitude, "name": "Office"},
    }


def build_relay(settings=None, meta_handler=None, bot_handler=None, blob_store=None, clock=None):
    """Relay wired to httpx MockTransports and an in-memory blob store."""
    settings = settings or make_settings()

    def default_meta(request):
        return httpx.Response(200, json={"messages": [{"id": "wamid.DEFAULT"}]})

    def default_bot(request):
        return httpx.Response(200)

    meta = MetaCloudClient.from_settings(
        settings,
        http=httpx.AsyncClient(transport=httpx.MockTransport(meta_handler or default_meta)),
    )
    bot = BotWebhookClient.from_settings(
        settings,
        http=httpx.AsyncClient(transport=httpx.MockTransport(bot_handler or default_bot)),
    )
    extra = {"clock": clock} if clock is not None else {}
    return Relay(
        settings=settings,
        meta=meta,
        blob_store=blob_store or FakeBlobStore(),
        bot=bot,
        **extra,
    )
