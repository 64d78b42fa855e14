"""Forwarding of canonical messages to the bot backend webhook.

Bodies are signed with HMAC-SHA256 (X-Hub-Signature: sha256=<hex>) when a
shared secret is configured; the backend signs its replies the same way.
"""

from __future__ import annotations

import json

import httpx

from warelay.config import Settings
from warelay.infra.hashing import sign_body
from warelay.observability.correlation import CORRELATION_ID_HEADER, get_correlation_id
from warelay.observability.logging import get_logger
from warelay.observability.redaction import recipient_context
from warelay.whatsapp.models import CanonicalMessage

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"

HTTP_TIMEOUT = 10.0


class BotDeliveryError(Exception):
    """Raised when the bot backend cannot be reached or rejects a message."""

    pass


class BotWebhookClient:
    """POSTs canonical messages to the bot backend."""

    def __init__(
        self,
        url: str,
        secret: str = "",
        *,
        timeout: float = HTTP_TIMEOUT,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._secret = secret
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls, settings: Settings, http: httpx.AsyncClient | None = None
    ) -> BotWebhookClient:
        return cls(
            settings.bot_webhook_url,
            settings.bot_webhook_secret,
            timeout=settings.http_timeout,
            http=http,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def forward(self, message: CanonicalMessage) -> None:
        """Deliver one canonical message.

        Raises:
            BotDeliveryError: On network error or non-2xx answer.
        """
        body = json.dumps(message.to_bot_payload(), ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers[SIGNATURE_HEADER] = sign_body(body, self._secret)
        correlation_id = get_correlation_id()
        if correlation_id:
            headers[CORRELATION_ID_HEADER] = correlation_id

        log_ctx = recipient_context(message.conversation_key, message_type=message.type)

        try:
            response = await self._http.post(self._url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                "bot forward failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            raise BotDeliveryError(f"bot webhook unreachable: {type(e).__name__}") from e

        if response.status_code >= 400:
            logger.error(
                "bot forward rejected",
                extra={"extra_fields": {**log_ctx, "status_code": str(response.status_code)}},
            )
            raise BotDeliveryError(f"bot webhook answered HTTP {response.status_code}")

        logger.info("message forwarded to bot", extra={"extra_fields": log_ctx})
