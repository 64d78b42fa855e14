"""Meta Cloud API client: message sends, media upload and media download.

Security: NEVER log recipient numbers, message text or media URLs.
Only log hashes, lengths and types.
"""

from __future__ import annotations

from typing import Any

import httpx

from warelay.config import Settings
from warelay.observability.logging import get_logger
from warelay.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 10.0

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class MetaApiError(Exception):
    """Raised on network errors or non-2xx answers from the Graph API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _graph_error_code(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    return error.get("code") if isinstance(error, dict) else None


def _describe_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Safe summary of an outbound payload."""
    message_type = payload.get("type", "unknown")
    summary: dict[str, Any] = {
        "to_hash": hash_identifier(str(payload.get("to", ""))),
        "message_type": message_type,
    }
    if message_type == "text":
        summary["text_len"] = len(payload.get("text", {}).get("body", ""))
    elif message_type == "interactive":
        summary["interactive_type"] = payload.get("interactive", {}).get("type", "unknown")
    return summary


class MetaCloudClient:
    """Thin async wrapper around the WhatsApp Cloud API endpoints the relay uses."""

    def __init__(
        self,
        *,
        access_token: str,
        phone_number_id: str,
        base_url: str,
        timeout: float = HTTP_TIMEOUT,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls, settings: Settings, http: httpx.AsyncClient | None = None
    ) -> MetaCloudClient:
        return cls(
            access_token=settings.access_token,
            phone_number_id=settings.phone_number_id,
            base_url=settings.graph_base_url,
            timeout=settings.http_timeout,
            http=http,
        )

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Execute a request. Raises MetaApiError on transport error or non-2xx."""
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "meta request failed",
                extra={
                    "extra_fields": safe_log_context(
                        operation=operation, error_type=type(e).__name__
                    )
                },
            )
            raise MetaApiError(f"{operation}: {type(e).__name__}") from e

        if response.status_code >= 400:
            logger.error(
                "meta request rejected",
                extra={
                    "extra_fields": safe_log_context(
                        operation=operation,
                        status_code=response.status_code,
                        graph_error_code=_graph_error_code(response),
                    )
                },
            )
            raise MetaApiError(
                f"{operation}: HTTP {response.status_code}", status_code=response.status_code
            )
        return response

    async def send_message(self, payload: dict[str, Any]) -> str:
        """POST a composed payload to /{phone_number_id}/messages.

        Returns:
            The WhatsApp message id (wamid) acknowledging the send.

        Raises:
            MetaApiError: On network/HTTP errors. No retry here.
        """
        log_ctx = safe_log_context(**_describe_payload(payload))
        logger.info("sending outbound message via meta", extra={"extra_fields": log_ctx})

        response = await self._request(
            "send_message",
            "POST",
            f"{self._base_url}/{self._phone_number_id}/messages",
            json=payload,
            headers=self._auth_headers,
        )
        try:
            message_id = response.json()["messages"][0]["id"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MetaApiError("send_message: response without message id") from e

        logger.info(
            "outbound message accepted by meta",
            extra={"extra_fields": {**log_ctx, **safe_log_context(delivery_id=str(message_id))}},
        )
        return str(message_id)

    async def upload_media(
        self, data: bytes, mime_type: str, filename: str = "upload"
    ) -> str:
        """Upload binary media to the WhatsApp media store.

        Returns:
            Native media id usable as ``{"id": media_id}`` in a send.
        """
        response = await self._request(
            "upload_media",
            "POST",
            f"{self._base_url}/{self._phone_number_id}/media",
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, data, mime_type)},
            headers=self._auth_headers,
        )
        try:
            media_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise MetaApiError("upload_media: response without media id") from e
        logger.info(
            "media uploaded to meta",
            extra={"extra_fields": safe_log_context(size=len(data), mime_type=mime_type)},
        )
        return str(media_id)

    async def resolve_media_url(self, media_id: str) -> tuple[str, str | None]:
        """Resolve a media id from a webhook into a short-lived download URL.

        Returns:
            (download url, mime type reported by the Graph API).
        """
        response = await self._request(
            "resolve_media_url",
            "GET",
            f"{self._base_url}/{media_id}",
            headers=self._auth_headers,
        )
        try:
            body = response.json()
        except ValueError as e:
            raise MetaApiError("resolve_media_url: invalid json") from e
        url = body.get("url") if isinstance(body, dict) else None
        if not url:
            raise MetaApiError("resolve_media_url: response without url")
        return str(url), body.get("mime_type")

    async def download_media(self, url: str) -> tuple[bytes, str | None]:
        """Download media bytes from a URL returned by resolve_media_url."""
        response = await self._request(
            "download_media", "GET", url, headers=self._auth_headers
        )
        return response.content, response.headers.get("content-type")

    async def fetch_external(self, url: str) -> tuple[bytes, str]:
        """Download a publicly reachable file (bot-supplied attachment)."""
        response = await self._request(
            "fetch_external", "GET", url, follow_redirects=True
        )
        content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        return response.content, content_type.split(";")[0].strip()
