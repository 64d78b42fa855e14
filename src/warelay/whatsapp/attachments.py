"""Attachment relocation between WhatsApp, blob storage and the bot backend.

Inbound: WhatsApp media ids are only downloadable with the relay's access
token, so the bytes are copied to durable storage and the bot backend gets
a signed, time-limited URL instead.

Outbound: bot attachments go out by link. With native upload enabled the
file is first uploaded to the WhatsApp media store; any failure there
falls back to the link.
"""

from __future__ import annotations

import mimetypes
import uuid
from typing import Any

from warelay.infra.blob_store import BlobStore, BlobStoreError
from warelay.infra.time import utc_now
from warelay.observability.logging import get_logger
from warelay.observability.redaction import safe_log_context

from .meta_sender import DEFAULT_CONTENT_TYPE, MetaApiError, MetaCloudClient
from .models import Attachment, AttachmentType, MediaEvent

logger = get_logger(__name__)

KEY_PREFIX = "whatsapp"

_ATTACHMENT_TYPES: dict[str, AttachmentType] = {
    "image": "image",
    "audio": "audio",
    "video": "video",
    "document": "file",
}

# WhatsApp payload field per bot attachment type; anything else is a document
_WIRE_TYPES = {"image": "image", "video": "video", "audio": "audio"}


def _extension_for(content_type: str) -> str:
    # mimetypes has no entry for the opus voice notes WhatsApp sends
    base = content_type.split(";")[0].strip().lower()
    if base == "audio/ogg":
        return ".ogg"
    return mimetypes.guess_extension(base) or ".bin"


def build_storage_key(content_type: str) -> str:
    """Unique object key, bucketed by UTC day: whatsapp/YYYY/MM/DD/<hex><ext>."""
    day = utc_now().strftime("%Y/%m/%d")
    return f"{KEY_PREFIX}/{day}/{uuid.uuid4().hex}{_extension_for(content_type)}"


def inbound_title(media: MediaEvent) -> str | None:
    title = media.caption or media.filename
    if not title and media.kind == "audio":
        return "audio.ogg"
    return title or None


class AttachmentPipeline:
    """Moves media between WhatsApp and durable storage."""

    def __init__(
        self,
        meta: MetaCloudClient,
        blob_store: BlobStore,
        *,
        signed_url_ttl: int = 3600,
        native_upload: bool = False,
    ) -> None:
        self._meta = meta
        self._blob_store = blob_store
        self._signed_url_ttl = signed_url_ttl
        self._native_upload = native_upload

    async def relocate_inbound(self, media: MediaEvent) -> Attachment | None:
        """Copy WhatsApp media to blob storage.

        Returns:
            Attachment pointing at a signed URL, or None if any step failed.
        """
        log_ctx = safe_log_context(kind=media.kind, message_id_prefix=media.message_id[:12])
        try:
            download_url, graph_mime = await self._meta.resolve_media_url(media.media_id)
            data, header_mime = await self._meta.download_media(download_url)
            content_type = media.mime_type or graph_mime or header_mime or DEFAULT_CONTENT_TYPE
            key = build_storage_key(content_type)
            await self._blob_store.put(key, data, content_type)
            url = await self._blob_store.signed_get_url(key, self._signed_url_ttl)
        except (MetaApiError, BlobStoreError) as e:
            logger.error(
                "inbound attachment relocation failed",
                extra={"extra_fields": {**log_ctx, **safe_log_context(error=str(e))}},
            )
            return None

        attachment = Attachment(
            type=_ATTACHMENT_TYPES.get(media.kind, "file"),
            url=url,
            title=inbound_title(media),
        )
        logger.info(
            "inbound attachment relocated",
            extra={
                "extra_fields": {
                    **log_ctx,
                    **safe_log_context(size=len(data), content_type=content_type),
                }
            },
        )
        return attachment

    async def outbound_media(
        self, attachment_type: str, url: str, title: str | None = None
    ) -> tuple[str, dict[str, Any]]:
        """Build the WhatsApp media field for a bot attachment.

        Returns:
            (wire type, media object), e.g. ("image", {"link": url, "caption": title}).
            Never fails because of native upload: it falls back to the link.
        """
        wire_type = _WIRE_TYPES.get(attachment_type, "document")
        media: dict[str, Any] = {"link": url}

        if self._native_upload:
            media_id = await self._try_native_upload(url, wire_type)
            if media_id:
                media = {"id": media_id}

        if title and wire_type != "audio":
            media["caption"] = title

        logger.info(
            "outbound attachment prepared",
            extra={
                "extra_fields": safe_log_context(
                    wire_type=wire_type, by="media_id" if "id" in media else "link"
                )
            },
        )
        return wire_type, media

    async def _try_native_upload(self, url: str, wire_type: str) -> str | None:
        try:
            data, content_type = await self._meta.fetch_external(url)
            return await self._meta.upload_media(
                data, content_type, filename=f"{wire_type}{_extension_for(content_type)}"
            )
        except Exception as e:
            logger.warning(
                "native media upload failed, falling back to link",
                extra={
                    "extra_fields": safe_log_context(
                        wire_type=wire_type, error_type=type(e).__name__
                    )
                },
            )
            return None
