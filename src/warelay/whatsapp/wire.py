"""WhatsApp Cloud API message envelopes."""

from typing import Any


def envelope(to: str) -> dict[str, Any]:
    """Fields common to every outbound message."""
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
    }


def text_payload(to: str, body: str, preview_url: bool = False) -> dict[str, Any]:
    return {
        **envelope(to),
        "type": "text",
        "text": {"body": body, "preview_url": preview_url},
    }


def truncate_label(label: str, limit: int, keep: int) -> str:
    """Labels longer than ``limit`` are cut to ``keep`` characters plus ``...``."""
    if len(label) <= limit:
        return label
    return label[:keep] + "..."
