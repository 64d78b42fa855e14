"""WhatsApp webhook routes - Meta Cloud API integration.

Security:
- Phone numbers and message text exist only in memory during processing
- Logs contain only hashes, lengths and message types
"""

from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from warelay.api.deps import get_relay
from warelay.infra.hashing import SignatureVerificationError, verify_signature
from warelay.observability.correlation import get_correlation_id
from warelay.observability.logging import get_logger
from warelay.observability.redaction import safe_log_context
from warelay.relay import Relay
from warelay.whatsapp.meta_adapter import (
    InvalidPayloadError,
    get_phone_number_id,
    is_whatsapp_payload,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


def _ok() -> Response:
    return Response(status_code=200, content="ok")


@router.get("/webhook")
async def meta_webhook_verify(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    relay: Relay = Depends(get_relay),
) -> Response:
    """Meta webhook verification endpoint.

    Meta sends GET request during webhook setup to verify ownership.
    We must return hub.challenge if hub.verify_token matches.

    Returns:
        200 with hub.challenge if valid.
        403 if invalid.
    """
    expected_token = relay.settings.verify_token

    if expected_token and hub_mode == "subscribe" and hub_verify_token == expected_token:
        logger.info(
            "meta webhook verification successful",
            extra={"extra_fields": safe_log_context(hub_mode=hub_mode)},
        )
        return Response(status_code=200, content=hub_challenge or "")

    logger.warning(
        "meta webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                hub_mode=hub_mode or "missing",
                token_match=hub_verify_token == expected_token
                if expected_token
                else "no_token_configured",
            )
        },
    )
    return Response(status_code=403, content="verification failed")


@router.post("/user/message")
async def meta_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
    relay: Relay = Depends(get_relay),
) -> Response:
    """Receive Meta Cloud API webhook and relay its messages to the bot.

    IMPORTANT: Always return 200 to Meta once the body is read, even on
    processing errors. Meta retries on non-2xx; retries of messages already
    relayed are dropped by the dedupe set anyway.
    """
    correlation_id = get_correlation_id()

    # 1. Read raw body for signature verification
    try:
        body_bytes = await request.body()
    except Exception:
        logger.warning(
            "failed to read request body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _ok()

    # 2. Verify signature (if META_APP_SECRET configured)
    app_secret = relay.settings.app_secret
    if app_secret:
        try:
            verify_signature(body_bytes, x_hub_signature_256 or "", app_secret)
        except SignatureVerificationError as e:
            logger.warning(
                "meta signature verification failed",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        error=str(e),
                    )
                },
            )
            return _ok()

    # 3. Parse JSON
    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _ok()

    # 4. Only WhatsApp Business payloads (or a bare entry list) carry messages
    if not (is_whatsapp_payload(payload) or isinstance(payload, list)):
        logger.debug(
            "non-whatsapp webhook ignored",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    object_type=payload.get("object", "missing")
                    if isinstance(payload, dict)
                    else type(payload).__name__,
                )
            },
        )
        return _ok()

    # 5. Messages addressed to another business number are not ours
    if isinstance(payload, dict):
        phone_number_id = get_phone_number_id(payload)
        if phone_number_id and phone_number_id != relay.settings.phone_number_id:
            logger.warning(
                "webhook for another phone number ignored",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return _ok()

    # 6. Normalize and forward
    try:
        await relay.handle_webhook(payload)
    except InvalidPayloadError as e:
        logger.warning(
            "malformed meta payload",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
        )
    except Exception:
        logger.exception(
            "meta webhook processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )

    return _ok()
