"""Bot backend reply route.

The bot backend POSTs its replies here; each reply is composed into a
WhatsApp payload and queued. The response only confirms queueing, the
actual send happens in order behind earlier messages.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError

from warelay.api.deps import get_relay
from warelay.bot.models import BotReply
from warelay.infra.hashing import SignatureVerificationError, verify_signature
from warelay.observability.logging import get_logger
from warelay.observability.redaction import recipient_context, safe_log_context
from warelay.relay import Relay
from warelay.whatsapp.composer import UnsupportedReplyError

router = APIRouter(prefix="/bot", tags=["bot"])

logger = get_logger(__name__)


@router.post("/message")
async def bot_message(
    request: Request,
    x_hub_signature: str | None = Header(None, alias="X-Hub-Signature"),
    relay: Relay = Depends(get_relay),
) -> dict[str, Any]:
    """Queue a bot reply for delivery to WhatsApp.

    Returns:
        200 {"status": "queued", "sequence": n}.
        403 on bad signature, 400 on invalid JSON or unsupported reply,
        422 on schema errors.
    """
    body_bytes = await request.body()

    secret = relay.settings.bot_webhook_secret
    if secret:
        try:
            verify_signature(body_bytes, x_hub_signature or "", secret)
        except SignatureVerificationError as e:
            logger.warning(
                "bot signature verification failed",
                extra={"extra_fields": safe_log_context(error=str(e))},
            )
            raise HTTPException(status_code=403, detail="invalid signature") from e

    try:
        body = json.loads(body_bytes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid json") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="expected a json object")

    try:
        reply = BotReply.from_envelope(body)
    except ValidationError as e:
        logger.warning(
            "invalid bot reply",
            extra={"extra_fields": safe_log_context(error_count=e.error_count())},
        )
        raise HTTPException(
            status_code=422, detail=e.errors(include_url=False, include_input=False)
        ) from e

    try:
        item = await relay.handle_bot_reply(reply)
    except UnsupportedReplyError as e:
        logger.warning(
            "unsupported bot reply",
            extra={
                "extra_fields": recipient_context(reply.conversation_key, reply_type=reply.type)
            },
        )
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {"status": "queued", "sequence": item.sequence}
