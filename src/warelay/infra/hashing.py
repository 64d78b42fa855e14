"""HMAC-SHA256 body signatures.

Used for both webhook boundaries:
- Meta signs WhatsApp webhooks with X-Hub-Signature-256: sha256=<hex>
- The bot backend and this relay sign each other's bodies with
  X-Hub-Signature: sha256=<hex>
"""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""

    pass


def sign_body(payload_bytes: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature header value for a body."""
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(payload_bytes: bytes, signature_header: str, secret: str) -> None:
    """Verify a ``sha256=<hex>`` HMAC signature header.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: Header value (sha256=...).
        secret: Shared secret for HMAC verification.

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise SignatureVerificationError("invalid signature format")

    expected = sign_body(payload_bytes, secret)

    if not hmac.compare_digest(expected, signature_header):
        raise SignatureVerificationError("signature mismatch")
