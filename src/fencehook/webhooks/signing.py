"""HMAC-SHA256 signatures for webhook bodies.

Receivers recompute the HMAC over the raw request body with their copy
of the secret and compare it with the ``X-Webhook-Signature`` header.
Signing always covers the exact bytes sent, never a re-serialization.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_ALGORITHM = "sha256"


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(secret: str | bytes, payload: str | bytes) -> str:
    """Compute the hex HMAC-SHA256 digest of a payload.

    Args:
        secret: Shared webhook secret.
        payload: Body bytes as transmitted (str is UTF-8 encoded).

    Returns:
        64-character lowercase hex digest.
    """
    return hmac.new(
        key=_to_bytes(secret),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(secret: str | bytes, payload: str | bytes) -> str:
    """Signature header value in ``sha256=<hex_digest>`` form."""
    return f"{SIGNATURE_ALGORITHM}={sign(secret, payload)}"


def verify_signature(payload: str | bytes, secret: str | bytes, signature: str) -> bool:
    """Verify a ``sha256=<hex_digest>`` header against a payload.

    Uses a constant-time comparison.
    """
    expected = signature_header(secret, payload)
    return hmac.compare_digest(expected, signature)
