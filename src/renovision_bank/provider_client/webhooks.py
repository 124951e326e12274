"""
Webhook signature verification.

The provider signs webhook bodies with HMAC-SHA256 over the raw payload using
the shared webhook secret, and sends the hex digest in a header.
"""

import hashlib
import hmac
import json
import logging

logger = logging.getLogger(__name__)


def compute_webhook_signature(payload: str | bytes | dict, secret: str) -> str:
    """Compute the hex HMAC-SHA256 signature of a webhook payload.

    Dict payloads are serialized compactly, the way the provider signs them.
    """
    if isinstance(payload, dict):
        payload = json.dumps(payload, separators=(",", ":"))
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: str | bytes | dict,
    signature: str | None,
    secret: str | None,
) -> bool:
    """
    Check a webhook signature in constant time.

    Returns False (never raises) when the secret is not configured or the
    signature is missing or malformed.
    """
    if not secret:
        logger.error("Webhook secret not configured, rejecting webhook")
        return False
    if not signature or not signature.isascii():
        return False

    expected = compute_webhook_signature(payload, secret)
    return hmac.compare_digest(signature.strip().lower(), expected)
