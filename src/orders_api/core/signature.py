"""Webhook Signature Verification.

Verifies that incoming order webhooks were signed with the shared secret
using HMAC-SHA256 over the raw request body.
"""

import hashlib
import hmac
from typing import Optional, Tuple

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(
    body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
) -> bool:
    """
    Verify a webhook signature.

    Args:
        body: Raw request body (NOT parsed JSON)
        signature_header: Value from the signature header
        secret: Shared webhook secret

    Returns:
        True if the signature matches
    """
    if not secret:
        logger.error("Webhook secret not configured, rejecting webhook")
        return False

    if not signature_header:
        logger.warning("Webhook received without signature header")
        return False

    expected = compute_signature(body, secret)

    # Some senders prefix the digest with the algorithm name
    provided = signature_header.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]

    if hmac.compare_digest(expected, provided.lower()):
        return True

    logger.warning(f"Invalid webhook signature. Got: {provided[:16]}...")
    return False


def validate_webhook_request(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
) -> Tuple[bool, Optional[str]]:
    """
    Full webhook validation: basic checks + signature verification.

    Returns:
        (True, None) if valid, otherwise (False, error_message)
    """
    if not raw_body or not raw_body.strip():
        return False, "Empty request body"

    if not verify_signature(raw_body, signature_header, secret):
        return False, "Invalid webhook signature"

    return True, None
