"""
Utility functions for the Guest Book API.
"""

import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def compute_hmac_signature(body: bytes, secret: str) -> str:
    """
    Compute the hex HMAC-SHA256 of body using secret.
    """
    return hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256
    ).hexdigest()


def verify_hmac_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify HMAC-SHA256 signature.

    Args:
        body: Signed bytes (the X-User-Id header value)
        signature: Hex-encoded signature from X-Signature header
        secret: AUTH_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    logger.debug(f"Verifying HMAC signature: {signature[:8]}...")

    expected_signature = compute_hmac_signature(body, secret)

    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(
        expected_signature.encode("utf-8"),
        signature.encode("utf-8")
    )
    logger.debug(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid
