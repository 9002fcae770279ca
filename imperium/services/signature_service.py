"""Webhook authenticity checks: Meta HMAC signatures, subscription handshake, shared secrets."""

import hashlib
import hmac
from typing import Optional

from imperium.logging_config import get_logger

logger = get_logger("signature_service")

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, signature_header: Optional[str], secret: Optional[str]) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the exact request bytes.

    Fails closed: an unconfigured secret, a missing header or any malformed
    input is a mismatch.
    """
    if not secret:
        logger.warning("Webhook secret is not configured, rejecting signature")
        return False
    if not signature_header or not isinstance(signature_header, str):
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        return False

    try:
        expected = compute_signature(bytes(raw_body), secret)
    except (TypeError, ValueError):
        return False

    return hmac.compare_digest(expected.encode("utf-8"), signature_header.strip().encode("utf-8"))


def verify_subscription(
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    expected_token: Optional[str],
) -> Optional[str]:
    """Meta GET handshake. Returns the challenge to echo, or None to reject."""
    if mode != "subscribe" or not expected_token or not token:
        return None
    if not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        return None
    return challenge or ""


def verify_shared_secret(provided: Optional[str], expected: Optional[str]) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
