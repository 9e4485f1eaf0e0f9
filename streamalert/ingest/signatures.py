"""
Webhook signature verification

Twitch signs EventSub deliveries with HMAC-SHA256 using the secret we
registered with the subscription. Kick signs with its private RSA key and
publishes the matching public key.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="webhook")

TWITCH_SIGNATURE_PREFIX = "sha256="


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_twitch_signature(
    secret: str, message_id: str, timestamp: str, body: bytes
) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        _as_bytes(message_id) + _as_bytes(timestamp) + body,
        hashlib.sha256,
    ).hexdigest()
    return f"{TWITCH_SIGNATURE_PREFIX}{digest}"


def verify_twitch_signature(
    secret: str,
    message_id: str,
    timestamp: str,
    body: bytes,
    provided_signature: str,
) -> bool:
    """
    Check an EventSub ``Twitch-Eventsub-Message-Signature`` header.

    Args:
        secret: Secret registered with the subscription
        message_id: Twitch-Eventsub-Message-Id header
        timestamp: Twitch-Eventsub-Message-Timestamp header
        body: Raw request body, exactly as received
        provided_signature: Header value in the form ``sha256=<hex>``

    Returns:
        True only for the exact HMAC over (id, timestamp, body)
    """
    if not secret or not provided_signature:
        return False
    expected = compute_twitch_signature(secret, message_id, timestamp, body)
    return hmac.compare_digest(expected.encode("utf-8"), provided_signature.encode("utf-8"))


def load_public_key(pem: Union[str, bytes]) -> Optional[rsa.RSAPublicKey]:
    """Parse a PEM public key; returns None when it is not a usable RSA key."""
    try:
        key = serialization.load_pem_public_key(_as_bytes(pem).strip())
    except (ValueError, TypeError) as exc:
        logger.error("[Kick] Could not parse public key: %s", exc)
        return None
    if not isinstance(key, rsa.RSAPublicKey):
        logger.error("[Kick] Public key is not an RSA key")
        return None
    return key


def kick_signed_payload(message_id: str, timestamp: str, body: bytes) -> bytes:
    return _as_bytes(message_id) + b"." + _as_bytes(timestamp) + b"." + body


def verify_kick_signature(
    public_key: Optional[rsa.RSAPublicKey],
    message_id: str,
    timestamp: str,
    body: bytes,
    provided_signature: str,
) -> bool:
    """
    Check a ``Kick-Event-Signature`` header (base64 RSA PKCS#1 v1.5 / SHA-256
    over ``message_id.timestamp.body``).
    """
    if public_key is None:
        logger.warning("[Kick] No public key loaded, rejecting webhook")
        return False
    if not provided_signature:
        return False

    try:
        signature = base64.b64decode(provided_signature, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("[Kick] Signature is not valid base64")
        return False

    try:
        public_key.verify(
            signature,
            kick_signed_payload(message_id, timestamp, body),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature:
        return False
    return True
