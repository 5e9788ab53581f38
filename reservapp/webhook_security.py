"""
MercadoPago webhook signatures

x-signature carries ts and v1; v1 is an HMAC over the notification id, type and ts.
Old timestamps are rejected to limit replays.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from .config import IS_PRODUCTION, MERCADOPAGO_WEBHOOK_SECRET

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """Timing-safe equality; empty values never match"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Hex digest of HMAC-SHA256(secret, payload)"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """The ts value from x-signature (unix seconds) must be within max_age of now"""
    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    age = abs(int(time.time()) - webhook_time)
    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def parse_signature_header(header: str) -> tuple[Optional[str], Optional[str]]:
    """Split an ``x-signature`` header of the form ``ts=<ts>,v1=<hash>``"""
    timestamp = None
    signature = None
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "ts":
            timestamp = value
        elif key == "v1":
            signature = value
    return timestamp, signature


def build_signature_manifest(data_id: str, event_type: str, timestamp: str) -> str:
    return f"id={data_id}&type={event_type}&ts={timestamp}"


def verify_mercadopago_signature(
    signature_header: Optional[str],
    data_id: str,
    event_type: str,
    secret: Optional[str] = None,
) -> bool:
    """
    Verify a MercadoPago ``x-signature`` header.

    The v1 hash is HMAC_SHA256(secret, "id=<data.id>&type=<type>&ts=<ts>") in hex.
    """
    secret = secret if secret is not None else MERCADOPAGO_WEBHOOK_SECRET
    if not secret:
        logger.error("❌ MERCADOPAGO_WEBHOOK_SECRET not configured")
        return False

    if not signature_header:
        logger.error("❌ Missing x-signature header")
        return False

    timestamp, received = parse_signature_header(signature_header)
    if not timestamp or not received:
        logger.error("❌ Invalid signature format")
        return False

    if not verify_timestamp(timestamp):
        return False

    manifest = build_signature_manifest(data_id, event_type, timestamp)
    expected = compute_hmac_sha256(secret, manifest.encode("utf-8"))

    if not constant_time_compare(received, expected):
        logger.error(f"❌ Signature mismatch for manifest: {manifest}")
        return False

    return True


def should_skip_validation() -> bool:
    """Outside production a missing webhook secret disables signature checks"""
    return not IS_PRODUCTION and not MERCADOPAGO_WEBHOOK_SECRET
