"""
Signature verification for self-reported revenue payloads.

Standalone apps sign their revenue data with Ed25519 and ship the signature
and public key base64-encoded. Every function here fails safe: malformed
input yields False, never an exception.
"""

import base64
import hashlib
import json
import logging
import time
from typing import Any, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

logger = logging.getLogger(__name__)


def canonical_json(data: Any) -> str:
    """Compact JSON serialization used as the signed message."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def verify_signature(data: Any, signature: str, public_key: str) -> bool:
    """
    Verify an Ed25519 signature over data.

    Args:
        data: Signed payload. Strings are verified as-is, anything else is
            serialized with canonical_json first.
        signature: Base64 signature
        public_key: Base64 raw 32-byte Ed25519 public key

    Returns:
        True only if the signature is valid for data under public_key.
    """
    try:
        message = data if isinstance(data, str) else canonical_json(data)
        key = Ed25519PublicKey.from_public_bytes(base64.b64decode(public_key, validate=True))
        key.verify(base64.b64decode(signature, validate=True), message.encode("utf-8"))
        return True
    except InvalidSignature:
        logger.warning("Signature verification failed: signature does not match payload")
        return False
    except (ValueError, TypeError) as e:
        logger.warning(f"Signature verification failed: malformed input ({e})")
        return False


def is_stale(timestamp_ms: float, max_age_minutes: float = 10, now_ms: Optional[float] = None) -> bool:
    """True if an epoch-millisecond timestamp is older than max_age_minutes."""
    if now_ms is None:
        now_ms = time.time() * 1000
    return now_ms - timestamp_ms > max_age_minutes * 60 * 1000


def generate_data_hash(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form (empty string for None)."""
    payload = "" if data is None else canonical_json(data)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
