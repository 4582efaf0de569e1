"""
Common utilities and shared modules.
"""

from .encryption import encrypt, decrypt, EncryptionConfigError, DecryptionError
from .verification import (
    verify_signature,
    is_stale,
    generate_data_hash,
    canonical_json,
)
from .http_client import create_api_client, USER_AGENT

__all__ = [
    "encrypt",
    "decrypt",
    "EncryptionConfigError",
    "DecryptionError",
    "verify_signature",
    "is_stale",
    "generate_data_hash",
    "canonical_json",
    "create_api_client",
    "USER_AGENT",
]
