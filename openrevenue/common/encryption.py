"""
Encryption of stored provider credentials.

AES-256-GCM with a random IV and salt per call. The stored blob is
base64(salt || iv || tag || ciphertext), so every value is self-describing.
The key comes from settings.encryption_key, right-padded with "0" and cut
to 32 bytes.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config.settings import settings


KEY_LENGTH = 32
IV_LENGTH = 16
SALT_LENGTH = 64
TAG_LENGTH = 16


class EncryptionConfigError(RuntimeError):
    """The master encryption secret is not configured."""


class DecryptionError(Exception):
    """A stored secret could not be decrypted (wrong key, tampering, bad blob)."""


def _get_key(secret: Optional[str] = None) -> bytes:
    secret = settings.encryption_key if secret is None else secret
    if not secret:
        raise EncryptionConfigError("ENCRYPTION_KEY environment variable is not set")
    return secret.encode("utf-8").ljust(KEY_LENGTH, b"0")[:KEY_LENGTH]


def encrypt(plaintext: str, secret: Optional[str] = None) -> str:
    """Encrypt a credential for storage. Raises EncryptionConfigError if unset."""
    key = _get_key(secret)
    iv = os.urandom(IV_LENGTH)
    salt = os.urandom(SALT_LENGTH)

    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt(blob: str, secret: Optional[str] = None) -> str:
    """Decrypt a stored credential.

    Raises:
        EncryptionConfigError: master secret unset
        DecryptionError: malformed blob, wrong key or tampered data
    """
    key = _get_key(secret)

    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptionError(f"Malformed encrypted value: {e}") from e

    header = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
    if len(raw) < header:
        raise DecryptionError("Malformed encrypted value: too short")

    iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    tag = raw[SALT_LENGTH + IV_LENGTH:header]
    ciphertext = raw[header:]

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Authentication failed: wrong key or tampered data") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted value is not valid UTF-8") from e
