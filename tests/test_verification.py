"""
Tests for Ed25519 signature verification and payload staleness.
"""

import base64
import json

from openrevenue.common.verification import (
    canonical_json,
    generate_data_hash,
    is_stale,
    verify_signature,
)


def _sign(private_key, message: str) -> str:
    return base64.b64encode(private_key.sign(message.encode("utf-8"))).decode()


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_valid_signature_over_string(self, signing_key):
        private_key, public_key = signing_key
        data = json.dumps([{"date": "2026-01-01", "revenue": 100}])

        assert verify_signature(data, _sign(private_key, data), public_key) is True

    def test_object_data_uses_canonical_json(self, signing_key):
        private_key, public_key = signing_key
        payload = {"revenue": 100, "currency": "USD"}

        signature = _sign(private_key, canonical_json(payload))
        assert verify_signature(payload, signature, public_key) is True

    def test_single_bit_flip_rejected(self, signing_key):
        private_key, public_key = signing_key
        data = "payload"
        raw = bytearray(base64.b64decode(_sign(private_key, data)))
        raw[0] ^= 0x01

        assert verify_signature(data, base64.b64encode(bytes(raw)).decode(), public_key) is False

    def test_modified_data_rejected(self, signing_key):
        private_key, public_key = signing_key
        signature = _sign(private_key, '{"revenue":100}')

        assert verify_signature('{"revenue":900}', signature, public_key) is False

    def test_wrong_key_rejected(self, signing_key):
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

        private_key, _ = signing_key
        other = Ed25519PrivateKey.generate().public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )

        assert verify_signature("data", _sign(private_key, "data"), base64.b64encode(other).decode()) is False

    def test_malformed_inputs_return_false(self, signing_key):
        _, public_key = signing_key
        assert verify_signature("data", "not-base64!!", public_key) is False
        assert verify_signature("data", base64.b64encode(b"x" * 64).decode(), "short") is False
        assert verify_signature("data", "", "") is False


class TestStaleness:
    """Tests for is_stale."""

    def test_fresh_timestamp(self):
        now = 1_700_000_000_000
        assert is_stale(now - 9 * 60 * 1000, max_age_minutes=10, now_ms=now) is False

    def test_old_timestamp(self):
        now = 1_700_000_000_000
        assert is_stale(now - 11 * 60 * 1000, max_age_minutes=10, now_ms=now) is True


class TestDataHash:
    """Tests for generate_data_hash."""

    def test_hash_is_stable(self):
        assert generate_data_hash({"a": 1}) == generate_data_hash({"a": 1})
        assert len(generate_data_hash({"a": 1})) == 64

    def test_hash_changes_with_data(self):
        assert generate_data_hash({"a": 1}) != generate_data_hash({"a": 2})

    def test_none_hashes_empty_string(self):
        import hashlib
        assert generate_data_hash(None) == hashlib.sha256(b"").hexdigest()
