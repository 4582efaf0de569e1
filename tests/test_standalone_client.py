"""
Tests for the standalone app client: health checks and signed fetches.
"""

import base64
import json
import logging
import time
from datetime import date

import httpx
import pytest

from openrevenue.harvester.standalone_client import (
    SignatureVerificationError,
    StandaloneAPIError,
    StandaloneClient,
)
from tests.test_helpers import signed_envelope, standalone_transport

POINTS = [
    {"date": "2026-01-01", "revenue": 1200.5, "mrr": 1000, "customerCount": 12},
    {"date": "2026-02-01", "revenue": 1500.0, "mrr": 1250, "customerCount": 15},
]


def _client(transport, public_key=None) -> StandaloneClient:
    return StandaloneClient(
        "https://revenue.example.com/",
        "standalone-key",
        public_key=public_key,
        client=httpx.AsyncClient(transport=transport),
    )


class TestHealth:
    """Tests for validate_connection."""

    @pytest.mark.asyncio
    async def test_healthy(self):
        requests = []
        client = _client(standalone_transport(requests=requests))

        assert await client.validate_connection() is True
        assert str(requests[0].url) == "https://revenue.example.com/api/v1/health"
        assert requests[0].headers["X-API-Key"] == "standalone-key"

    @pytest.mark.asyncio
    async def test_unhealthy_status(self):
        client = _client(standalone_transport(health={"status": "unhealthy"}))
        assert await client.validate_connection() is False

    @pytest.mark.asyncio
    async def test_http_error_is_unhealthy(self):
        client = _client(httpx.MockTransport(lambda r: httpx.Response(503, json={"message": "down"})))
        assert await client.validate_connection() is False

    @pytest.mark.asyncio
    async def test_network_error_is_unhealthy(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = _client(httpx.MockTransport(handler))
        assert await client.validate_connection() is False


class TestSignedFetch:
    """Signed fetches return verified data or nothing."""

    @pytest.mark.asyncio
    async def test_valid_signature_returns_data_unchanged(self, signing_key):
        private_key, public_key = signing_key
        requests = []
        client = _client(
            standalone_transport(envelope=signed_envelope(private_key, public_key, POINTS), requests=requests),
            public_key=public_key,
        )

        points = await client.fetch_signed_revenue(date(2026, 1, 1), date(2026, 2, 28))

        assert [p.to_payload() for p in points] == [
            {"date": "2026-01-01", "revenue": 1200.5, "mrr": 1000.0, "customerCount": 12, "currency": "USD"},
            {"date": "2026-02-01", "revenue": 1500.0, "mrr": 1250.0, "customerCount": 15, "currency": "USD"},
        ]
        body = json.loads(requests[0].content)
        assert body == {"startDate": "2026-01-01", "endDate": "2026-02-28"}

    @pytest.mark.asyncio
    async def test_flipped_signature_bit_fails_closed(self, signing_key):
        private_key, public_key = signing_key
        envelope = signed_envelope(private_key, public_key, POINTS)
        raw = bytearray(base64.b64decode(envelope["signature"]))
        raw[10] ^= 0x01
        envelope["signature"] = base64.b64encode(bytes(raw)).decode()
        client = _client(standalone_transport(envelope=envelope), public_key=public_key)

        with pytest.raises(SignatureVerificationError):
            await client.fetch_signed_revenue(date(2026, 1, 1), date(2026, 2, 28))

    @pytest.mark.asyncio
    async def test_stored_key_wins_over_embedded_key(self, signing_key):
        """An attacker re-signing with their own key and embedding it is rejected."""
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

        _, trusted_key = signing_key
        attacker = Ed25519PrivateKey.generate()
        attacker_key = base64.b64encode(attacker.public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )).decode()
        client = _client(
            standalone_transport(envelope=signed_envelope(attacker, attacker_key, POINTS)),
            public_key=trusted_key,
        )

        with pytest.raises(SignatureVerificationError):
            await client.fetch_signed(date(2026, 1, 1), date(2026, 2, 28))

    @pytest.mark.asyncio
    async def test_first_contact_uses_embedded_key(self, signing_key):
        private_key, public_key = signing_key
        client = _client(standalone_transport(envelope=signed_envelope(private_key, public_key, POINTS)))

        signed = await client.fetch_signed(date(2026, 1, 1), date(2026, 2, 28))

        assert signed.key_from_response is True
        assert signed.public_key == public_key
        assert len(signed.points) == 2

    @pytest.mark.asyncio
    async def test_missing_signature(self, signing_key):
        private_key, public_key = signing_key
        envelope = signed_envelope(private_key, public_key, POINTS)
        del envelope["signature"]
        client = _client(standalone_transport(envelope=envelope), public_key=public_key)

        with pytest.raises(SignatureVerificationError):
            await client.fetch_signed(date(2026, 1, 1), date(2026, 2, 28))

    @pytest.mark.asyncio
    async def test_stale_payload_only_warns(self, signing_key, caplog):
        private_key, public_key = signing_key
        old = time.time() * 1000 - 60 * 60 * 1000
        client = _client(
            standalone_transport(envelope=signed_envelope(private_key, public_key, POINTS, timestamp_ms=old)),
            public_key=public_key,
        )

        with caplog.at_level(logging.WARNING):
            points = await client.fetch_signed_revenue(date(2026, 1, 1), date(2026, 2, 28))

        assert len(points) == 2
        assert "older than" in caplog.text

    @pytest.mark.asyncio
    async def test_http_error_carries_message(self):
        def handler(request):
            return httpx.Response(401, json={"message": "Invalid API key"})

        client = _client(httpx.MockTransport(handler))

        with pytest.raises(StandaloneAPIError) as exc_info:
            await client.fetch_signed(date(2026, 1, 1), date(2026, 2, 28))
        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "Invalid API key"


class TestPlainFetch:
    """Tests for the unsigned revenue endpoint."""

    @pytest.mark.asyncio
    async def test_fetch_revenue(self):
        client = _client(standalone_transport(revenue={"data": POINTS}))

        points = await client.fetch_revenue("2026-01-01", "2026-02-28", interval="monthly")

        assert [p.revenue for p in points] == [1200.5, 1500.0]

    @pytest.mark.asyncio
    async def test_malformed_point(self):
        client = _client(standalone_transport(revenue={"data": [{"revenue": 5}]}))

        with pytest.raises(StandaloneAPIError):
            await client.fetch_revenue("2026-01-01", "2026-02-28")
