"""
Client for self-hosted OpenRevenue standalone apps.

Protocol (every request carries X-API-Key):
- GET  /api/v1/health          -> {status, publicKey?}
- POST /api/v1/revenue         -> {data: [RevenueDataPoint]}
- POST /api/v1/revenue/signed  -> {data: "<json>", signature, publicKey, timestamp}

Signed fetches fail closed: unverified data is never returned.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from ..common.http_client import create_api_client
from ..common.verification import is_stale, verify_signature
from ..config.settings import settings
from .base_provider import RevenueDataPoint

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/v1/health"
REVENUE_PATH = "/api/v1/revenue"
SIGNED_REVENUE_PATH = "/api/v1/revenue/signed"

UNHEALTHY = "unhealthy"


class StandaloneAPIError(Exception):
    """Non-2xx response or unreadable body from a standalone app."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SignatureVerificationError(Exception):
    """A signed payload did not verify against the trusted public key."""


@dataclass
class SignedRevenue:
    """A verified signed response."""
    points: List[RevenueDataPoint]
    public_key: str  # Key the signature verified against
    timestamp: float  # Epoch milliseconds
    version: Optional[str] = None
    key_from_response: bool = False  # True when no key was stored beforehand


def _iso(value: Union[date, datetime, str]) -> str:
    return value if isinstance(value, str) else value.isoformat()


class StandaloneClient:
    """
    HTTP client for one standalone app.

    Usage:
        async with StandaloneClient(endpoint, api_key, public_key) as client:
            points = await client.fetch_signed_revenue(start, end)
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        public_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_age_minutes: Optional[float] = None,
    ):
        self.base_url = endpoint.rstrip("/")
        self.api_key = api_key
        self.public_key = public_key
        self.timeout = timeout or settings.standalone_timeout
        self.max_age_minutes = max_age_minutes or settings.signature_max_age_minutes
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_api_client(timeout=self.timeout)
        return self._client

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json", "X-API-Key": self.api_key}
        response = await self._get_client().request(method, url, json=body, headers=headers)

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            try:
                payload = response.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = payload["message"]
            except ValueError:
                pass
            raise StandaloneAPIError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise StandaloneAPIError(f"Invalid JSON from {url}", status_code=response.status_code) from e

    @staticmethod
    def _revenue_request(start_date, end_date, interval: Optional[str]) -> Dict[str, Any]:
        body = {"startDate": _iso(start_date), "endDate": _iso(end_date)}
        if interval:
            body["interval"] = interval
        return body

    @staticmethod
    def _parse_points(items: Any) -> List[RevenueDataPoint]:
        if not isinstance(items, list):
            raise StandaloneAPIError("Revenue payload is not a list")
        try:
            return [RevenueDataPoint.model_validate(item) for item in items]
        except ValidationError as e:
            raise StandaloneAPIError(f"Malformed revenue data point: {e}") from e

    async def get_health_status(self) -> Dict[str, Any]:
        return await self._request("GET", HEALTH_PATH)

    async def validate_connection(self) -> bool:
        """True when the app answers its health check with anything but 'unhealthy'."""
        try:
            health = await self.get_health_status()
        except (httpx.HTTPError, StandaloneAPIError) as e:
            logger.warning(f"Standalone health check failed for {self.base_url}: {e}")
            return False
        return health.get("status") != UNHEALTHY

    async def fetch_revenue(self, start_date, end_date, interval: Optional[str] = None) -> List[RevenueDataPoint]:
        """Plain fetch, authenticated by the API key only."""
        body = await self._request("POST", REVENUE_PATH, self._revenue_request(start_date, end_date, interval))
        return self._parse_points(body.get("data"))

    async def fetch_signed(self, start_date, end_date, interval: Optional[str] = None) -> SignedRevenue:
        """
        Fetch and verify a signed revenue envelope.

        The stored public key wins; the key embedded in the response is only
        used when none is stored (first contact).

        Raises:
            SignatureVerificationError: missing or invalid signature
            StandaloneAPIError: HTTP failure or malformed payload
        """
        envelope = await self._request(
            "POST", SIGNED_REVENUE_PATH, self._revenue_request(start_date, end_date, interval)
        )
        data = envelope.get("data")
        signature = envelope.get("signature")
        embedded_key = envelope.get("publicKey")
        timestamp = envelope.get("timestamp") or 0

        key = self.public_key or embedded_key
        if not isinstance(data, str) or not signature or not key:
            raise SignatureVerificationError("Signed response is missing data, signature or public key")
        if self.public_key and embedded_key and embedded_key != self.public_key:
            logger.warning(f"Standalone app {self.base_url} presented a different public key than the stored one")

        if not verify_signature(data, signature, key):
            raise SignatureVerificationError(f"Invalid signature from {self.base_url}")

        if is_stale(timestamp, self.max_age_minutes):
            logger.warning(
                f"Signed data from {self.base_url} is older than {self.max_age_minutes} minutes"
            )

        try:
            items = json.loads(data)
        except ValueError as e:
            raise StandaloneAPIError("Signed data is not valid JSON") from e

        return SignedRevenue(
            points=self._parse_points(items),
            public_key=key,
            timestamp=timestamp,
            version=envelope.get("version"),
            key_from_response=self.public_key is None,
        )

    async def fetch_signed_revenue(self, start_date, end_date, interval: Optional[str] = None) -> List[RevenueDataPoint]:
        signed = await self.fetch_signed(start_date, end_date, interval)
        return signed.points
