"""
Base Provider - Abstract interface for payment-provider integrations.

Every provider normalizes its billing data into RevenueDataPoint rows:
- validate_credentials(): Cheap read-only call proving the key works
- fetch_revenue(): Charges bucketed per day or month
- fetch_current_metrics(): Point-in-time MRR / ARR / customers
- fetch_customer_count(): Paying customers right now
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..common.http_client import create_api_client
from ..common.revenue import calculate_arr

logger = logging.getLogger(__name__)

DAILY = "daily"
MONTHLY = "monthly"


class ProviderError(Exception):
    """A payment provider call failed."""


class UnsupportedProviderError(ProviderError):
    """No adapter exists for the requested provider id."""


class RevenueDataPoint(BaseModel):
    """Canonical revenue point shared by providers and standalone apps."""
    model_config = ConfigDict(populate_by_name=True)

    date: date
    revenue: float
    mrr: Optional[float] = None
    arr: Optional[float] = None
    customer_count: Optional[int] = Field(default=None, alias="customerCount")
    currency: str = "USD"

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v):
        """Accept ISO dates and ISO datetimes (converted to their UTC day)."""
        if isinstance(v, str) and ("T" in v or " " in v):
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if isinstance(v, datetime):
            if v.tzinfo is not None:
                v = v.astimezone(timezone.utc)
            return v.date()
        return v

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass
class RevenueMetrics:
    """Point-in-time metrics. arr is always 12 x mrr."""
    mrr: float
    total_revenue: float
    customer_count: int
    currency: str = "USD"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def arr(self) -> float:
        return calculate_arr(self.mrr)


def bucket_date(moment: datetime, interval: str = MONTHLY) -> date:
    """Bucket key for a UTC moment: the day itself, or the first of its month."""
    if interval == DAILY:
        return moment.date()
    return moment.date().replace(day=1)


def to_points(buckets: Dict[date, float], currency: str) -> List[RevenueDataPoint]:
    return [
        RevenueDataPoint(date=day, revenue=round(amount, 2), currency=currency)
        for day, amount in sorted(buckets.items())
    ]


class PaymentProvider(ABC):
    """
    Abstract base class for payment-provider adapters.

    Subclasses must implement the four capability methods. The HTTP client
    is created lazily and closed by close() / the async context manager
    unless one was injected.
    """

    name: str = ""
    api_base: str = ""

    def __init__(
        self,
        api_key: str,
        api_secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        api_base: Optional[str] = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        if api_base:
            self.api_base = api_base
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_api_client(extra_headers=self._auth_headers())
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET api_base + path; raises ProviderError on transport, HTTP or decode errors."""
        url = f"{self.api_base}{path}"
        try:
            response = await self._get_client().get(url, params=params, headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(f"{self.name} API error: {self._error_message(response)}")
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned a non-JSON response (HTTP {response.status_code})") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(body, dict) and body.get("detail"):
            return str(body["detail"])
        return f"HTTP {response.status_code}"

    def get_name(self) -> str:
        return self.name

    @abstractmethod
    async def validate_credentials(self) -> ValidationResult:
        """Confirm the credentials authenticate. Never raises."""

    @abstractmethod
    async def fetch_revenue(
        self,
        start_date: datetime,
        end_date: datetime,
        interval: str = MONTHLY,
        currency: str = "USD",
    ) -> List[RevenueDataPoint]:
        """
        Pull paid charges in [start_date, end_date] and bucket them.

        Returns:
            One RevenueDataPoint per interval bucket, oldest first
        """

    @abstractmethod
    async def fetch_current_metrics(self) -> RevenueMetrics:
        """Point-in-time MRR, customers and trailing 30-day revenue."""

    @abstractmethod
    async def fetch_customer_count(self) -> int:
        """Number of customers on the account."""
