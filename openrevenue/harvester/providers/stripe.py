"""
Stripe integration over the Stripe REST API.

Revenue comes from paid, non-refunded charges; MRR from active
subscriptions normalized to a monthly amount.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from ...config.settings import settings
from ..base_provider import (
    MONTHLY,
    PaymentProvider,
    ProviderError,
    RevenueDataPoint,
    RevenueMetrics,
    ValidationResult,
    bucket_date,
    to_points,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

# Multipliers that turn one billing period into a monthly amount
MONTHLY_FACTORS = {
    "month": 1.0,
    "year": 1 / 12,
    "week": 4.33,
    "day": 30.0,
}


class StripeProvider(PaymentProvider):
    name = "stripe"

    def __init__(self, api_key: str, api_secret: Optional[str] = None, **kwargs):
        kwargs.setdefault("api_base", settings.stripe_api_base)
        super().__init__(api_key, api_secret, **kwargs)

    async def _paginate(self, path: str, params: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Yield every object of a Stripe list endpoint (cursor pagination)."""
        params = {**params, "limit": PAGE_SIZE}
        while True:
            page = await self._get_json(path, params)
            items = page.get("data", [])
            for item in items:
                yield item
            if not page.get("has_more") or not items:
                return
            params["starting_after"] = items[-1]["id"]

    async def validate_credentials(self) -> ValidationResult:
        try:
            await self._get_json("/balance")
            return ValidationResult(valid=True)
        except ProviderError as e:
            return ValidationResult(valid=False, error=str(e) or "Invalid Stripe credentials")

    async def fetch_revenue(
        self,
        start_date: datetime,
        end_date: datetime,
        interval: str = MONTHLY,
        currency: str = "USD",
    ) -> List[RevenueDataPoint]:
        revenue_by_date: Dict[date, float] = defaultdict(float)
        customers_by_date: Dict[date, Set[str]] = defaultdict(set)

        try:
            async for charge in self._paginate("/charges", {
                "created[gte]": int(start_date.timestamp()),
                "created[lte]": int(end_date.timestamp()),
            }):
                if not charge.get("paid") or charge.get("refunded"):
                    continue
                created = datetime.fromtimestamp(charge["created"], tz=timezone.utc)
                key = bucket_date(created, interval)
                revenue_by_date[key] += charge.get("amount", 0) / 100
                if charge.get("customer"):
                    customers_by_date[key].add(charge["customer"])
        except ProviderError as e:
            raise ProviderError(f"Failed to fetch Stripe revenue: {e}") from e

        points = to_points(revenue_by_date, currency)
        for point in points:
            point.customer_count = len(customers_by_date[point.date])
        return points

    @staticmethod
    def _monthly_amount(item: Dict[str, Any]) -> float:
        price = item.get("price") or {}
        recurring = price.get("recurring") or {}
        factor = MONTHLY_FACTORS.get(recurring.get("interval"), 0.0)
        interval_count = recurring.get("interval_count") or 1
        amount = (price.get("unit_amount") or 0) * (item.get("quantity") or 1) / 100
        return amount * factor / interval_count

    async def fetch_current_metrics(self) -> RevenueMetrics:
        mrr = 0.0
        customers: Set[str] = set()
        try:
            async for subscription in self._paginate("/subscriptions", {"status": "active"}):
                for item in (subscription.get("items") or {}).get("data", []):
                    mrr += self._monthly_amount(item)
                if subscription.get("customer"):
                    customers.add(subscription["customer"])
        except ProviderError as e:
            raise ProviderError(f"Failed to fetch Stripe metrics: {e}") from e

        now = datetime.now(timezone.utc)
        recent = await self.fetch_revenue(now - timedelta(days=30), now)

        return RevenueMetrics(
            mrr=round(mrr, 2),
            total_revenue=sum(p.revenue for p in recent),
            customer_count=len(customers),
        )

    async def fetch_customer_count(self) -> int:
        count = 0
        try:
            async for _ in self._paginate("/customers", {}):
                count += 1
        except ProviderError as e:
            raise ProviderError(f"Failed to fetch Stripe customer count: {e}") from e
        return count
