"""
Polar.sh integration over the Polar REST API.

Orders are listed newest first, so paging stops at the first order older
than the requested window.
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


def _parse_timestamp(value: str) -> datetime:
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class PolarProvider(PaymentProvider):
    name = "polar"

    def __init__(self, api_key: str, api_secret: Optional[str] = None, **kwargs):
        kwargs.setdefault("api_base", settings.polar_api_base)
        super().__init__(api_key, api_secret, **kwargs)

    async def _paginate(self, path: str, params: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Yield every item of a Polar list endpoint (page-number pagination)."""
        page = 1
        while True:
            body = await self._get_json(path, {**params, "page": page, "limit": PAGE_SIZE})
            items = body.get("items", [])
            for item in items:
                yield item
            max_page = (body.get("pagination") or {}).get("max_page", page)
            if not items or page >= max_page:
                return
            page += 1

    async def validate_credentials(self) -> ValidationResult:
        try:
            await self._get_json("/orders/", {"limit": 1})
            return ValidationResult(valid=True)
        except ProviderError as e:
            return ValidationResult(valid=False, error=str(e) or "Invalid Polar API key")

    async def fetch_revenue(
        self,
        start_date: datetime,
        end_date: datetime,
        interval: str = MONTHLY,
        currency: str = "USD",
    ) -> List[RevenueDataPoint]:
        revenue_by_date: Dict[date, float] = defaultdict(float)
        start, end = start_date.astimezone(timezone.utc), end_date.astimezone(timezone.utc)

        try:
            async for order in self._paginate("/orders/", {"sorting": "-created_at"}):
                created = _parse_timestamp(order["created_at"])
                if created < start:
                    break
                if created > end:
                    continue
                amount = order.get("amount", order.get("total_amount", 0)) or 0
                revenue_by_date[bucket_date(created, interval)] += amount / 100
        except ProviderError as e:
            raise ProviderError(f"Failed to fetch Polar revenue: {e}") from e

        return to_points(revenue_by_date, currency)

    async def _active_subscriptions(self) -> AsyncIterator[Dict[str, Any]]:
        async for subscription in self._paginate("/subscriptions/", {"active": "true"}):
            if subscription.get("status") == "active":
                yield subscription

    async def fetch_current_metrics(self) -> RevenueMetrics:
        mrr = 0.0
        customers: Set[str] = set()
        try:
            async for subscription in self._active_subscriptions():
                amount = (subscription.get("amount") or 0) / 100
                interval = subscription.get("recurring_interval")
                if interval == "month":
                    mrr += amount
                elif interval == "year":
                    mrr += amount / 12
                customer = subscription.get("customer_id") or subscription.get("user_id")
                if customer:
                    customers.add(customer)
        except ProviderError as e:
            raise ProviderError(f"Failed to fetch Polar metrics: {e}") from e

        now = datetime.now(timezone.utc)
        recent = await self.fetch_revenue(now - timedelta(days=30), now)

        return RevenueMetrics(
            mrr=round(mrr, 2),
            total_revenue=sum(p.revenue for p in recent),
            customer_count=len(customers),
        )

    async def fetch_customer_count(self) -> int:
        # No count endpoint; unique subscribers stand in for customers
        customers: Set[str] = set()
        try:
            async for subscription in self._active_subscriptions():
                customer = subscription.get("customer_id") or subscription.get("user_id")
                if customer:
                    customers.add(customer)
        except ProviderError as e:
            raise ProviderError(f"Failed to fetch Polar customer count: {e}") from e
        return len(customers)
