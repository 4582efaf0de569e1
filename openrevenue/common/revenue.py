"""
Revenue calculation utilities.

Functions take any objects exposing date / revenue / mrr / customer_count
attributes (RevenueDataPoint, RevenueSnapshot rows).
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence


def calculate_mrr(points: Sequence) -> float:
    """MRR of the most recent point (0 when there is none)."""
    if not points:
        return 0.0
    latest = max(points, key=lambda p: p.date)
    return latest.mrr or 0.0


def calculate_arr(mrr: float) -> float:
    return mrr * 12


def calculate_growth_rate(current: float, previous: float) -> float:
    """Percentage change from previous to current.

    Starting from zero counts as 100% growth when anything was earned.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def mrr_growth_rate(latest_mrr: Optional[float], previous_mrr: Optional[float]) -> Optional[float]:
    """Growth between two snapshots, or None without a usable prior MRR."""
    if not previous_mrr or latest_mrr is None:
        return None
    return calculate_growth_rate(latest_mrr, previous_mrr)


def calculate_churn_rate(customers_lost: int, customers_at_start: int) -> float:
    if customers_at_start == 0:
        return 0.0
    return customers_lost / customers_at_start * 100


def calculate_total_revenue(points: Sequence) -> float:
    return sum(p.revenue for p in points)


def calculate_arpc(total_revenue: float, customer_count: int) -> float:
    """Average revenue per customer."""
    if customer_count == 0:
        return 0.0
    return total_revenue / customer_count


def group_revenue_by_month(points: Sequence) -> Dict[str, List]:
    grouped: Dict[str, List] = defaultdict(list)
    for point in points:
        grouped[point.date.strftime("%Y-%m")].append(point)
    return dict(grouped)


def aggregate_monthly_metrics(points: Sequence) -> List[dict]:
    """
    Roll points up into one row per calendar month, oldest first.

    Revenue is summed; MRR and customer count are averaged across the
    month's points (missing values count as zero).
    """
    results = []
    for month, month_points in group_revenue_by_month(points).items():
        count = len(month_points)
        results.append({
            "month": month,
            "total_revenue": sum(p.revenue for p in month_points),
            "mrr": sum(p.mrr or 0 for p in month_points) / count,
            "customers": round(sum(p.customer_count or 0 for p in month_points) / count),
        })
    return sorted(results, key=lambda r: r["month"])
