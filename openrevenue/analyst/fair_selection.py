"""
Fair selection of startups for the public featured showcase.

Considers:
1. Trust mix: half verified (rounded up), half self-reported
2. Category diversity
3. Revenue-level diversity (low / mid / high tertiles)
4. Recency of the latest snapshot

The final order is a uniform shuffle, so position carries no ranking.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..archivist import storage
from ..archivist.models import (
    Category,
    DataConnection,
    LeaderboardEntry,
    Startup,
    TrustLevel,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 6
OTHER_CATEGORY = "other"


@dataclass
class Candidate:
    """A published startup with revenue, as seen by the selector."""
    startup_id: int
    revenue: float
    activity_date: datetime  # Latest snapshot date
    category: str = OTHER_CATEGORY
    is_verified: bool = False
    payload: Dict[str, Any] = field(default_factory=dict)


def revenue_level(revenue: float, p33: float, p66: float) -> str:
    if revenue < p33:
        return "low"
    if revenue < p66:
        return "mid"
    return "high"


def select_diverse(candidates: Sequence[Candidate], count: int) -> List[Candidate]:
    """
    Pick count candidates favoring unseen categories and revenue levels.

    Walks candidates newest first and accepts one when it brings a new
    category or a new revenue level; leftover slots go to the newest
    remaining candidates.
    """
    if count <= 0:
        return []
    if len(candidates) <= count:
        return list(candidates)

    revenues = sorted(c.revenue for c in candidates)
    p33 = revenues[math.floor(len(revenues) * 0.33)]
    p66 = revenues[math.floor(len(revenues) * 0.66)]

    by_recency = sorted(candidates, key=lambda c: c.activity_date, reverse=True)

    selected: List[Candidate] = []
    chosen_ids = set()
    used_categories = set()
    used_levels = set()

    for candidate in by_recency:
        if len(selected) >= count:
            break
        level = revenue_level(candidate.revenue, p33, p66)
        if candidate.category not in used_categories or level not in used_levels:
            selected.append(candidate)
            chosen_ids.add(candidate.startup_id)
            used_categories.add(candidate.category)
            used_levels.add(level)

    for candidate in by_recency:
        if len(selected) >= count:
            break
        if candidate.startup_id not in chosen_ids:
            selected.append(candidate)
            chosen_ids.add(candidate.startup_id)

    return selected


def select_featured(
    candidates: Sequence[Candidate],
    limit: int = DEFAULT_LIMIT,
    rng: Optional[random.Random] = None,
) -> List[Candidate]:
    """Trust-balanced, diverse, shuffled pick of up to limit candidates."""
    if limit <= 0 or not candidates:
        return []

    verified = [c for c in candidates if c.is_verified]
    self_reported = [c for c in candidates if not c.is_verified]

    verified_count = min(math.ceil(limit / 2), len(verified))
    self_count = min(limit // 2, len(self_reported))
    remaining_count = limit - verified_count - self_count

    selected = select_diverse(verified, verified_count) + select_diverse(self_reported, self_count)

    if remaining_count > 0:
        chosen = {c.startup_id for c in selected}
        leftovers = [c for c in candidates if c.startup_id not in chosen]
        selected += select_diverse(leftovers, remaining_count)

    (rng or random).shuffle(selected)
    return selected


async def load_candidates(session: AsyncSession) -> List[Candidate]:
    """Published startups whose latest snapshot shows revenue above zero."""
    result = await session.execute(
        select(Startup, Category)
        .outerjoin(Category, Startup.category_id == Category.id)
        .where(Startup.is_published == True)  # noqa: E712
        .order_by(Startup.id)
    )
    rows = result.all()

    candidates: List[Candidate] = []
    for startup, category in rows:
        snapshots = await storage.get_latest_snapshots(session, startup.id, limit=1)
        if not snapshots or snapshots[0].revenue <= 0:
            continue
        latest = snapshots[0]

        verified = await session.execute(
            select(func.count(DataConnection.id))
            .where(DataConnection.startup_id == startup.id)
            .where(DataConnection.is_active == True)  # noqa: E712
            .where(DataConnection.trust_level == TrustLevel.PLATFORM_VERIFIED)
        )
        is_verified = verified.scalar_one() > 0
        entry = (await session.execute(
            select(LeaderboardEntry).where(LeaderboardEntry.startup_id == startup.id)
        )).scalar_one_or_none()

        candidates.append(Candidate(
            startup_id=startup.id,
            revenue=latest.revenue,
            activity_date=datetime.combine(latest.snapshot_date, datetime.min.time()),
            category=category.slug if category else OTHER_CATEGORY,
            is_verified=is_verified,
            payload={
                "id": startup.id,
                "name": startup.name,
                "slug": startup.slug,
                "description": startup.description,
                "logo": startup.logo,
                "website": startup.website,
                "category": (
                    {"id": category.id, "name": category.name, "slug": category.slug}
                    if category else None
                ),
                "latest_revenue": {
                    "mrr": latest.mrr,
                    "arr": latest.arr,
                    "revenue": latest.revenue,
                    "currency": latest.currency,
                    "date": latest.snapshot_date.isoformat(),
                },
                "trust_level": (
                    TrustLevel.PLATFORM_VERIFIED if is_verified else TrustLevel.SELF_REPORTED
                ).value,
                "rank": entry.rank if entry and entry.rank else None,
                "growth_rate": entry.growth_rate if entry else None,
            },
        ))
    return candidates


async def get_featured_showcase(
    session: AsyncSession,
    limit: int = DEFAULT_LIMIT,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    candidates = await load_candidates(session)
    return [c.payload for c in select_featured(candidates, limit, rng=rng)]
