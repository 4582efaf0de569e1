"""
Featured slot management.

At most settings.max_featured_slots startups hold a slot at once (featured
and not yet expired). The cap is checked at assignment time: count, then
assign, inside the caller's session.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..archivist import storage
from ..archivist.models import Startup, utc_now_naive
from ..config.settings import settings

logger = logging.getLogger(__name__)


def click_through_rate(impressions: int, clicks: int) -> float:
    """CTR in percent (0 without impressions)."""
    if impressions <= 0:
        return 0.0
    return clicks / impressions * 100


def qualifies_for_auto_extension(impressions: int, clicks: int) -> bool:
    return (
        click_through_rate(impressions, clicks) >= settings.auto_extend_ctr
        or clicks >= settings.auto_extend_clicks
    )


def start_feature_period(startup: Startup, now: datetime, days: Optional[int] = None) -> None:
    """Open a fresh featuring period with zeroed counters."""
    startup.is_featured = True
    startup.featured_at = now
    startup.featured_until = now + timedelta(days=days or settings.feature_period_days)
    startup.feature_impressions = 0
    startup.feature_clicks = 0
    startup.updated_at = now


@dataclass
class FeatureResult:
    success: bool
    error: Optional[str] = None
    featured_until: Optional[datetime] = None
    performance: Dict[str, Any] = field(default_factory=dict)


async def feature_startup(
    session: AsyncSession,
    startup_id: int,
    duration_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> FeatureResult:
    """Give a published startup a featured slot if one is free."""
    now = now or utc_now_naive()
    startup = await storage.get_startup(session, startup_id)
    if startup is None:
        return FeatureResult(success=False, error="Startup not found")
    if not startup.is_published:
        return FeatureResult(success=False, error="Startup must be published first")
    if startup.is_featured:
        return FeatureResult(success=False, error="Startup is already featured")

    max_slots = settings.max_featured_slots
    if await storage.count_active_featured(session, now) >= max_slots:
        return FeatureResult(
            success=False,
            error=f"Maximum featured slots ({max_slots}) reached. Unfeature a startup first.",
        )

    days = min(duration_days or settings.feature_period_days, settings.feature_period_days)
    start_feature_period(startup, now, days)
    session.add(startup)
    await session.flush()

    logger.info(f"Featured startup {startup_id} until {startup.featured_until}")
    return FeatureResult(success=True, featured_until=startup.featured_until)


async def unfeature_startup(session: AsyncSession, startup_id: int) -> FeatureResult:
    startup = await storage.get_startup(session, startup_id)
    if startup is None:
        return FeatureResult(success=False, error="Startup not found")
    if not startup.is_featured:
        return FeatureResult(success=False, error="Startup is not featured")

    startup.is_featured = False
    startup.featured_until = None
    startup.updated_at = utc_now_naive()
    session.add(startup)
    await session.flush()

    logger.info(f"Unfeatured startup {startup_id}")
    return FeatureResult(success=True)


async def extend_featured(
    session: AsyncSession,
    startup_id: int,
    extension_days: int = 7,
    now: Optional[datetime] = None,
) -> FeatureResult:
    """
    Push a featured startup's expiry out by up to one feature period.

    The extension counts from the later of now and the current expiry.
    """
    now = now or utc_now_naive()
    startup = await storage.get_startup(session, startup_id)
    if startup is None:
        return FeatureResult(success=False, error="Startup not found")
    if not startup.is_featured:
        return FeatureResult(success=False, error="Startup is not featured")

    base = startup.featured_until if startup.featured_until and startup.featured_until > now else now
    days = min(extension_days, settings.feature_period_days)
    startup.featured_until = base + timedelta(days=days)
    startup.updated_at = now
    session.add(startup)
    await session.flush()

    impressions, clicks = startup.feature_impressions, startup.feature_clicks
    return FeatureResult(
        success=True,
        featured_until=startup.featured_until,
        performance={
            "impressions": impressions,
            "clicks": clicks,
            "click_rate": round(click_through_rate(impressions, clicks), 2),
            "qualifies_for_auto_extension": qualifies_for_auto_extension(impressions, clicks),
        },
    )
