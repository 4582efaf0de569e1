"""
Daily featured-slot rotation.

Steps:
1. Expired featured startups: auto-extend strong performers (CTR >= 5% or
   100+ clicks) for another period with fresh counters, unfeature the rest
2. Trim any overflow above the slot cap: soonest expiry first, then
   open-ended features oldest first
3. Fill open slots from the score-ranked suggestions
4. Re-persist feature scores for every published startup

Running it twice in a row changes nothing the second time: nothing has
expired, the cap holds and no slot is open unless suggestions ran out.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..analyst.feature_score import get_feature_suggestions, update_all_feature_scores
from ..analyst.featuring import (
    click_through_rate,
    qualifies_for_auto_extension,
    start_feature_period,
)
from ..archivist import storage
from ..archivist.database import get_session
from ..archivist.models import Startup, utc_now_naive
from ..config.settings import settings

logger = logging.getLogger(__name__)


async def _process_expired(session_factory, now: datetime, stats: Dict[str, int]) -> None:
    async with get_session(session_factory) as session:
        result = await session.execute(
            select(Startup)
            .where(Startup.is_featured == True)  # noqa: E712
            .where(Startup.featured_until < now)
            .order_by(Startup.id)
        )
        expired = list(result.scalars().all())
        logger.info(f"Found {len(expired)} expired featured startups")

        for startup in expired:
            ctr = click_through_rate(startup.feature_impressions, startup.feature_clicks)
            if qualifies_for_auto_extension(startup.feature_impressions, startup.feature_clicks):
                # Same slot, new window: featured_at is kept
                startup.featured_until = now + timedelta(days=settings.feature_period_days)
                startup.feature_impressions = 0
                startup.feature_clicks = 0
                stats["auto_extended"] += 1
                logger.info(f"Auto-extended startup {startup.id} (CTR: {ctr:.2f}%)")
            else:
                startup.is_featured = False
                startup.featured_until = None
                stats["expired"] += 1
                logger.info(f"Removed startup {startup.id} from featured (CTR: {ctr:.2f}%)")
            startup.updated_at = now


async def _trim_overflow(session_factory, now: datetime, stats: Dict[str, int]) -> None:
    max_slots = settings.max_featured_slots
    async with get_session(session_factory) as session:
        result = await session.execute(
            select(Startup)
            .where(Startup.is_featured == True)  # noqa: E712
            .where(Startup.featured_until >= now)
            .order_by(Startup.featured_until, Startup.id)
        )
        dated = list(result.scalars().all())
        active = await storage.count_active_featured(session, now)
        overflow = active - max_slots
        if overflow <= 0:
            return

        # Dated leases go first; open-ended ones only when those run out, oldest first
        open_ended = []
        if overflow > len(dated):
            result = await session.execute(
                select(Startup)
                .where(Startup.is_featured == True)  # noqa: E712
                .where(Startup.featured_until.is_(None))
                .order_by(Startup.featured_at, Startup.id)
            )
            open_ended = list(result.scalars().all())

        for startup in (dated + open_ended)[:overflow]:
            startup.is_featured = False
            startup.featured_until = None
            startup.updated_at = now
            stats["trimmed"] += 1
            logger.warning(f"Unfeatured startup {startup.id}: featured slots over cap ({active}/{max_slots})")


async def _fill_open_slots(session_factory, now: datetime, stats: Dict[str, int]) -> int:
    max_slots = settings.max_featured_slots
    async with get_session(session_factory) as session:
        open_slots = max(0, max_slots - await storage.count_active_featured(session, now))

    logger.info(f"Available slots: {open_slots}/{max_slots}")
    if open_slots == 0:
        return 0

    suggestions = await get_feature_suggestions(
        limit=open_slots * 2, session_factory=session_factory, now=now
    )

    filled = 0
    for suggestion in suggestions:
        if filled >= open_slots:
            break
        try:
            async with get_session(session_factory) as session:
                # Recount right before assigning; concurrent writers can still race
                if await storage.count_active_featured(session, now) >= max_slots:
                    logger.info("Featured slots filled concurrently, stopping")
                    break
                startup = await storage.get_startup(session, suggestion.startup_id)
                if startup is None or startup.is_featured:
                    continue
                start_feature_period(startup, now)
            filled += 1
            stats["newly_featured"] += 1
            logger.info(f"Auto-featured {suggestion.name} (score: {suggestion.score})")
        except Exception as e:
            logger.error(f"Error featuring startup {suggestion.startup_id}: {e}")
            stats["errors"] += 1
    return filled


async def rotate_featured_startups(
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Run one rotation pass.

    Returns:
        {"success": bool, "stats": {...}} plus "error" when a step failed
        outside the per-startup isolation.
    """
    now = now or utc_now_naive()
    stats = {
        "expired": 0,
        "auto_extended": 0,
        "trimmed": 0,
        "newly_featured": 0,
        "scores_updated": 0,
        "errors": 0,
    }

    try:
        await _process_expired(session_factory, now, stats)
        await _trim_overflow(session_factory, now, stats)
        await _fill_open_slots(session_factory, now, stats)

        scores = await update_all_feature_scores(session_factory=session_factory, now=now)
        stats["scores_updated"] = scores["updated"]
        stats["errors"] += scores["errors"]
    except Exception as e:
        logger.error(f"Featured rotation failed: {e}", exc_info=True)
        return {"success": False, "stats": stats, "error": str(e)}

    logger.info(f"Featured rotation complete: {stats}")
    return {"success": True, "stats": stats}
