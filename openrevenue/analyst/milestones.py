"""
Automatic milestone detection.

Records a private milestone the first time a startup's latest snapshot
crosses an MRR or customer-count threshold. Owners decide what to publish.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..archivist import storage
from ..archivist.database import get_session
from ..archivist.models import Milestone, utc_now_naive

logger = logging.getLogger(__name__)

MRR_MILESTONES = [1_000, 5_000, 10_000, 25_000, 50_000, 100_000]
CUSTOMER_MILESTONES = [10, 100, 1_000]


def _format_amount(value: float) -> str:
    if value >= 1_000:
        return f"${value / 1_000:g}k"
    return f"${value:g}"


async def check_startup_milestones(session: AsyncSession, startup_id: int) -> List[Milestone]:
    """Create milestones newly crossed by the latest snapshot."""
    snapshots = await storage.get_latest_snapshots(session, startup_id, limit=1)
    if not snapshots:
        return []
    latest = snapshots[0]

    result = await session.execute(
        select(Milestone.type, Milestone.target_value).where(Milestone.startup_id == startup_id)
    )
    existing = {(kind, value) for kind, value in result.all()}

    reached = []
    for threshold in MRR_MILESTONES:
        if (latest.mrr or 0) >= threshold:
            reached.append(("mrr", threshold, f"{_format_amount(threshold)} MRR"))
    for threshold in CUSTOMER_MILESTONES:
        if (latest.customer_count or 0) >= threshold:
            reached.append(("customers", threshold, f"{threshold:,} customers"))

    now = utc_now_naive()
    created = []
    for kind, threshold, title in reached:
        if (kind, float(threshold)) in existing:
            continue
        milestone = Milestone(
            startup_id=startup_id,
            type=kind,
            title=title,
            target_value=float(threshold),
            achieved_at=now,
            is_public=False,
        )
        session.add(milestone)
        created.append(milestone)

    if created:
        await session.flush()
        logger.info(f"Startup {startup_id} reached {len(created)} new milestone(s)")
    return created


async def check_all_milestones(session_factory: Optional[async_sessionmaker] = None) -> dict:
    """Run milestone detection for every published startup."""
    async with get_session(session_factory) as session:
        startup_ids = await storage.get_published_startup_ids(session)

    created = 0
    errors = 0
    for startup_id in startup_ids:
        try:
            async with get_session(session_factory) as session:
                new_milestones = await check_startup_milestones(session, startup_id)
            created += len(new_milestones)
        except Exception as e:
            logger.error(f"Milestone check failed for startup {startup_id}: {e}")
            errors += 1

    return {"checked": len(startup_ids), "created": created, "errors": errors}
