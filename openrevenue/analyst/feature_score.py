"""
Rule-based feature-worthiness scoring on a 0-100 scale.

Components (max points):
- trust_level (25): platform-verified connection 25, otherwise 10
- revenue (20): latest MRR >= 50k / 20k / 10k / 5k -> 20 / 15 / 10 / 5
- growth (20): MoM MRR growth >= 30 / 20 / 10 / 5 % -> 20 / 15 / 10 / 5
- engagement (15): 2+ published stories, 3+ public milestones, activity in 7 days
- completeness (10): logo 3, description over 100 chars 3, website 2, category 2
- recency (10): created < 30 / 60 / 90 days ago -> 10 / 5 / 2

Only published startups score; eligibility for featuring starts at 50.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..archivist import storage
from ..archivist.database import get_session
from ..archivist.models import (
    DataConnection,
    Milestone,
    Startup,
    Story,
    TrustLevel,
    utc_now_naive,
)
from ..common.revenue import calculate_growth_rate
from ..config.settings import settings
from .tier_validation import StartupNotFoundError

logger = logging.getLogger(__name__)

UNPUBLISHED_REASON = "Startup must be published"

# (threshold, points), checked top-down
REVENUE_TIERS = [(50_000, 20), (20_000, 15), (10_000, 10), (5_000, 5)]
GROWTH_TIERS = [(30, 20), (20, 15), (10, 10), (5, 5)]
RECENCY_TIERS = [(30, 10), (60, 5), (90, 2)]  # days since creation, exclusive

ACTIVITY_WINDOW = timedelta(days=7)
LONG_DESCRIPTION = 100


@dataclass
class ScoreComponents:
    trust_level: int = 0
    revenue: int = 0
    growth: int = 0
    engagement: int = 0
    completeness: int = 0
    recency: int = 0

    @property
    def total(self) -> int:
        return (
            self.trust_level + self.revenue + self.growth
            + self.engagement + self.completeness + self.recency
        )


@dataclass
class FeatureScoreBreakdown:
    total: int
    components: ScoreComponents
    eligible: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FeatureProfile:
    """Inputs to the score, loaded once per startup."""
    is_published: bool
    created_at: datetime
    updated_at: datetime
    has_verified_connection: bool = False
    latest_mrr: Optional[float] = None
    previous_mrr: Optional[float] = None
    has_previous_snapshot: bool = False
    latest_snapshot_date: Optional[date] = None
    published_stories: int = 0
    public_milestones: int = 0
    logo: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    category_id: Optional[int] = None


def _tiered(value: float, tiers: List[tuple]) -> int:
    for threshold, points in tiers:
        if value >= threshold:
            return points
    return 0


def score_profile(profile: FeatureProfile, now: Optional[datetime] = None) -> FeatureScoreBreakdown:
    """Pure scoring of a loaded profile."""
    if not profile.is_published:
        return FeatureScoreBreakdown(
            total=0, components=ScoreComponents(), eligible=False, reason=UNPUBLISHED_REASON
        )

    now = now or utc_now_naive()
    components = ScoreComponents()

    components.trust_level = 25 if profile.has_verified_connection else 10
    components.revenue = _tiered(profile.latest_mrr or 0, REVENUE_TIERS)

    # Growth needs two snapshots and a usable prior MRR
    if profile.has_previous_snapshot and profile.previous_mrr:
        growth = calculate_growth_rate(profile.latest_mrr or 0, profile.previous_mrr)
        components.growth = _tiered(growth, GROWTH_TIERS)

    if profile.published_stories >= 2:
        components.engagement += 5
    if profile.public_milestones >= 3:
        components.engagement += 5
    cutoff = now - ACTIVITY_WINDOW
    recently_active = profile.updated_at > cutoff or (
        profile.latest_snapshot_date is not None
        and datetime.combine(profile.latest_snapshot_date, datetime.min.time()) > cutoff
    )
    if recently_active:
        components.engagement += 5

    if profile.logo:
        components.completeness += 3
    if profile.description and len(profile.description) > LONG_DESCRIPTION:
        components.completeness += 3
    if profile.website:
        components.completeness += 2
    if profile.category_id is not None:
        components.completeness += 2

    age_days = (now - profile.created_at).days
    for max_days, points in RECENCY_TIERS:
        if age_days < max_days:
            components.recency = points
            break

    total = components.total
    eligible = total >= settings.feature_min_score
    return FeatureScoreBreakdown(
        total=total,
        components=components,
        eligible=eligible,
        reason=None if eligible else (
            f"Score must be at least {settings.feature_min_score} points to be eligible for featuring"
        ),
    )


async def load_feature_profile(session: AsyncSession, startup_id: int) -> FeatureProfile:
    startup = await session.get(Startup, startup_id)
    if startup is None:
        raise StartupNotFoundError(f"Startup {startup_id} not found")

    profile = FeatureProfile(
        is_published=startup.is_published,
        created_at=startup.created_at,
        updated_at=startup.updated_at,
        logo=startup.logo,
        description=startup.description,
        website=startup.website,
        category_id=startup.category_id,
    )
    if not startup.is_published:
        return profile

    verified = await session.execute(
        select(func.count(DataConnection.id))
        .where(DataConnection.startup_id == startup_id)
        .where(DataConnection.is_active == True)  # noqa: E712
        .where(DataConnection.trust_level == TrustLevel.PLATFORM_VERIFIED)
    )
    profile.has_verified_connection = verified.scalar_one() > 0

    snapshots = await storage.get_latest_snapshots(session, startup_id, limit=2)
    if snapshots:
        profile.latest_mrr = snapshots[0].mrr
        profile.latest_snapshot_date = snapshots[0].snapshot_date
    if len(snapshots) > 1:
        profile.has_previous_snapshot = True
        profile.previous_mrr = snapshots[1].mrr

    stories = await session.execute(
        select(func.count(Story.id))
        .where(Story.startup_id == startup_id)
        .where(Story.is_published == True)  # noqa: E712
    )
    profile.published_stories = stories.scalar_one()

    milestones = await session.execute(
        select(func.count(Milestone.id))
        .where(Milestone.startup_id == startup_id)
        .where(Milestone.is_public == True)  # noqa: E712
    )
    profile.public_milestones = milestones.scalar_one()
    return profile


async def calculate_feature_score(
    session: AsyncSession,
    startup_id: int,
    now: Optional[datetime] = None,
) -> FeatureScoreBreakdown:
    """Score one stored startup. Raises StartupNotFoundError."""
    return score_profile(await load_feature_profile(session, startup_id), now=now)


@dataclass
class FeatureSuggestion:
    startup_id: int
    name: str
    slug: str
    score: int
    breakdown: FeatureScoreBreakdown = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def get_feature_suggestions(
    limit: int = 10,
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> List[FeatureSuggestion]:
    """Eligible published, non-featured startups, best score first."""
    async with get_session(session_factory) as session:
        result = await session.execute(
            select(Startup.id, Startup.name, Startup.slug)
            .where(Startup.is_published == True)  # noqa: E712
            .where(Startup.is_featured == False)  # noqa: E712
            .order_by(Startup.id)
        )
        candidates = result.all()

    suggestions: List[FeatureSuggestion] = []
    for startup_id, name, slug in candidates:
        try:
            async with get_session(session_factory) as session:
                breakdown = await calculate_feature_score(session, startup_id, now=now)
        except Exception as e:
            logger.error(f"Error calculating score for startup {startup_id}: {e}")
            continue
        if breakdown.eligible:
            suggestions.append(FeatureSuggestion(startup_id, name, slug, breakdown.total, breakdown))

    suggestions.sort(key=lambda s: s.score, reverse=True)
    return suggestions[:limit]


async def update_all_feature_scores(
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Re-persist feature_score for every published startup."""
    async with get_session(session_factory) as session:
        startup_ids = await storage.get_published_startup_ids(session)

    updated = 0
    errors = 0
    for startup_id in startup_ids:
        try:
            async with get_session(session_factory) as session:
                breakdown = await calculate_feature_score(session, startup_id, now=now)
                startup = await session.get(Startup, startup_id)
                startup.feature_score = breakdown.total
            updated += 1
        except Exception as e:
            logger.error(f"Error updating score for startup {startup_id}: {e}")
            errors += 1

    logger.info(f"Feature scores updated: {updated} ok, {errors} errors")
    return {"updated": updated, "errors": errors}
