"""
Progressive publishing tiers.

BRONZE (publish floor)
- Name, description (50+ chars), an active connection, revenue data

SILVER (adds)
- Logo (optional), category, 3+ months of data, privacy settings

GOLD (adds)
- Platform-verified connection, 6+ months of data
- Public milestone, published story, website (all optional)

A tier is reached when every *required* item of its cumulative list is
met. Optional items only feed the 0-100 completeness score, which counts
every Gold item.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..archivist.models import (
    DataConnection,
    Milestone,
    PrivacySettings,
    RevenueSnapshot,
    Startup,
    StartupTier,
    Story,
    TrustLevel,
    utc_now_naive,
)

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 50
PUBLISH_BLOCKED_REASON = "Please complete the minimum requirements (Bronze tier) before publishing"


class StartupNotFoundError(LookupError):
    """No startup exists with the requested id."""


@dataclass
class TierProfile:
    """Everything the tier checklist looks at, loaded once per validation."""
    name: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None
    category_id: Optional[int] = None
    active_connections: int = 0
    has_verified_connection: bool = False
    revenue_months: int = 0
    has_privacy_settings: bool = False
    public_milestones: int = 0
    published_stories: int = 0


@dataclass
class TierRequirement:
    key: str
    label: str
    description: str
    met: bool
    required: bool


@dataclass
class TierValidation:
    tier: StartupTier
    can_publish: bool
    can_upgrade: bool
    next_tier: Optional[StartupTier]
    requirements: List[TierRequirement] = field(default_factory=list)
    score: int = 0


@dataclass
class PublishCheck:
    can_publish: bool
    validation: TierValidation
    reason: Optional[str] = None


class _Rule(NamedTuple):
    key: str
    label: str
    description: str
    required: bool
    check: Callable[[TierProfile], bool]


BRONZE_RULES = [
    _Rule("hasName", "Startup Name", "Your startup has a name", True,
          lambda p: bool(p.name)),
    _Rule("hasDescription", "Description", "Add a description for your startup", True,
          lambda p: bool(p.description) and len(p.description) >= MIN_DESCRIPTION_LENGTH),
    _Rule("hasConnection", "Data Connection", "Connect at least one payment processor", True,
          lambda p: p.active_connections > 0),
    _Rule("hasRevenueData", "Revenue Data", "Have at least 1 month of revenue data", True,
          lambda p: p.revenue_months >= 1),
]

SILVER_RULES = BRONZE_RULES + [
    _Rule("hasLogo", "Logo", "Upload your startup logo", False,
          lambda p: bool(p.logo)),
    _Rule("hasCategory", "Category", "Select a category for your startup", True,
          lambda p: p.category_id is not None),
    _Rule("has3MonthsData", "3+ Months Revenue", "Have at least 3 months of revenue data", True,
          lambda p: p.revenue_months >= 3),
    _Rule("hasPrivacySettings", "Privacy Settings", "Configure your privacy settings", True,
          lambda p: p.has_privacy_settings),
]

GOLD_RULES = SILVER_RULES + [
    _Rule("hasVerifiedConnection", "Verified Connection",
          "Have at least one platform-verified connection", True,
          lambda p: p.has_verified_connection),
    _Rule("has6MonthsData", "6+ Months Revenue", "Have at least 6 months of revenue data", True,
          lambda p: p.revenue_months >= 6),
    _Rule("hasMilestone", "Published Milestone", "Share at least one milestone", False,
          lambda p: p.public_milestones > 0),
    _Rule("hasStory", "Published Story", "Write and publish at least one story", False,
          lambda p: p.published_stories > 0),
    _Rule("hasWebsite", "Website URL", "Add your website URL", False,
          lambda p: bool(p.website)),
]


def _evaluate(rules: List[_Rule], profile: TierProfile) -> List[TierRequirement]:
    return [
        TierRequirement(rule.key, rule.label, rule.description, rule.check(profile), rule.required)
        for rule in rules
    ]


def _required_met(requirements: List[TierRequirement]) -> bool:
    return all(r.met for r in requirements if r.required)


def evaluate_tier(profile: TierProfile) -> TierValidation:
    """Pure tier evaluation of a loaded profile."""
    bronze = _evaluate(BRONZE_RULES, profile)
    silver = _evaluate(SILVER_RULES, profile)
    gold = _evaluate(GOLD_RULES, profile)

    bronze_met = _required_met(bronze)
    silver_met = bronze_met and _required_met(silver)
    gold_met = silver_met and _required_met(gold)

    if gold_met:
        tier, requirements, next_tier = StartupTier.GOLD, gold, None
    elif silver_met:
        tier, requirements, next_tier = StartupTier.SILVER, silver, StartupTier.GOLD
    elif bronze_met:
        tier, requirements, next_tier = StartupTier.BRONZE, bronze, StartupTier.SILVER
    else:
        # Below the floor: reported as Bronze but nothing is reachable yet
        tier, requirements, next_tier = StartupTier.BRONZE, bronze, None

    score = round(sum(1 for r in gold if r.met) / len(gold) * 100)

    return TierValidation(
        tier=tier,
        can_publish=bronze_met,
        can_upgrade=next_tier is not None,
        next_tier=next_tier,
        requirements=requirements,
        score=score,
    )


async def _count(session: AsyncSession, query) -> int:
    return (await session.execute(query)).scalar_one()


async def load_tier_profile(session: AsyncSession, startup_id: int) -> TierProfile:
    startup = await session.get(Startup, startup_id)
    if startup is None:
        raise StartupNotFoundError(f"Startup {startup_id} not found")

    active = (
        select(func.count(DataConnection.id))
        .where(DataConnection.startup_id == startup_id)
        .where(DataConnection.is_active == True)  # noqa: E712
    )
    verified = active.where(DataConnection.trust_level == TrustLevel.PLATFORM_VERIFIED)
    # Distinct periods, so two sources for one month count once
    months = select(func.count(func.distinct(RevenueSnapshot.snapshot_date))).where(
        RevenueSnapshot.startup_id == startup_id
    )
    privacy = select(func.count(PrivacySettings.id)).where(PrivacySettings.startup_id == startup_id)
    milestones = (
        select(func.count(Milestone.id))
        .where(Milestone.startup_id == startup_id)
        .where(Milestone.is_public == True)  # noqa: E712
    )
    stories = (
        select(func.count(Story.id))
        .where(Story.startup_id == startup_id)
        .where(Story.is_published == True)  # noqa: E712
    )

    return TierProfile(
        name=startup.name,
        description=startup.description,
        logo=startup.logo,
        website=startup.website,
        category_id=startup.category_id,
        active_connections=await _count(session, active),
        has_verified_connection=await _count(session, verified) > 0,
        revenue_months=await _count(session, months),
        has_privacy_settings=await _count(session, privacy) > 0,
        public_milestones=await _count(session, milestones),
        published_stories=await _count(session, stories),
    )


async def validate_startup_tier(session: AsyncSession, startup_id: int) -> TierValidation:
    """Evaluate a stored startup. Raises StartupNotFoundError."""
    return evaluate_tier(await load_tier_profile(session, startup_id))


async def can_publish_startup(session: AsyncSession, startup_id: int) -> PublishCheck:
    validation = await validate_startup_tier(session, startup_id)
    if not validation.can_publish:
        return PublishCheck(can_publish=False, validation=validation, reason=PUBLISH_BLOCKED_REASON)
    return PublishCheck(can_publish=True, validation=validation)


async def publish_startup(session: AsyncSession, startup_id: int) -> PublishCheck:
    """Publish a startup at its achieved tier when it clears the Bronze floor."""
    check = await can_publish_startup(session, startup_id)
    if not check.can_publish:
        logger.info(f"Publish refused for startup {startup_id}: Bronze requirements not met")
        return check

    startup = await session.get(Startup, startup_id)
    now = utc_now_naive()
    if not startup.is_published:
        startup.published_at = now
    startup.is_published = True
    startup.tier = check.validation.tier
    startup.updated_at = now
    session.add(startup)
    await session.flush()

    logger.info(f"Published startup {startup_id} at tier {check.validation.tier.value}")
    return check


TIER_BADGES = {
    StartupTier.GOLD: {
        "label": "Gold",
        "description": "Premium profile with all features unlocked",
        "color": "yellow",
    },
    StartupTier.SILVER: {
        "label": "Silver",
        "description": "Enhanced profile with better visibility",
        "color": "gray",
    },
    StartupTier.BRONZE: {
        "label": "Bronze",
        "description": "Basic profile - complete more requirements to upgrade",
        "color": "orange",
    },
}


def get_tier_badge(tier: Optional[StartupTier]) -> dict:
    return dict(TIER_BADGES.get(tier, TIER_BADGES[StartupTier.BRONZE]))
