"""
Tests for progressive publishing tiers.
"""

from datetime import date

import pytest

from openrevenue.analyst.tier_validation import (
    GOLD_RULES,
    PUBLISH_BLOCKED_REASON,
    StartupNotFoundError,
    TierProfile,
    can_publish_startup,
    evaluate_tier,
    get_tier_badge,
    publish_startup,
    validate_startup_tier,
)
from openrevenue.archivist.models import StartupTier
from tests.test_helpers import (
    LONG_DESCRIPTION,
    add_privacy_settings,
    add_snapshot,
    make_category,
    make_direct_connection,
    make_standalone_connection,
    make_startup,
)


def _bronze_profile(**overrides) -> TierProfile:
    fields = dict(
        name="Acme",
        description=LONG_DESCRIPTION,
        active_connections=1,
        revenue_months=1,
    )
    fields.update(overrides)
    return TierProfile(**fields)


def _silver_profile(**overrides) -> TierProfile:
    fields = dict(category_id=1, revenue_months=3, has_privacy_settings=True)
    fields.update(overrides)
    return _bronze_profile(**fields)


def _gold_profile(**overrides) -> TierProfile:
    fields = dict(has_verified_connection=True, revenue_months=6)
    fields.update(overrides)
    return _silver_profile(**fields)


class TestEvaluateTier:
    """Tests for evaluate_tier on in-memory profiles."""

    def test_empty_profile_is_below_floor(self):
        result = evaluate_tier(TierProfile())

        assert result.tier == StartupTier.BRONZE
        assert result.can_publish is False
        assert result.can_upgrade is False
        assert result.next_tier is None
        assert result.score == 0

    def test_short_description_blocks_publish(self):
        result = evaluate_tier(_bronze_profile(description="Too short"))
        assert result.can_publish is False

    def test_bronze(self):
        result = evaluate_tier(_bronze_profile())

        assert result.tier == StartupTier.BRONZE
        assert result.can_publish is True
        assert result.next_tier == StartupTier.SILVER
        assert [r.key for r in result.requirements] == [
            "hasName", "hasDescription", "hasConnection", "hasRevenueData",
        ]

    def test_silver_without_optional_logo(self):
        result = evaluate_tier(_silver_profile(logo=None))

        assert result.tier == StartupTier.SILVER
        assert result.next_tier == StartupTier.GOLD
        assert len(result.requirements) == 8

    def test_gold_without_optional_items(self):
        result = evaluate_tier(_gold_profile())

        assert result.tier == StartupTier.GOLD
        assert result.can_upgrade is False
        assert result.next_tier is None
        assert len(result.requirements) == len(GOLD_RULES) == 13

    def test_gold_requirements_never_met_without_bronze(self):
        """Meeting Gold-only items cannot lift a startup past a missing Bronze item."""
        result = evaluate_tier(_gold_profile(active_connections=0))

        assert result.tier == StartupTier.BRONZE
        assert result.can_publish is False

    def test_silver_needs_three_months(self):
        result = evaluate_tier(_silver_profile(revenue_months=2))
        assert result.tier == StartupTier.BRONZE

    def test_score_counts_all_gold_items(self):
        full = _gold_profile(logo="logo.png", public_milestones=1, published_stories=1, website="https://x.io")
        assert evaluate_tier(full).score == 100
        # 9 of 13 met
        assert evaluate_tier(_gold_profile()).score == round(9 / 13 * 100)

    def test_tier_report_is_consistent(self):
        """Whatever the profile, a reported tier never hides an unmet required item."""
        profiles = [
            TierProfile(),
            _bronze_profile(),
            _silver_profile(has_privacy_settings=False),
            _gold_profile(revenue_months=5),
            _gold_profile(name=None),
        ]
        for profile in profiles:
            result = evaluate_tier(profile)
            if result.can_publish:
                assert all(r.met for r in result.requirements if r.required)


class TestStoredStartups:
    """Tests against the database."""

    @pytest.mark.asyncio
    async def test_validate_missing_startup(self, session):
        with pytest.raises(StartupNotFoundError):
            await validate_startup_tier(session, 12345)

    @pytest.mark.asyncio
    async def test_revenue_months_count_distinct_dates(self, session):
        startup = await make_startup(session)
        first = await make_direct_connection(session, startup.id)
        second = await make_standalone_connection(session, startup.id)
        # Same month from two sources counts once
        await add_snapshot(session, first, date(2026, 1, 1))
        await add_snapshot(session, second, date(2026, 1, 1))
        await add_snapshot(session, first, date(2026, 2, 1))

        category = await make_category(session)
        startup.category_id = category.id
        await add_privacy_settings(session, startup.id)

        result = await validate_startup_tier(session, startup.id)

        # 2 distinct months: Bronze, not Silver
        assert result.tier == StartupTier.BRONZE
        assert result.can_publish is True

    @pytest.mark.asyncio
    async def test_gold_startup(self, session):
        category = await make_category(session)
        startup = await make_startup(session, category_id=category.id)
        connection = await make_direct_connection(session, startup.id)
        for month in range(1, 7):
            await add_snapshot(session, connection, date(2026, month, 1))
        await add_privacy_settings(session, startup.id)

        result = await validate_startup_tier(session, startup.id)

        assert result.tier == StartupTier.GOLD

    @pytest.mark.asyncio
    async def test_publish_refused_below_floor(self, session):
        startup = await make_startup(session)

        check = await can_publish_startup(session, startup.id)

        assert check.can_publish is False
        assert check.reason == PUBLISH_BLOCKED_REASON
        published = await publish_startup(session, startup.id)
        assert published.can_publish is False
        assert startup.is_published is False

    @pytest.mark.asyncio
    async def test_publish_persists_tier(self, session):
        startup = await make_startup(session)
        connection = await make_direct_connection(session, startup.id)
        await add_snapshot(session, connection, date(2026, 1, 1))

        check = await publish_startup(session, startup.id)

        assert check.can_publish is True
        assert startup.is_published is True
        assert startup.published_at is not None
        assert startup.tier == StartupTier.BRONZE


class TestTierBadge:
    """Tests for get_tier_badge."""

    def test_known_tiers(self):
        assert get_tier_badge(StartupTier.GOLD)["color"] == "yellow"
        assert get_tier_badge(StartupTier.SILVER)["label"] == "Silver"

    def test_missing_tier_defaults_to_bronze(self):
        assert get_tier_badge(None)["label"] == "Bronze"
