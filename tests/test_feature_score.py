"""
Tests for feature-worthiness scoring and suggestions.
"""

from datetime import date, datetime, timedelta

import pytest

from openrevenue.analyst import feature_score
from openrevenue.analyst.feature_score import (
    UNPUBLISHED_REASON,
    FeatureProfile,
    calculate_feature_score,
    get_feature_suggestions,
    score_profile,
    update_all_feature_scores,
)
from openrevenue.archivist.database import get_session
from openrevenue.archivist.models import Startup
from tests.test_helpers import (
    add_public_milestones,
    add_published_stories,
    add_snapshot,
    make_category,
    make_direct_connection,
    make_standalone_connection,
    make_startup,
)

NOW = datetime(2026, 6, 15, 12, 0)

COMPONENT_BOUNDS = {
    "trust_level": {10, 25},
    "revenue": {0, 5, 10, 15, 20},
    "growth": {0, 5, 10, 15, 20},
    "engagement": {0, 5, 10, 15},
    "completeness": set(range(0, 11)),
    "recency": {0, 2, 5, 10},
}


def _profile(**overrides) -> FeatureProfile:
    fields = dict(
        is_published=True,
        created_at=NOW - timedelta(days=200),
        updated_at=NOW - timedelta(days=30),
    )
    fields.update(overrides)
    return FeatureProfile(**fields)


class TestScoreProfile:
    """Tests for the pure scoring function."""

    def test_unpublished_scores_zero(self):
        result = score_profile(_profile(is_published=False, has_verified_connection=True, latest_mrr=99_999))

        assert result.total == 0
        assert result.eligible is False
        assert result.reason == UNPUBLISHED_REASON

    def test_minimal_published_profile(self):
        result = score_profile(_profile(), now=NOW)

        assert result.components.trust_level == 10
        assert result.total == 10
        assert result.eligible is False
        assert "at least 50 points" in result.reason

    @pytest.mark.parametrize("mrr,points", [
        (4_999, 0), (5_000, 5), (10_000, 10), (20_000, 15), (50_000, 20), (500_000, 20),
    ])
    def test_revenue_tiers(self, mrr, points):
        assert score_profile(_profile(latest_mrr=mrr), now=NOW).components.revenue == points

    @pytest.mark.parametrize("previous,latest,points", [
        (1000, 1040, 0), (1000, 1050, 5), (1000, 1100, 10), (1000, 1200, 15), (1000, 1300, 20),
        (1000, 500, 0),
    ])
    def test_growth_tiers(self, previous, latest, points):
        profile = _profile(latest_mrr=latest, previous_mrr=previous, has_previous_snapshot=True)
        assert score_profile(profile, now=NOW).components.growth == points

    def test_growth_needs_prior_mrr(self):
        profile = _profile(latest_mrr=1000, previous_mrr=0, has_previous_snapshot=True)
        assert score_profile(profile, now=NOW).components.growth == 0

    def test_engagement(self):
        profile = _profile(
            published_stories=2,
            public_milestones=3,
            latest_snapshot_date=(NOW - timedelta(days=2)).date(),
        )
        assert score_profile(profile, now=NOW).components.engagement == 15

    def test_completeness(self):
        profile = _profile(logo="l.png", description="x" * 101, website="https://a.io", category_id=1)
        assert score_profile(profile, now=NOW).components.completeness == 10

    def test_description_must_exceed_100_chars(self):
        assert score_profile(_profile(description="x" * 100), now=NOW).components.completeness == 0

    @pytest.mark.parametrize("age_days,points", [(0, 10), (29, 10), (30, 5), (59, 5), (60, 2), (89, 2), (90, 0)])
    def test_recency(self, age_days, points):
        profile = _profile(created_at=NOW - timedelta(days=age_days), updated_at=NOW - timedelta(days=30))
        assert score_profile(profile, now=NOW).components.recency == points

    def test_maximum_score_is_100(self):
        profile = _profile(
            created_at=NOW - timedelta(days=1),
            updated_at=NOW,
            has_verified_connection=True,
            latest_mrr=80_000,
            previous_mrr=50_000,
            has_previous_snapshot=True,
            published_stories=5,
            public_milestones=5,
            logo="l.png",
            description="x" * 200,
            website="https://a.io",
            category_id=1,
        )
        result = score_profile(profile, now=NOW)

        assert result.total == 100
        assert result.eligible is True
        assert result.reason is None

    def test_components_stay_in_bounds(self):
        profiles = [
            _profile(),
            _profile(has_verified_connection=True, latest_mrr=12_345, previous_mrr=1, has_previous_snapshot=True),
            _profile(latest_mrr=0, previous_mrr=100, has_previous_snapshot=True, logo="x", website="y"),
            _profile(created_at=NOW, updated_at=NOW, published_stories=1, public_milestones=10),
        ]
        for profile in profiles:
            result = score_profile(profile, now=NOW)
            for name, allowed in COMPONENT_BOUNDS.items():
                assert getattr(result.components, name) in allowed
            assert 0 <= result.total <= 100


class TestStoredScores:
    """Tests against the database."""

    @pytest.mark.asyncio
    async def test_verified_growing_startup(self, session):
        category = await make_category(session)
        startup = await make_startup(
            session, is_published=True, category_id=category.id, logo="logo.png",
            website="https://acme.io", description="x" * 150,
            created_at=NOW - timedelta(days=10), updated_at=NOW - timedelta(days=1),
        )
        connection = await make_direct_connection(session, startup.id)
        await add_snapshot(session, connection, date(2026, 5, 1), mrr=40_000)
        await add_snapshot(session, connection, date(2026, 6, 1), mrr=52_000)
        await add_public_milestones(session, startup.id, 3)
        await add_published_stories(session, startup.id, 2)

        result = await calculate_feature_score(session, startup.id, now=NOW)

        assert result.components.trust_level == 25
        assert result.components.revenue == 20
        assert result.components.growth == 20
        assert result.components.engagement == 15
        assert result.components.completeness == 10
        assert result.components.recency == 10
        assert result.total == 100

    @pytest.mark.asyncio
    async def test_self_reported_only(self, session):
        startup = await make_startup(session, is_published=True, created_at=NOW - timedelta(days=400))
        await make_standalone_connection(session, startup.id)

        result = await calculate_feature_score(session, startup.id, now=NOW)

        assert result.components.trust_level == 10


class TestSuggestions:
    """Tests for get_feature_suggestions and update_all_feature_scores."""

    async def _seed(self, session_factory):
        async with get_session(session_factory) as session:
            strong = await make_startup(
                session, "Strong", is_published=True, logo="l.png", website="https://s.io",
                description="x" * 150, created_at=NOW - timedelta(days=5), updated_at=NOW,
            )
            connection = await make_direct_connection(session, strong.id)
            await add_snapshot(session, connection, date(2026, 5, 1), mrr=10_000)
            await add_snapshot(session, connection, date(2026, 6, 1), mrr=20_000)

            medium = await make_startup(
                session, "Medium", is_published=True, logo="l.png",
                created_at=NOW - timedelta(days=5), updated_at=NOW,
            )
            connection = await make_direct_connection(session, medium.id)
            await add_snapshot(session, connection, date(2026, 6, 1), mrr=5_000)

            weak = await make_startup(session, "Weak", is_published=True, created_at=NOW - timedelta(days=400))
            hidden = await make_startup(session, "Hidden", is_published=False)
            featured = await make_startup(
                session, "Featured", is_published=True, is_featured=True,
                logo="l.png", created_at=NOW - timedelta(days=5), updated_at=NOW,
            )
            await make_direct_connection(session, featured.id)
            return {s.name: s.id for s in (strong, medium, weak, hidden, featured)}

    @pytest.mark.asyncio
    async def test_suggestions_are_eligible_and_sorted(self, session_factory):
        ids = await self._seed(session_factory)

        suggestions = await get_feature_suggestions(limit=10, session_factory=session_factory, now=NOW)

        assert [s.startup_id for s in suggestions] == [ids["Strong"], ids["Medium"]]
        assert suggestions[0].score >= suggestions[1].score >= 50

    @pytest.mark.asyncio
    async def test_suggestion_limit(self, session_factory):
        ids = await self._seed(session_factory)

        suggestions = await get_feature_suggestions(limit=1, session_factory=session_factory, now=NOW)

        assert [s.startup_id for s in suggestions] == [ids["Strong"]]

    @pytest.mark.asyncio
    async def test_update_all_feature_scores(self, session_factory):
        ids = await self._seed(session_factory)

        stats = await update_all_feature_scores(session_factory=session_factory, now=NOW)

        assert stats == {"updated": 4, "errors": 0}
        async with get_session(session_factory) as session:
            strong = await session.get(Startup, ids["Strong"])
            hidden = await session.get(Startup, ids["Hidden"])
            assert strong.feature_score > 50
            assert hidden.feature_score == 0


class TestScoringFailures:
    """One startup that fails to score never blocks the others."""

    def _fail_for(self, monkeypatch, failing_id: int) -> None:
        original = feature_score.calculate_feature_score

        async def flaky(session, startup_id, now=None):
            if startup_id == failing_id:
                raise RuntimeError("corrupt snapshot")
            return await original(session, startup_id, now=now)

        monkeypatch.setattr(feature_score, "calculate_feature_score", flaky)

    @pytest.mark.asyncio
    async def test_suggestions_skip_failing_startup(self, session_factory, monkeypatch):
        ids = await TestSuggestions()._seed(session_factory)
        self._fail_for(monkeypatch, ids["Strong"])

        suggestions = await get_feature_suggestions(limit=10, session_factory=session_factory, now=NOW)

        assert [s.startup_id for s in suggestions] == [ids["Medium"]]

    @pytest.mark.asyncio
    async def test_update_all_counts_failure(self, session_factory, monkeypatch):
        ids = await TestSuggestions()._seed(session_factory)
        self._fail_for(monkeypatch, ids["Medium"])

        stats = await update_all_feature_scores(session_factory=session_factory, now=NOW)

        assert stats == {"updated": 3, "errors": 1}
        async with get_session(session_factory) as session:
            assert (await session.get(Startup, ids["Strong"])).feature_score > 50
            assert (await session.get(Startup, ids["Medium"])).feature_score == 0
