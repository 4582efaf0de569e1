"""
Tests for the daily featured-slot rotation.
"""

from datetime import date, datetime, timedelta

import pytest

from openrevenue.archivist import storage
from openrevenue.archivist.database import get_session
from openrevenue.archivist.models import Startup
from openrevenue.scheduler.rotation import rotate_featured_startups
from tests.test_helpers import (
    add_snapshot,
    featured_window,
    make_direct_connection,
    make_startup,
)

NOW = datetime(2026, 6, 15, 12, 0)
OLD = NOW - timedelta(days=400)


async def _make_strong(session, name: str) -> Startup:
    """A published startup that scores well above the suggestion floor."""
    startup = await make_startup(
        session, name, is_published=True, logo="l.png", website="https://s.io",
        description="x" * 150, created_at=NOW - timedelta(days=5), updated_at=NOW,
    )
    connection = await make_direct_connection(session, startup.id)
    await add_snapshot(session, connection, date(2026, 5, 1), mrr=10_000)
    await add_snapshot(session, connection, date(2026, 6, 1), mrr=20_000)
    return startup


async def _make_featured(session, name: str, days_left: float, impressions=0, clicks=0) -> Startup:
    return await make_startup(
        session, name, is_published=True, created_at=OLD, updated_at=OLD,
        feature_impressions=impressions, feature_clicks=clicks,
        **featured_window(days_left, NOW),
    )


class TestExpiredFeatures:
    """Expired leases are extended or released."""

    @pytest.mark.asyncio
    async def test_strong_ctr_extended_weak_removed(self, session_factory):
        async with get_session(session_factory) as session:
            strong = await _make_featured(session, "Clicky", -1, impressions=1000, clicks=60)
            weak = await _make_featured(session, "Quiet", -1, impressions=1000, clicks=20)
            strong_id, weak_id = strong.id, weak.id
            original_featured_at = strong.featured_at

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["success"] is True
        assert result["stats"]["auto_extended"] == 1
        assert result["stats"]["expired"] == 1
        async with get_session(session_factory) as session:
            strong = await session.get(Startup, strong_id)
            weak = await session.get(Startup, weak_id)
            assert strong.is_featured is True
            assert strong.featured_until == NOW + timedelta(days=7)
            assert strong.featured_at == original_featured_at
            assert (strong.feature_impressions, strong.feature_clicks) == (0, 0)
            assert weak.is_featured is False
            assert weak.featured_until is None

    @pytest.mark.asyncio
    async def test_click_floor_extends(self, session_factory):
        async with get_session(session_factory) as session:
            startup = await _make_featured(session, "Viral", -1, impressions=50_000, clicks=150)
            startup_id = startup.id

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["auto_extended"] == 1
        async with get_session(session_factory) as session:
            assert (await session.get(Startup, startup_id)).is_featured is True

    @pytest.mark.asyncio
    async def test_open_ended_feature_untouched(self, session_factory):
        async with get_session(session_factory) as session:
            startup = await make_startup(
                session, "Pinned", is_published=True, is_featured=True, featured_until=None,
                created_at=OLD, updated_at=OLD,
            )
            startup_id = startup.id

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["expired"] == 0
        async with get_session(session_factory) as session:
            assert (await session.get(Startup, startup_id)).is_featured is True


class TestSlotCap:
    """The slot cap holds after every rotation."""

    @pytest.mark.asyncio
    async def test_overflow_from_auto_extension_is_trimmed(self, session_factory):
        async with get_session(session_factory) as session:
            active = [await _make_featured(session, f"Active {d}", d) for d in (1, 2, 3, 4, 5)]
            await _make_featured(session, "Extended", -1, impressions=1000, clicks=60)
            soonest_id = active[0].id

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["auto_extended"] == 1
        assert result["stats"]["trimmed"] == 1
        async with get_session(session_factory) as session:
            assert await storage.count_active_featured(session, NOW) == 5
            assert (await session.get(Startup, soonest_id)).is_featured is False

    @pytest.mark.asyncio
    async def test_open_ended_overflow_is_trimmed_oldest_first(self, session_factory):
        async with get_session(session_factory) as session:
            pinned = [
                await make_startup(
                    session, f"Pinned {i}", is_published=True, is_featured=True,
                    featured_at=NOW - timedelta(days=10 - i), featured_until=None,
                    created_at=OLD, updated_at=OLD,
                )
                for i in range(7)
            ]
            oldest_ids = {pinned[0].id, pinned[1].id}

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["trimmed"] == 2
        async with get_session(session_factory) as session:
            assert await storage.count_active_featured(session, NOW) == 5
            for startup in pinned:
                refreshed = await session.get(Startup, startup.id)
                assert refreshed.is_featured is (startup.id not in oldest_ids)

    @pytest.mark.asyncio
    async def test_dated_leases_trimmed_before_open_ended(self, session_factory):
        async with get_session(session_factory) as session:
            dated = [await _make_featured(session, f"Dated {d}", d) for d in (1, 2)]
            for i in range(5):
                await make_startup(
                    session, f"Pinned {i}", is_published=True, is_featured=True,
                    featured_at=OLD, featured_until=None, created_at=OLD, updated_at=OLD,
                )
            dated_ids = [s.id for s in dated]

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["trimmed"] == 2
        async with get_session(session_factory) as session:
            assert await storage.count_active_featured(session, NOW) == 5
            for startup_id in dated_ids:
                assert (await session.get(Startup, startup_id)).is_featured is False

    @pytest.mark.asyncio
    async def test_full_slots_take_no_suggestions(self, session_factory):
        async with get_session(session_factory) as session:
            for d in (1, 2, 3, 4, 5):
                await _make_featured(session, f"Active {d}", d)
            await _make_strong(session, "Contender")

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["newly_featured"] == 0
        async with get_session(session_factory) as session:
            assert await storage.count_active_featured(session, NOW) == 5


class TestFillSlots:
    """Open slots are filled from suggestions."""

    @pytest.mark.asyncio
    async def test_fills_from_suggestions(self, session_factory):
        async with get_session(session_factory) as session:
            first = await _make_strong(session, "First")
            second = await _make_strong(session, "Second")
            await make_startup(session, "Weak", is_published=True, created_at=OLD, updated_at=OLD)
            ids = {first.id, second.id}

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["newly_featured"] == 2
        async with get_session(session_factory) as session:
            for startup_id in ids:
                startup = await session.get(Startup, startup_id)
                assert startup.is_featured is True
                assert startup.featured_at == NOW
                assert startup.featured_until == NOW + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_fill_respects_open_slot_count(self, session_factory):
        async with get_session(session_factory) as session:
            for d in (1, 2, 3, 4):
                await _make_featured(session, f"Active {d}", d)
            await _make_strong(session, "First")
            await _make_strong(session, "Second")

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["stats"]["newly_featured"] == 1
        async with get_session(session_factory) as session:
            assert await storage.count_active_featured(session, NOW) == 5

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, session_factory):
        async with get_session(session_factory) as session:
            await _make_strong(session, "First")
            await _make_featured(session, "Quiet", -1, impressions=1000, clicks=20)

        first = await rotate_featured_startups(session_factory, now=NOW)
        second = await rotate_featured_startups(session_factory, now=NOW)

        assert first["stats"]["newly_featured"] == 1
        assert first["stats"]["expired"] == 1
        assert second["stats"] == {
            "expired": 0,
            "auto_extended": 0,
            "trimmed": 0,
            "newly_featured": 0,
            "scores_updated": 2,
            "errors": 0,
        }

    @pytest.mark.asyncio
    async def test_fill_error_is_isolated(self, session_factory, monkeypatch):
        async with get_session(session_factory) as session:
            first = await _make_strong(session, "First")
            second = await _make_strong(session, "Second")
            third = await _make_strong(session, "Third")
            failing_id, other_ids = second.id, {first.id, third.id}

        original = storage.get_startup

        async def flaky(session, startup_id):
            if startup_id == failing_id:
                raise RuntimeError("row locked")
            return await original(session, startup_id)

        monkeypatch.setattr(storage, "get_startup", flaky)

        result = await rotate_featured_startups(session_factory, now=NOW)

        assert result["success"] is True
        assert result["stats"]["errors"] == 1
        assert result["stats"]["newly_featured"] == 2
        async with get_session(session_factory) as session:
            assert (await session.get(Startup, failing_id)).is_featured is False
            for startup_id in other_ids:
                assert (await session.get(Startup, startup_id)).is_featured is True
