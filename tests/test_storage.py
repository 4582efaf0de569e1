"""
Tests for storage operations not covered through the sync pipeline.
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from openrevenue.archivist import storage
from openrevenue.archivist.models import DataConnection, RevenueSnapshot, SyncLog, SyncStatus, utc_now_naive
from tests.test_helpers import add_snapshot, make_direct_connection, make_startup


async def _count(session, model, column, value) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(column == value))
    return result.scalar_one()


class TestDeleteConnection:
    """Tests for delete_connection."""

    @pytest.mark.asyncio
    async def test_removes_snapshots_and_logs(self, session):
        startup = await make_startup(session)
        doomed = await make_direct_connection(session, startup.id)
        kept = await make_direct_connection(session, startup.id, provider="polar")
        for connection in (doomed, kept):
            await add_snapshot(session, connection, date(2026, 5, 1), mrr=1000)
            await storage.record_sync_result(session, connection.id, SyncStatus.SUCCESS, 1, utc_now_naive())
        doomed_id, kept_id = doomed.id, kept.id

        assert await storage.delete_connection(session, doomed_id) is True

        assert await session.get(DataConnection, doomed_id) is None
        assert await _count(session, RevenueSnapshot, RevenueSnapshot.source_id, doomed_id) == 0
        assert await _count(session, SyncLog, SyncLog.connection_id, doomed_id) == 0
        assert await _count(session, RevenueSnapshot, RevenueSnapshot.source_id, kept_id) == 1
        assert await _count(session, SyncLog, SyncLog.connection_id, kept_id) == 1

    @pytest.mark.asyncio
    async def test_unknown_connection(self, session):
        assert await storage.delete_connection(session, 999) is False
