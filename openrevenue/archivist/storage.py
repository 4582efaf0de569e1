"""
Storage operations for connections, revenue snapshots and leaderboard rows.

Upserts use the dialect's native INSERT ... ON CONFLICT DO UPDATE, so
repeated syncs of the same period overwrite rather than duplicate.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    ConnectionType,
    DataConnection,
    LeaderboardEntry,
    RevenueSnapshot,
    Startup,
    SyncLog,
    SyncStatus,
    TrustLevel,
    VerifiedBy,
    utc_now_naive,
)
from .sources import ConnectionSource, DirectSource, StandaloneSource

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession):
    """Pick the dialect-specific insert() that supports on_conflict_do_update."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")


# =============================================================================
# Connections
# =============================================================================

async def create_connection(
    session: AsyncSession,
    startup_id: int,
    source: ConnectionSource,
) -> DataConnection:
    """
    Create a connection from a source variant.

    trust_level and verification_method come from the variant, never from
    the caller.
    """
    connection = DataConnection(
        startup_id=startup_id,
        type=source.kind,
        trust_level=source.trust_level,
        verification_method=source.verification_method,
    )
    if isinstance(source, DirectSource):
        connection.provider = source.provider
        connection.api_key_encrypted = source.api_key_encrypted
        connection.api_secret_encrypted = source.api_secret_encrypted
    elif isinstance(source, StandaloneSource):
        connection.endpoint = source.endpoint
        connection.standalone_key_encrypted = source.api_key_encrypted
        connection.public_key = source.public_key
    else:
        raise TypeError(f"Unsupported connection source: {type(source).__name__}")

    session.add(connection)
    await session.flush()
    logger.info(
        f"Created {source.kind.value} connection {connection.id} for startup {startup_id} "
        f"({source.trust_level.value})"
    )
    return connection


async def get_connection(session: AsyncSession, connection_id: int) -> Optional[DataConnection]:
    return await session.get(DataConnection, connection_id)


async def get_active_connections(session: AsyncSession, startup_id: int) -> List[DataConnection]:
    result = await session.execute(
        select(DataConnection)
        .where(DataConnection.startup_id == startup_id)
        .where(DataConnection.is_active == True)  # noqa: E712
        .order_by(DataConnection.id)
    )
    return list(result.scalars().all())


async def get_connections_due_for_sync(
    session: AsyncSession,
    stale_after: timedelta,
    force: bool = False,
    now: Optional[datetime] = None,
) -> List[int]:
    """Ids of active connections never synced or last synced before now - stale_after.

    With force=True every active connection is returned.
    """
    now = now or utc_now_naive()
    query = select(DataConnection.id).where(DataConnection.is_active == True)  # noqa: E712
    if not force:
        query = query.where(
            or_(
                DataConnection.last_synced_at.is_(None),
                DataConnection.last_synced_at < now - stale_after,
            )
        )
    result = await session.execute(query.order_by(DataConnection.id))
    return list(result.scalars().all())


async def delete_connection(session: AsyncSession, connection_id: int) -> bool:
    """Delete a connection with its snapshots and sync logs."""
    connection = await session.get(DataConnection, connection_id)
    if not connection:
        return False

    await session.execute(delete(RevenueSnapshot).where(RevenueSnapshot.source_id == connection_id))
    await session.execute(delete(SyncLog).where(SyncLog.connection_id == connection_id))
    await session.delete(connection)
    await session.flush()
    logger.info(f"Deleted connection {connection_id}")
    return True


async def record_sync_result(
    session: AsyncSession,
    connection_id: int,
    status: SyncStatus,
    records_processed: int,
    started_at: datetime,
    error: Optional[str] = None,
) -> SyncLog:
    """Update the connection's sync fields and append a sync log."""
    completed_at = utc_now_naive()
    values: Dict[str, Any] = {
        "last_synced_at": completed_at,
        "last_sync_status": status,
        "last_sync_error": error,
        "updated_at": completed_at,
    }
    if status == SyncStatus.SUCCESS:
        values["last_verified_at"] = completed_at

    await session.execute(
        update(DataConnection).where(DataConnection.id == connection_id).values(**values)
    )

    log = SyncLog(
        connection_id=connection_id,
        status=status,
        records_processed=records_processed,
        error=error,
        started_at=started_at,
        completed_at=completed_at,
    )
    session.add(log)
    await session.flush()
    return log


# =============================================================================
# Revenue snapshots
# =============================================================================

async def upsert_revenue_snapshot(
    session: AsyncSession,
    connection: DataConnection,
    snapshot_date: date,
    revenue: float,
    currency: str = "USD",
    mrr: Optional[float] = None,
    arr: Optional[float] = None,
    customer_count: Optional[int] = None,
) -> None:
    """
    Insert or overwrite the snapshot for (startup, date, connection).

    Trust fields are copied from the connection.
    """
    insert = _insert_for(session)
    now = utc_now_naive()
    verified_by = VerifiedBy.PLATFORM if connection.type == ConnectionType.DIRECT else VerifiedBy.SELF

    values = {
        "startup_id": connection.startup_id,
        "source_id": connection.id,
        "source_type": connection.type,
        "snapshot_date": snapshot_date,
        "revenue": revenue,
        "mrr": mrr,
        "arr": arr,
        "customer_count": customer_count,
        "currency": currency,
        "trust_level": connection.trust_level,
        "verified_by": verified_by,
        "is_verified": connection.trust_level == TrustLevel.PLATFORM_VERIFIED,
        "created_at": now,
        "updated_at": now,
    }
    stmt = insert(RevenueSnapshot).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["startup_id", "snapshot_date", "source_id"],
        set_={
            key: stmt.excluded[key]
            for key in (
                "revenue", "mrr", "arr", "customer_count", "currency",
                "source_type", "trust_level", "verified_by", "is_verified", "updated_at",
            )
        },
    )
    await session.execute(stmt)


async def get_latest_snapshots(
    session: AsyncSession,
    startup_id: int,
    limit: int = 2,
) -> List[RevenueSnapshot]:
    """Most recent snapshots first (ties broken by newest row)."""
    result = await session.execute(
        select(RevenueSnapshot)
        .where(RevenueSnapshot.startup_id == startup_id)
        .order_by(RevenueSnapshot.snapshot_date.desc(), RevenueSnapshot.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_snapshots(session: AsyncSession, startup_id: int) -> List[RevenueSnapshot]:
    """All snapshots for a startup, oldest first."""
    result = await session.execute(
        select(RevenueSnapshot)
        .where(RevenueSnapshot.startup_id == startup_id)
        .order_by(RevenueSnapshot.snapshot_date, RevenueSnapshot.id)
    )
    return list(result.scalars().all())


# =============================================================================
# Leaderboard
# =============================================================================

async def upsert_leaderboard_entry(session: AsyncSession, startup_id: int, **fields) -> None:
    insert = _insert_for(session)
    values = {"startup_id": startup_id, "last_updated": utc_now_naive(), **fields}
    stmt = insert(LeaderboardEntry).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["startup_id"],
        set_={key: stmt.excluded[key] for key in values if key != "startup_id"},
    )
    await session.execute(stmt)


async def get_leaderboard(session: AsyncSession, limit: int = 100) -> List[LeaderboardEntry]:
    result = await session.execute(
        select(LeaderboardEntry)
        .where(LeaderboardEntry.rank > 0)
        .order_by(LeaderboardEntry.rank)
        .limit(limit)
    )
    return list(result.scalars().all())


# =============================================================================
# Startups / featured slots
# =============================================================================

async def get_startup(session: AsyncSession, startup_id: int) -> Optional[Startup]:
    return await session.get(Startup, startup_id)


async def get_published_startup_ids(session: AsyncSession) -> List[int]:
    result = await session.execute(
        select(Startup.id).where(Startup.is_published == True).order_by(Startup.id)  # noqa: E712
    )
    return list(result.scalars().all())


async def count_active_featured(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Startups holding a featured slot: featured with no expiry or a future one."""
    now = now or utc_now_naive()
    result = await session.execute(
        select(func.count(Startup.id))
        .where(Startup.is_featured == True)  # noqa: E712
        .where(or_(Startup.featured_until.is_(None), Startup.featured_until >= now))
    )
    return result.scalar_one()
