"""
Data Aggregator - syncs revenue from every connection into snapshots.

Per sync attempt: started -> success | error, always terminal and always
logged (connection status fields + one SyncLog row).

Flow for one connection:
1. Load the connection and rebuild its source variant
2. Direct: decrypt credentials, validate, fetch charges + current metrics
   Standalone: health check, signed fetch (fails closed on bad signatures)
3. Upsert one RevenueSnapshot per point keyed on (startup, date, connection)
4. Record the outcome

Snapshot upserts of one run share a transaction, so a failure part way
through leaves no partial run behind.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..archivist import storage
from ..archivist.database import get_session
from ..archivist.models import DataConnection, LeaderboardEntry, SyncStatus
from ..archivist.sources import DirectSource, StandaloneSource, source_from_connection
from ..common.encryption import EncryptionConfigError, decrypt
from ..common.revenue import calculate_arr, mrr_growth_rate
from ..config.settings import settings
from .base_provider import MONTHLY, PaymentProvider, ProviderError, RevenueDataPoint
from .providers import create_provider
from .standalone_client import StandaloneClient

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A connection could not be synced (missing, inactive or unreachable)."""


@dataclass
class SyncResult:
    """Outcome of syncing one connection or one startup."""
    success: bool
    records_processed: int = 0
    error: Optional[str] = None
    connections_failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def sync_window(months: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """[first day of the month `months` back, now] in UTC."""
    now = now or datetime.now(timezone.utc)
    month_index = now.year * 12 + (now.month - 1) - months
    start = datetime(month_index // 12, month_index % 12 + 1, 1, tzinfo=timezone.utc)
    return start, now


class DataAggregator:
    """
    Orchestrates revenue syncs and the leaderboard refresh.

    Collaborators are injectable so tests can swap the provider factory,
    the standalone client and the session factory.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        provider_factory: Callable[..., PaymentProvider] = create_provider,
        standalone_factory: Callable[..., StandaloneClient] = StandaloneClient,
        history_months: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.provider_factory = provider_factory
        self.standalone_factory = standalone_factory
        self.history_months = history_months or settings.sync_history_months

    # =========================================================================
    # Fetching
    # =========================================================================

    async def _fetch_direct(self, source: DirectSource) -> List[RevenueDataPoint]:
        api_key = decrypt(source.api_key_encrypted)
        api_secret = decrypt(source.api_secret_encrypted) if source.api_secret_encrypted else None

        provider = self.provider_factory(source.provider, api_key, api_secret)
        async with provider:
            validation = await provider.validate_credentials()
            if not validation.valid:
                raise ProviderError(validation.error or "Invalid provider credentials")

            start, end = sync_window(self.history_months)
            points = await provider.fetch_revenue(start, end, interval=MONTHLY)
            metrics = await provider.fetch_current_metrics()

        return self._stamp_current_metrics(points, metrics.mrr, metrics.customer_count, metrics.currency, end)

    @staticmethod
    def _stamp_current_metrics(
        points: List[RevenueDataPoint],
        mrr: float,
        customer_count: int,
        currency: str,
        now: datetime,
    ) -> List[RevenueDataPoint]:
        """Attach current MRR / ARR / customers to this month's point."""
        current_month = now.date().replace(day=1)
        current = next((p for p in points if p.date == current_month), None)
        if current is None:
            current = RevenueDataPoint(date=current_month, revenue=0.0, currency=currency)
            points.append(current)
        current.mrr = mrr
        current.arr = calculate_arr(mrr)
        current.customer_count = customer_count
        return points

    async def _fetch_standalone(
        self,
        connection: DataConnection,
        source: StandaloneSource,
    ) -> List[RevenueDataPoint]:
        api_key = decrypt(source.api_key_encrypted)
        client = self.standalone_factory(source.endpoint, api_key, public_key=source.public_key)
        async with client:
            if not await client.validate_connection():
                raise SyncError(f"Standalone app at {source.endpoint} is unreachable or unhealthy")

            start, end = sync_window(self.history_months)
            signed = await client.fetch_signed(start, end, interval=MONTHLY)

        if signed.key_from_response:
            logger.info(f"Pinning public key for connection {connection.id} on first contact")
            connection.public_key = signed.public_key
        return signed.points

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync_connection(self, connection_id: int) -> SyncResult:
        """
        Sync one connection.

        Never raises for sync failures: the error ends up in the returned
        SyncResult, on the connection row and in a SyncLog entry.
        """
        started_at = datetime.now(timezone.utc).replace(tzinfo=None)
        logger.info(f"Sync started for connection {connection_id}")

        try:
            async with get_session(self.session_factory) as session:
                connection = await storage.get_connection(session, connection_id)
                if connection is None:
                    logger.error(f"Sync skipped: connection {connection_id} not found")
                    return SyncResult(success=False, error="Connection not found")
                if not connection.is_active:
                    raise SyncError("Connection is inactive")

                source = source_from_connection(connection)
                if isinstance(source, DirectSource):
                    points = await self._fetch_direct(source)
                else:
                    points = await self._fetch_standalone(connection, source)

                for point in points:
                    await storage.upsert_revenue_snapshot(
                        session,
                        connection,
                        snapshot_date=point.date,
                        revenue=point.revenue,
                        currency=point.currency,
                        mrr=point.mrr,
                        arr=point.arr if point.arr is not None else (
                            calculate_arr(point.mrr) if point.mrr is not None else None
                        ),
                        customer_count=point.customer_count,
                    )

                await storage.record_sync_result(
                    session, connection_id, SyncStatus.SUCCESS, len(points), started_at
                )

            logger.info(f"Sync succeeded for connection {connection_id}: {len(points)} records")
            return SyncResult(success=True, records_processed=len(points))

        except EncryptionConfigError as e:
            # Operator misconfiguration: record it, then fail loudly
            await self._record_failure(connection_id, str(e), started_at)
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Sync failed for connection {connection_id}: {error}")
            await self._record_failure(connection_id, error, started_at)
            return SyncResult(success=False, error=error)

    async def _record_failure(self, connection_id: int, error: str, started_at: datetime) -> None:
        try:
            async with get_session(self.session_factory) as session:
                await storage.record_sync_result(
                    session, connection_id, SyncStatus.ERROR, 0, started_at, error=error
                )
        except Exception as e:
            logger.error(f"Could not record sync failure for connection {connection_id}: {e}")

    async def sync_startup(self, startup_id: int) -> SyncResult:
        """Sync every active connection of one startup; failures do not stop siblings."""
        async with get_session(self.session_factory) as session:
            startup = await storage.get_startup(session, startup_id)
            if startup is None:
                return SyncResult(success=False, error="Startup not found")
            connection_ids = [c.id for c in await storage.get_active_connections(session, startup_id)]

        total = 0
        failed = 0
        for connection_id in connection_ids:
            try:
                result = await self.sync_connection(connection_id)
            except Exception as e:
                logger.error(f"Unexpected error syncing connection {connection_id}: {e}")
                failed += 1
                continue
            if result.success:
                total += result.records_processed
            else:
                failed += 1

        logger.info(
            f"Startup {startup_id} sync: {total} records from "
            f"{len(connection_ids) - failed}/{len(connection_ids)} connections"
        )
        return SyncResult(success=True, records_processed=total, connections_failed=failed)

    # =========================================================================
    # Leaderboard
    # =========================================================================

    async def update_leaderboard(self) -> int:
        """
        Rebuild the leaderboard from the latest snapshots.

        Pass 1 upserts one entry per published startup with snapshots.
        Pass 2 re-reads every entry and assigns 1-based ranks by MRR
        descending (ties: lower startup id first).

        Returns:
            Number of ranked entries
        """
        async with get_session(self.session_factory) as session:
            startup_ids = await storage.get_published_startup_ids(session)
            ranked_ids: List[int] = []

            for startup_id in startup_ids:
                snapshots = await storage.get_latest_snapshots(session, startup_id, limit=2)
                if not snapshots:
                    continue
                latest = snapshots[0]
                previous = snapshots[1] if len(snapshots) > 1 else None

                await storage.upsert_leaderboard_entry(
                    session,
                    startup_id,
                    mrr=latest.mrr or 0.0,
                    arr=latest.arr or 0.0,
                    total_revenue=latest.revenue,
                    customer_count=latest.customer_count,
                    growth_rate=mrr_growth_rate(latest.mrr, previous.mrr if previous else None),
                    currency=latest.currency,
                )
                ranked_ids.append(startup_id)

            # Drop rows for startups that were unpublished or lost their data
            stale = delete(LeaderboardEntry)
            if ranked_ids:
                stale = stale.where(LeaderboardEntry.startup_id.not_in(ranked_ids))
            await session.execute(stale)

            result = await session.execute(
                select(LeaderboardEntry).order_by(
                    LeaderboardEntry.mrr.desc(), LeaderboardEntry.startup_id
                )
            )
            entries = list(result.scalars().all())
            for rank, entry in enumerate(entries, start=1):
                entry.rank = rank

        logger.info(f"Leaderboard updated: {len(entries)} ranked startups")
        return len(entries)
