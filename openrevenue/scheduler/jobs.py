"""
APScheduler job definitions for the recurring platform cadences.

Jobs (crontab expressions come from settings):
- sync: sync every stale connection through the bounded dispatcher
- leaderboard: recompute leaderboard ranks (single lane)
- milestones: detect newly crossed revenue/customer milestones
- rotation: rotate featured slots

Each job is one idempotent entry point that takes no arguments beyond
the optional force flag on sync, so it can run from cron or on demand.
"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..analyst.milestones import check_all_milestones
from ..archivist import storage
from ..archivist.database import get_session
from ..config.settings import settings
from ..harvester.aggregator import DataAggregator
from .dispatch import SyncDispatcher
from .notifications import send_job_summary
from .rotation import rotate_featured_startups

logger = logging.getLogger(__name__)

JOB_TIMEOUT_SECONDS = 30 * 60

# One leaderboard recomputation at a time, whoever triggers it
_leaderboard_lane = asyncio.Lock()


# =============================================================================
# JOBS
# =============================================================================

async def sync_stale_connections(
    force: bool = False,
    session_factory: Optional[async_sessionmaker] = None,
    dispatcher: Optional[SyncDispatcher] = None,
) -> Dict[str, int]:
    """Sync active connections not synced within settings.sync_stale_hours (all with force)."""
    async with get_session(session_factory) as session:
        connection_ids = await storage.get_connections_due_for_sync(
            session, timedelta(hours=settings.sync_stale_hours), force=force
        )

    logger.info(f"Syncing {len(connection_ids)} connections (force={force})")
    dispatcher = dispatcher or SyncDispatcher(DataAggregator(session_factory=session_factory))
    results = await dispatcher.sync_many(connection_ids)

    succeeded = sum(1 for r in results if r.success)
    return {
        "connections": len(connection_ids),
        "succeeded": succeeded,
        "errors": len(results) - succeeded,
        "records": sum(r.records_processed for r in results),
    }


async def refresh_leaderboard(session_factory: Optional[async_sessionmaker] = None) -> Dict[str, int]:
    async with _leaderboard_lane:
        ranked = await DataAggregator(session_factory=session_factory).update_leaderboard()
    return {"ranked": ranked}


async def check_milestones(session_factory: Optional[async_sessionmaker] = None) -> Dict[str, int]:
    return await check_all_milestones(session_factory=session_factory)


async def rotate_featured(session_factory: Optional[async_sessionmaker] = None) -> Dict[str, Any]:
    return await rotate_featured_startups(session_factory=session_factory)


# =============================================================================
# SCHEDULER MANAGER
# =============================================================================

class SchedulerManager:
    """
    Owns the AsyncIOScheduler and the cadence jobs.

    start() and stop() are idempotent, so lifespan hooks and tests can call
    them without tracking state. run_job() is the shared wrapper for cron
    and on-demand runs: timeout, timing, logging and notification.

    Usage:
        manager = SchedulerManager()
        manager.start()
        await manager.run_job("leaderboard")
        manager.stop()
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        timezone: Optional[str] = None,
        notify: bool = True,
    ):
        self.session_factory = session_factory
        self.timezone = timezone or settings.scheduler_timezone
        self.notify = notify
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._dispatcher: Optional[SyncDispatcher] = None

    @property
    def jobs(self) -> Dict[str, Callable[..., Awaitable[Dict[str, Any]]]]:
        return {
            "sync": self._sync,
            "leaderboard": lambda: refresh_leaderboard(self.session_factory),
            "milestones": lambda: check_milestones(self.session_factory),
            "rotation": lambda: rotate_featured(self.session_factory),
        }

    def schedule(self) -> Dict[str, str]:
        return {
            "sync": settings.sync_cron,
            "leaderboard": settings.leaderboard_cron,
            "milestones": settings.milestone_cron,
            "rotation": settings.rotation_cron,
        }

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def dispatcher(self) -> SyncDispatcher:
        # Shared across runs so per-connection locks and the rate window hold
        if self._dispatcher is None:
            self._dispatcher = SyncDispatcher(DataAggregator(session_factory=self.session_factory))
        return self._dispatcher

    async def _sync(self, force: bool = False) -> Dict[str, int]:
        return await sync_stale_connections(
            force=force, session_factory=self.session_factory, dispatcher=self.dispatcher
        )

    def start(self) -> AsyncIOScheduler:
        """Create and start the scheduler. A second call is a no-op."""
        if self.is_running:
            logger.debug("Scheduler already running")
            return self._scheduler

        scheduler = AsyncIOScheduler(
            timezone=self.timezone,
            job_defaults={
                "coalesce": False,  # Queue missed runs instead of dropping them
                "max_instances": 1,  # Only one instance at a time
                "misfire_grace_time": 600,  # 10 min grace for misfires
            }
        )

        for name, crontab in self.schedule().items():
            scheduler.add_job(
                self.run_job,
                trigger=CronTrigger.from_crontab(crontab, timezone=self.timezone),
                args=[name],
                id=f"openrevenue_{name}",
                name=f"OpenRevenue {name} ({crontab})",
                replace_existing=True,
            )

        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Scheduler started ({self.timezone})")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.id} - next run: {job.next_run_time}")

        return scheduler

    def stop(self) -> None:
        """Shut the scheduler down without waiting for running jobs. Safe to repeat."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shutdown complete")
        self._scheduler = None

    async def run_job(self, name: str, **kwargs) -> Dict[str, Any]:
        """
        Run one cadence job now.

        Raises:
            KeyError: Unknown job name

        Returns:
            {"job", "success", "stats", "duration"} plus "error" on failure
        """
        job = self.jobs[name]
        start = time.monotonic()
        error: Optional[str] = None
        stats: Dict[str, Any] = {}

        try:
            result = await asyncio.wait_for(job(**kwargs), timeout=JOB_TIMEOUT_SECONDS)
            # Rotation reports its own success flag around the counters
            if "stats" in result:
                stats = result["stats"]
                error = result.get("error")
            else:
                stats = result
        except asyncio.TimeoutError:
            error = f"Job timed out after {JOB_TIMEOUT_SECONDS} seconds"
            logger.error(f"Job {name} timed out")
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Job {name} failed: {error}", exc_info=True)

        duration = time.monotonic() - start
        if self.notify:
            await send_job_summary(name, stats, duration, error=error)

        outcome = {"job": name, "success": error is None, "stats": stats, "duration": round(duration, 2)}
        if error:
            outcome["error"] = error
        return outcome
