"""
Bounded fan-out of connection syncs.

Limits enforced per dispatcher:
- At most settings.sync_concurrency syncs in flight
- At most settings.sync_rate_limit_max sync starts per sliding window
- One in-flight sync per connection (a second request waits its turn)
"""

import asyncio
import logging
import time
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

from ..config.settings import settings
from ..harvester.aggregator import DataAggregator, SyncResult

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Allow at most max_calls acquisitions in any window of `period` seconds.

    Usage:
        limiter = SlidingWindowRateLimiter(100, 60.0)
        await limiter.acquire()  # Blocks until a slot in the window frees up
    """

    def __init__(self, max_calls: int, period: float):
        self.max_calls = max_calls
        self.period = period
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                while self._calls and now - self._calls[0] >= self.period:
                    self._calls.popleft()
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    return
                wait = self.period - (now - self._calls[0])
            logger.debug(f"Sync rate limit reached, waiting {wait:.1f}s")
            await asyncio.sleep(wait)

    @property
    def in_window(self) -> int:
        return len(self._calls)


class SyncDispatcher:
    """Runs aggregator syncs under concurrency, rate and per-connection limits."""

    def __init__(
        self,
        aggregator: Optional[DataAggregator] = None,
        concurrency: Optional[int] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.aggregator = aggregator or DataAggregator()
        self._semaphore = asyncio.Semaphore(concurrency or settings.sync_concurrency)
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            settings.sync_rate_limit_max, settings.sync_rate_limit_window
        )
        self._connection_locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    def _lock_for(self, connection_id: int) -> asyncio.Lock:
        lock = self._connection_locks.get(connection_id)
        if lock is None:
            lock = self._connection_locks[connection_id] = asyncio.Lock()
        self._lock_users[connection_id] = self._lock_users.get(connection_id, 0) + 1
        return lock

    def _release_lock(self, connection_id: int) -> None:
        """Drop a connection's lock once no sync holds or awaits it."""
        self._lock_users[connection_id] -= 1
        if self._lock_users[connection_id] == 0:
            del self._lock_users[connection_id]
            del self._connection_locks[connection_id]

    @property
    def tracked_connections(self) -> int:
        return len(self._connection_locks)

    async def sync_one(self, connection_id: int) -> SyncResult:
        lock = self._lock_for(connection_id)
        try:
            # Per-connection lock first so a queued duplicate does not hold a slot
            async with lock:
                async with self._semaphore:
                    await self._rate_limiter.acquire()
                    return await self.aggregator.sync_connection(connection_id)
        finally:
            self._release_lock(connection_id)

    async def sync_many(self, connection_ids: Iterable[int]) -> List[SyncResult]:
        """Sync connections concurrently; one failure never cancels the rest."""
        connection_ids = list(connection_ids)
        outcomes = await asyncio.gather(
            *(self.sync_one(cid) for cid in connection_ids),
            return_exceptions=True,
        )

        results: List[SyncResult] = []
        for connection_id, outcome in zip(connection_ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Sync raised for connection {connection_id}: {outcome}")
                results.append(SyncResult(success=False, error=str(outcome) or type(outcome).__name__))
            else:
                results.append(outcome)
        return results
