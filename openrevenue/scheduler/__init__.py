"""
Scheduler module for the recurring sync, leaderboard, milestone and rotation jobs.
"""
from .dispatch import SlidingWindowRateLimiter, SyncDispatcher
from .jobs import (
    SchedulerManager,
    check_milestones,
    refresh_leaderboard,
    rotate_featured,
    sync_stale_connections,
)
from .rotation import rotate_featured_startups

__all__ = [
    "SchedulerManager",
    "SyncDispatcher",
    "SlidingWindowRateLimiter",
    "sync_stale_connections",
    "refresh_leaderboard",
    "check_milestones",
    "rotate_featured",
    "rotate_featured_startups",
]
