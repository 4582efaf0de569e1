"""Database models and storage utilities."""

from .models import (
    Category,
    Startup,
    PrivacySettings,
    Milestone,
    Story,
    DataConnection,
    RevenueSnapshot,
    LeaderboardEntry,
    SyncLog,
    TrustLevel,
    ConnectionType,
    VerifiedBy,
    SyncStatus,
    StartupTier,
    utc_now_naive,
)
from .database import get_session, get_db, init_db, close_db, use_engine
from .sources import (
    DirectSource,
    StandaloneSource,
    ConnectionSource,
    ConnectionConfigError,
    source_from_connection,
)
from .storage import create_connection, delete_connection

__all__ = [
    "Category",
    "Startup",
    "PrivacySettings",
    "Milestone",
    "Story",
    "DataConnection",
    "RevenueSnapshot",
    "LeaderboardEntry",
    "SyncLog",
    "TrustLevel",
    "ConnectionType",
    "VerifiedBy",
    "SyncStatus",
    "StartupTier",
    "utc_now_naive",
    "get_session",
    "get_db",
    "init_db",
    "close_db",
    "use_engine",
    "DirectSource",
    "StandaloneSource",
    "ConnectionSource",
    "ConnectionConfigError",
    "source_from_connection",
    "create_connection",
    "delete_connection",
]
