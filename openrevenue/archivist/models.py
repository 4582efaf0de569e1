"""
Database models using SQLModel (SQLAlchemy + Pydantic).

Schema:
- Category: Startup categories (saas, marketplace, ...)
- Startup: A startup profile plus its featured-slot lease and feature score
- PrivacySettings: Per-startup display preferences
- Milestone / Story: Owner-authored content that feeds scoring and tiers
- DataConnection: One revenue source (direct provider or standalone app)
- RevenueSnapshot: One row per (startup, date, source)
- LeaderboardEntry: Materialized ranking row, one per published startup
- SyncLog: Append-only record of every sync attempt
"""

from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_now_naive() -> datetime:
    """Return current UTC time as timezone-naive datetime.

    PostgreSQL TIMESTAMP WITHOUT TIME ZONE columns require naive datetimes.
    Using timezone-aware datetimes causes asyncpg DataError.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Enumerations
# =============================================================================

class TrustLevel(str, Enum):
    PLATFORM_VERIFIED = "PLATFORM_VERIFIED"
    SELF_REPORTED = "SELF_REPORTED"


class ConnectionType(str, Enum):
    DIRECT = "direct"
    STANDALONE = "standalone"


class VerifiedBy(str, Enum):
    PLATFORM = "platform"
    SELF = "self"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class StartupTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"


# =============================================================================
# Startup profile
# =============================================================================

class Category(SQLModel, table=True):
    """A startup category."""
    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    description: Optional[str] = None


class Startup(SQLModel, table=True):
    """A startup profile."""
    __tablename__ = "startups"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    description: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id")

    is_published: bool = Field(default=False, index=True)
    published_at: Optional[datetime] = None
    tier: Optional[StartupTier] = None

    # Featured slot lease
    feature_score: int = Field(default=0)
    is_featured: bool = Field(default=False, index=True)
    featured_at: Optional[datetime] = None
    featured_until: Optional[datetime] = None  # None = indefinite
    feature_impressions: int = Field(default=0)
    feature_clicks: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class PrivacySettings(SQLModel, table=True):
    """What a startup allows the public pages to show."""
    __tablename__ = "privacy_settings"

    id: Optional[int] = Field(default=None, primary_key=True)
    startup_id: int = Field(foreign_key="startups.id", unique=True)
    show_revenue: bool = Field(default=True)
    show_mrr: bool = Field(default=True)
    show_customers: bool = Field(default=True)
    show_growth: bool = Field(default=True)


class Milestone(SQLModel, table=True):
    """A revenue or customer milestone."""
    __tablename__ = "milestones"

    id: Optional[int] = Field(default=None, primary_key=True)
    startup_id: int = Field(foreign_key="startups.id", index=True)
    type: str  # "mrr" | "customers" | "custom"
    title: str
    description: Optional[str] = None
    target_value: Optional[float] = None
    achieved_at: Optional[datetime] = None
    is_public: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now_naive)


class Story(SQLModel, table=True):
    """A founder story attached to a startup."""
    __tablename__ = "stories"

    id: Optional[int] = Field(default=None, primary_key=True)
    startup_id: int = Field(foreign_key="startups.id", index=True)
    title: str
    slug: str
    is_published: bool = Field(default=False)
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now_naive)


# =============================================================================
# Revenue data
# =============================================================================

class DataConnection(SQLModel, table=True):
    """
    One revenue source bound to one startup.

    Rows are created through storage.create_connection(), which derives
    trust_level from the source variant. Sync attempts only touch the
    last_sync_* fields.
    """
    __tablename__ = "data_connections"

    id: Optional[int] = Field(default=None, primary_key=True)
    startup_id: int = Field(foreign_key="startups.id", index=True)
    type: ConnectionType

    # Direct provider
    provider: Optional[str] = None  # stripe, polar, ...
    api_key_encrypted: Optional[str] = None
    api_secret_encrypted: Optional[str] = None

    # Standalone app
    endpoint: Optional[str] = None
    standalone_key_encrypted: Optional[str] = None
    public_key: Optional[str] = None  # Base64 Ed25519 key

    trust_level: TrustLevel
    verification_method: Optional[str] = None
    last_verified_at: Optional[datetime] = None

    is_active: bool = Field(default=True, index=True)
    last_synced_at: Optional[datetime] = None
    last_sync_status: Optional[SyncStatus] = None
    last_sync_error: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class RevenueSnapshot(SQLModel, table=True):
    """Revenue for one period from one source."""
    __tablename__ = "revenue_snapshots"
    __table_args__ = (
        UniqueConstraint("startup_id", "snapshot_date", "source_id", name="uq_snapshot_startup_date_source"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    startup_id: int = Field(foreign_key="startups.id", index=True)
    source_id: int = Field(foreign_key="data_connections.id", index=True)
    source_type: ConnectionType
    snapshot_date: date = Field(index=True)  # First of month for monthly syncs

    revenue: float = Field(default=0.0)
    mrr: Optional[float] = None
    arr: Optional[float] = None
    customer_count: Optional[int] = None
    currency: str = Field(default="USD")

    # Copied from the connection at ingest time
    trust_level: TrustLevel
    verified_by: VerifiedBy
    is_verified: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class LeaderboardEntry(SQLModel, table=True):
    """Ranking row derived from a startup's latest two snapshots."""
    __tablename__ = "leaderboard_entries"

    id: Optional[int] = Field(default=None, primary_key=True)
    startup_id: int = Field(foreign_key="startups.id", unique=True)
    rank: int = Field(default=0, index=True)
    mrr: float = Field(default=0.0)
    arr: float = Field(default=0.0)
    total_revenue: float = Field(default=0.0)
    customer_count: Optional[int] = None
    growth_rate: Optional[float] = None
    currency: str = Field(default="USD")
    last_updated: datetime = Field(default_factory=utc_now_naive)


class SyncLog(SQLModel, table=True):
    """Append-only record of one sync attempt."""
    __tablename__ = "sync_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    connection_id: int = Field(foreign_key="data_connections.id", index=True)
    status: SyncStatus
    records_processed: int = Field(default=0)
    error: Optional[str] = None
    started_at: datetime
    completed_at: datetime
