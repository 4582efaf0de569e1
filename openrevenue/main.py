"""
OpenRevenue - Main Application Entry Point

Transparent startup revenue platform: verified revenue sync, progressive
publishing tiers and a fair, rotating featured showcase.

- Public: health, featured showcase, leaderboard, tier and metrics
- Protected (X-API-Key): publishing, featured slot admin, manual syncs
  and on-demand cadence jobs
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .analyst import (
    StartupNotFoundError,
    extend_featured,
    feature_startup,
    get_feature_suggestions,
    get_featured_showcase,
    get_tier_badge,
    publish_startup,
    unfeature_startup,
    validate_startup_tier,
)
from .archivist import Startup, close_db, get_db, init_db
from .archivist import storage
from .common.encryption import EncryptionConfigError
from .common.revenue import aggregate_monthly_metrics, calculate_growth_rate
from .config import settings
from .harvester import RevenueDataPoint
from .scheduler import SchedulerManager

logger = logging.getLogger(__name__)


# ----- API Key Security -----

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """Verify API key for protected endpoints."""
    if not api_key:
        raise HTTPException(status_code=401, detail="API key required")
    if api_key not in settings.valid_api_keys:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return api_key


def get_scheduler(request: Request) -> SchedulerManager:
    return request.app.state.scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting OpenRevenue...")

    if settings.auto_create_tables:
        try:
            await init_db()
            logger.info("Database tables created")
        except Exception as e:
            logger.warning(f"Could not create tables: {e}")

    try:
        app.state.scheduler.start()
    except Exception as e:
        logger.warning(f"Could not start scheduler: {e}")

    yield

    logger.info("Shutting down...")
    app.state.scheduler.stop()

    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")


app = FastAPI(
    title="OpenRevenue",
    description="Verified startup revenue, tiers and featured rotation",
    version="0.1.0",
    lifespan=lifespan
)
app.state.scheduler = SchedulerManager()

_allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.frontend_url:
    _allowed_origins.append(settings.frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----- Response Models -----

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    scheduler_running: bool


class LeaderboardEntryResponse(BaseModel):
    rank: int
    startup_id: int
    name: str
    slug: str
    mrr: float
    arr: float
    total_revenue: float
    customer_count: Optional[int]
    growth_rate: Optional[float]
    currency: str
    last_updated: datetime


class TierRequirementResponse(BaseModel):
    key: str
    label: str
    description: str
    met: bool
    required: bool


class TierResponse(BaseModel):
    startup_id: int
    tier: str
    can_publish: bool
    can_upgrade: bool
    next_tier: Optional[str]
    score: int
    badge: Dict[str, str]
    requirements: List[TierRequirementResponse]


class FeatureRequest(BaseModel):
    duration_days: int = Field(default=7, ge=1)


class ExtendRequest(BaseModel):
    extension_days: int = Field(default=7, ge=1)


def _tier_response(startup_id: int, validation) -> TierResponse:
    return TierResponse(
        startup_id=startup_id,
        tier=validation.tier.value,
        can_publish=validation.can_publish,
        can_upgrade=validation.can_upgrade,
        next_tier=validation.next_tier.value if validation.next_tier else None,
        score=validation.score,
        badge=get_tier_badge(validation.tier),
        requirements=[TierRequirementResponse(**vars(r)) for r in validation.requirements],
    )


# ----- Public Endpoints -----

@app.get("/health", response_model=HealthResponse)
async def health_check(scheduler: SchedulerManager = Depends(get_scheduler)):
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        scheduler_running=scheduler.is_running,
    )


@app.get("/api/featured")
async def featured_showcase(
    limit: int = Query(default=6, ge=1, le=24),
    db: AsyncSession = Depends(get_db),
):
    """Trust-balanced, diverse selection of published startups, randomly ordered."""
    startups = await get_featured_showcase(db, limit=limit)
    return {"startups": startups, "count": len(startups)}


@app.get("/api/leaderboard", response_model=List[LeaderboardEntryResponse])
async def leaderboard(
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    entries = await storage.get_leaderboard(db, limit=limit)
    if not entries:
        return []

    result = await db.execute(
        select(Startup.id, Startup.name, Startup.slug)
        .where(Startup.id.in_([e.startup_id for e in entries]))
    )
    names = {row.id: (row.name, row.slug) for row in result.all()}

    return [
        LeaderboardEntryResponse(
            rank=entry.rank,
            startup_id=entry.startup_id,
            name=names.get(entry.startup_id, ("", ""))[0],
            slug=names.get(entry.startup_id, ("", ""))[1],
            mrr=entry.mrr,
            arr=entry.arr,
            total_revenue=entry.total_revenue,
            customer_count=entry.customer_count,
            growth_rate=entry.growth_rate,
            currency=entry.currency,
            last_updated=entry.last_updated,
        )
        for entry in entries
    ]


@app.get("/api/startups/{startup_id}/tier", response_model=TierResponse)
async def startup_tier(startup_id: int, db: AsyncSession = Depends(get_db)):
    try:
        validation = await validate_startup_tier(db, startup_id)
    except StartupNotFoundError:
        raise HTTPException(status_code=404, detail="Startup not found")
    return _tier_response(startup_id, validation)


@app.get("/api/startups/{startup_id}/metrics")
async def startup_metrics(startup_id: int, db: AsyncSession = Depends(get_db)):
    """Monthly revenue roll-up of a published startup with month-over-month MRR growth."""
    startup = await storage.get_startup(db, startup_id)
    if startup is None or not startup.is_published:
        raise HTTPException(status_code=404, detail="Startup not found")

    snapshots = await storage.get_snapshots(db, startup_id)
    points = [
        RevenueDataPoint(
            date=s.snapshot_date,
            revenue=s.revenue,
            mrr=s.mrr,
            customer_count=s.customer_count,
            currency=s.currency,
        )
        for s in snapshots
    ]
    months = aggregate_monthly_metrics(points)

    growth_rate = None
    if len(months) > 1 and months[-2]["mrr"]:
        growth_rate = round(calculate_growth_rate(months[-1]["mrr"], months[-2]["mrr"]), 2)

    return {"startup_id": startup_id, "months": months, "growth_rate": growth_rate}


# ----- Protected Endpoints -----

@app.post("/api/startups/{startup_id}/publish", response_model=TierResponse)
async def publish(
    startup_id: int,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    try:
        check = await publish_startup(db, startup_id)
    except StartupNotFoundError:
        raise HTTPException(status_code=404, detail="Startup not found")

    if not check.can_publish:
        raise HTTPException(
            status_code=400,
            detail={
                "error": check.reason,
                "validation": _tier_response(startup_id, check.validation).model_dump(),
            },
        )
    return _tier_response(startup_id, check.validation)


@app.get("/api/featured/suggestions")
async def feature_suggestions(
    limit: int = Query(default=10, ge=1, le=50),
    api_key: str = Depends(verify_api_key),
):
    suggestions = await get_feature_suggestions(limit=limit)
    return {"suggestions": [s.to_dict() for s in suggestions]}


def _raise_for_feature_error(error: Optional[str]) -> None:
    status = 404 if error == "Startup not found" else 400
    raise HTTPException(status_code=status, detail=error)


@app.post("/api/admin/featured/{startup_id}")
async def admin_feature(
    startup_id: int,
    body: Optional[FeatureRequest] = None,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    body = body or FeatureRequest()
    result = await feature_startup(db, startup_id, duration_days=body.duration_days)
    if not result.success:
        _raise_for_feature_error(result.error)
    return {"startup_id": startup_id, "featured_until": result.featured_until}


@app.delete("/api/admin/featured/{startup_id}")
async def admin_unfeature(
    startup_id: int,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    result = await unfeature_startup(db, startup_id)
    if not result.success:
        _raise_for_feature_error(result.error)
    return {"startup_id": startup_id, "status": "unfeatured"}


@app.patch("/api/admin/featured/{startup_id}")
async def admin_extend_featured(
    startup_id: int,
    body: Optional[ExtendRequest] = None,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    body = body or ExtendRequest()
    result = await extend_featured(db, startup_id, extension_days=body.extension_days)
    if not result.success:
        _raise_for_feature_error(result.error)
    return {
        "startup_id": startup_id,
        "featured_until": result.featured_until,
        "performance": result.performance,
    }


@app.post("/api/connections/{connection_id}/sync")
async def sync_connection(
    connection_id: int,
    scheduler: SchedulerManager = Depends(get_scheduler),
    api_key: str = Depends(verify_api_key),
):
    """Sync one connection now, through the shared dispatcher limits."""
    try:
        result = await scheduler.dispatcher.sync_one(connection_id)
    except EncryptionConfigError as e:
        logger.error(f"Sync of connection {connection_id} blocked: {e}")
        raise HTTPException(status_code=500, detail="Encryption is not configured")

    if result.error == "Connection not found":
        raise HTTPException(status_code=404, detail=result.error)
    return result.to_dict()


@app.post("/api/jobs/{job_name}")
async def run_job(
    job_name: str,
    force: bool = Query(default=False),
    scheduler: SchedulerManager = Depends(get_scheduler),
    api_key: str = Depends(verify_api_key),
) -> Dict[str, Any]:
    """Run a cadence job on demand (sync, leaderboard, milestones, rotation)."""
    if job_name not in scheduler.jobs:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_name}")
    kwargs = {"force": force} if job_name == "sync" else {}
    return await scheduler.run_job(job_name, **kwargs)
