"""System status and observability API.

Reports the last sync runs, how fresh the stored catalog is and, on
request, row counts. Protected by the ENABLE_SYSTEM_STATUS env var.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.event import PolymarketEvent
from models.job_run import JobRun
from models.market import PolymarketMarket
from models.outcome import PolymarketOutcome

router = APIRouter()


class JobStatus(BaseModel):
    """Status of a single job type."""

    id: str
    last_run: Optional[datetime] = None
    last_status: Optional[str] = None  # "running", "success", "failed"
    run_id: Optional[str] = None
    records_processed: Optional[int] = None
    error_message: Optional[str] = None


class SchedulerStatus(BaseModel):
    enabled: bool
    jobs: List[JobStatus]


class DataFreshness(BaseModel):
    last_event_update: Optional[datetime] = None
    last_sync: Optional[datetime] = None


class DataCounts(BaseModel):
    """Optional data counts (expensive queries)."""

    events_active: int = 0
    markets: int = 0
    outcomes: int = 0


class SystemStatusResponse(BaseModel):
    status: str  # "healthy", "degraded", "unhealthy"
    timestamp: datetime
    scheduler: SchedulerStatus
    data_freshness: DataFreshness
    counts: Optional[DataCounts] = None


TRACKED_JOBS = [
    "sync_polymarket_events",
]


async def get_job_statuses(session: AsyncSession) -> List[JobStatus]:
    """Latest run per tracked job, via a max(started_at) subquery."""
    subq = (
        select(JobRun.job_id, func.max(JobRun.started_at).label("max_started"))
        .where(JobRun.job_id.in_(TRACKED_JOBS))
        .group_by(JobRun.job_id)
        .subquery()
    )

    result = await session.execute(
        select(JobRun).join(
            subq,
            and_(
                JobRun.job_id == subq.c.job_id,
                JobRun.started_at == subq.c.max_started,
            ),
        )
    )
    job_runs = {jr.job_id: jr for jr in result.scalars().all()}

    statuses = []
    for job_id in TRACKED_JOBS:
        jr = job_runs.get(job_id)
        if jr:
            statuses.append(
                JobStatus(
                    id=job_id,
                    last_run=jr.started_at,
                    last_status=jr.status,
                    run_id=jr.run_id,
                    records_processed=jr.records_processed,
                    error_message=jr.error_message if jr.status == "failed" else None,
                )
            )
        else:
            statuses.append(JobStatus(id=job_id))

    return statuses


async def get_data_freshness(
    session: AsyncSession, job_statuses: List[JobStatus]
) -> DataFreshness:
    result = await session.execute(select(func.max(PolymarketEvent.updated_at)))
    last_event_update = result.scalar()

    sync_job = next((j for j in job_statuses if j.id == "sync_polymarket_events"), None)
    last_sync = sync_job.last_run if sync_job and sync_job.last_status == "success" else None

    return DataFreshness(last_event_update=last_event_update, last_sync=last_sync)


async def get_data_counts(session: AsyncSession) -> DataCounts:
    events_result = await session.execute(
        select(func.count()).select_from(PolymarketEvent).where(PolymarketEvent.status == "active")
    )
    markets_result = await session.execute(select(func.count()).select_from(PolymarketMarket))
    outcomes_result = await session.execute(select(func.count()).select_from(PolymarketOutcome))

    return DataCounts(
        events_active=events_result.scalar() or 0,
        markets=markets_result.scalar() or 0,
        outcomes=outcomes_result.scalar() or 0,
    )


def determine_health_status(
    job_statuses: List[JobStatus],
    data_freshness: DataFreshness,
    now: Optional[datetime] = None,
) -> str:
    """Classify overall health.

    "unhealthy" when the last sync failed or nothing has synced for 6 hours,
    "degraded" when a sync is running or the last success is over 1 hour
    old, "healthy" otherwise.
    """
    now = now or datetime.utcnow()

    failed_jobs = [j for j in job_statuses if j.last_status == "failed"]
    running_jobs = [j for j in job_statuses if j.last_status == "running"]

    stale_threshold = timedelta(hours=1)
    critical_threshold = timedelta(hours=6)

    sync_stale = False
    sync_critical = False
    if data_freshness.last_sync:
        sync_age = now - data_freshness.last_sync
        sync_stale = sync_age > stale_threshold
        sync_critical = sync_age > critical_threshold

    if failed_jobs or sync_critical:
        return "unhealthy"
    elif sync_stale or running_jobs:
        return "degraded"
    else:
        return "healthy"


@router.get("/status", response_model=SystemStatusResponse)
async def get_system_status(
    include_counts: bool = Query(
        False, description="Include data counts (more expensive queries)"
    ),
    session: AsyncSession = Depends(get_db),
):
    """Scheduler health, last sync run and catalog freshness."""
    if not settings.enable_system_status:
        raise HTTPException(
            status_code=404,
            detail="System status endpoint is disabled",
        )

    job_statuses = await get_job_statuses(session)
    data_freshness = await get_data_freshness(session, job_statuses)
    health_status = determine_health_status(job_statuses, data_freshness)

    response = SystemStatusResponse(
        status=health_status,
        timestamp=datetime.now(timezone.utc),
        scheduler=SchedulerStatus(
            enabled=settings.enable_scheduler,
            jobs=job_statuses,
        ),
        data_freshness=data_freshness,
        counts=None,
    )

    if include_counts:
        response.counts = await get_data_counts(session)

    return response
