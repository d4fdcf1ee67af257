"""APScheduler setup for the in-process Polymarket events sync."""

import logging
import uuid
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.date import DateTrigger
from contextlib import asynccontextmanager

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from config import settings

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_polymarket_events"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


class JobRunHandle:
    """Yielded by track_job_run; lets the job report how much it processed."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.records_processed: Optional[int] = None


@asynccontextmanager
async def track_job_run(
    job_id: str,
    session_factory: Optional[async_sessionmaker] = None,
    trigger: str = "scheduler",
):
    """Record a job execution in job_runs.

    Creates a "running" row on entry and marks it success or failed on exit.
    Failures are re-raised after being recorded.

    Usage:
        async with track_job_run("sync_polymarket_events") as run:
            run.records_processed = await service.sync()
    """
    from models.job_run import JobRun

    if session_factory is None:
        from database import async_session_maker
        session_factory = async_session_maker

    handle = JobRunHandle(str(uuid.uuid4()))
    job_run = JobRun(job_id=job_id, run_id=handle.run_id, trigger=trigger)

    async with session_factory() as session:
        session.add(job_run)
        await session.commit()
        await session.refresh(job_run)

    logger.info(f"[{handle.run_id[:8]}] Starting {job_id}")
    try:
        yield handle
    except Exception as e:
        try:
            async with session_factory() as session:
                result = await session.execute(select(JobRun).where(JobRun.id == job_run.id))
                result.scalar_one().mark_failed(str(e))
                await session.commit()
        except Exception as db_err:
            logger.error(f"Failed to record job failure: {db_err}")

        logger.error(f"[{handle.run_id[:8]}] Failed {job_id}: {e}")
        raise

    async with session_factory() as session:
        result = await session.execute(select(JobRun).where(JobRun.id == job_run.id))
        result.scalar_one().mark_success(handle.records_processed)
        await session.commit()

    logger.info(f"[{handle.run_id[:8]}] Completed {job_id} ({handle.records_processed} records)")


async def sync_events_job(client, session_factory: Optional[async_sessionmaker] = None):
    """Job: page through the Gamma events catalog and upsert it.

    client is the process-wide PolymarketClient; it is left open.
    """
    from services.event_sync import EventSyncService

    if session_factory is None:
        from database import async_session_maker
        session_factory = async_session_maker

    async with track_job_run(SYNC_JOB_ID, session_factory) as run:
        service = EventSyncService(client, session_factory)
        run.records_processed = await service.sync()


async def start_scheduler(client):
    """Initialize and start the scheduler.

    Both jobs run with the shared PolymarketClient created at startup.
    """
    global scheduler

    scheduler = AsyncIOScheduler()

    interval = settings.sync_interval_minutes

    scheduler.add_job(
        sync_events_job,
        IntervalTrigger(minutes=interval),
        args=[client],
        id=SYNC_JOB_ID,
        name="Sync Polymarket events from Gamma API",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started with {interval} minute interval")

    # Initial sync shortly after startup so the healthcheck is not blocked
    scheduler.add_job(
        sync_events_job,
        DateTrigger(run_date=datetime.now() + timedelta(seconds=5)),
        args=[client],
        id="initial_events_sync",
        name="Initial Polymarket events sync",
        replace_existing=True,
    )


async def stop_scheduler():
    """Stop the scheduler."""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler stopped")
