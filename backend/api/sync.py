"""Cron-triggered Polymarket sync endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from api.dependencies import CronGate, get_cron_gate, get_cron_secret, get_polymarket_client
from database import get_session_factory
from errors import AuthenticationError, NoEventsFoundError
from jobs.scheduler import SYNC_JOB_ID, track_job_run
from services.event_sync import EventSyncService
from services.polymarket_client import PolymarketClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/polymarket")
async def sync_polymarket_events(
    authorization: Optional[str] = Header(None),
    gate: CronGate = Depends(get_cron_gate),
    secret: Optional[str] = Depends(get_cron_secret),
    client: PolymarketClient = Depends(get_polymarket_client),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Pull the full active events catalog from Gamma and upsert it.

    Responses: 200 with the number of events processed, 401 when the gate
    rejects the caller, 502 when upstream returned no events, 500 otherwise.
    """
    if not gate(authorization, secret):
        error = AuthenticationError()
        return JSONResponse({"error": error.message}, status_code=error.status_code)

    logger.info("Starting Polymarket events sync...")
    try:
        async with track_job_run(SYNC_JOB_ID, session_factory, trigger="cron") as run:
            run.records_processed = await EventSyncService(client, session_factory).sync()
    except NoEventsFoundError as e:
        logger.warning(str(e))
        return JSONResponse({"error": e.message}, status_code=502)
    except Exception as e:
        logger.exception(f"Polymarket events sync failed: {e}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    return {"status": "Success", "totalEvents": run.records_processed}
