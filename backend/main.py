"""FastAPI application entry point."""

import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from config import settings
from database import init_db, close_db


class JSONFormatter(logging.Formatter):
    """JSON log formatter for Railway compatibility.

    Records emitted by SyncObserver carry `checkpoint` and `fields`
    attributes, which are added to the JSON document.
    """

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        checkpoint = getattr(record, "checkpoint", None)
        if checkpoint:
            log_entry["checkpoint"] = checkpoint
            log_entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


# Configure logging - use JSON in production (Railway), plain text locally
log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
handler = logging.StreamHandler()

if os.environ.get("RAILWAY_ENVIRONMENT"):
    handler.setFormatter(JSONFormatter())
else:
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))

logging.basicConfig(level=log_level, handlers=[handler])
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting Prediction Market Events service...")

    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    # One HTTP client per process, shared by the sync and pricing paths
    from services.polymarket_client import PolymarketClient
    app.state.polymarket_client = PolymarketClient()

    # Use ENABLE_SCHEDULER=false to disable in multi-process deployments
    if settings.enable_scheduler:
        try:
            from jobs.scheduler import start_scheduler
            await start_scheduler(app.state.polymarket_client)
            logger.info("Scheduler started")
        except Exception as e:
            logger.warning(f"Scheduler not started: {e}")
    else:
        logger.info("Scheduler disabled via ENABLE_SCHEDULER=false")

    logger.info("Startup complete")
    yield

    logger.info("Shutting down...")
    if settings.enable_scheduler:
        from jobs.scheduler import stop_scheduler
        await stop_scheduler()
    await app.state.polymarket_client.close()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Prediction Market Events",
    description="Polymarket event catalog sync and live-priced event listings",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/api/health")
async def health_check():
    """Health check endpoint with catalog freshness verification."""
    from database import async_session_maker
    from sqlalchemy import select, func
    from models.event import PolymarketEvent

    result = {"status": "healthy", "service": "predmarket-events"}

    try:
        async with async_session_maker() as session:
            latest = (
                await session.execute(select(func.max(PolymarketEvent.updated_at)))
            ).scalar()

        age = (datetime.utcnow() - latest).total_seconds() / 60 if latest else None
        result["catalog_age_minutes"] = round(age, 1) if age is not None else None
    except Exception:
        # If DB query fails, still return basic health (server is running)
        result["status"] = "degraded"
        result["note"] = "Could not check catalog freshness"

    return result


@app.get("/api/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Prediction Market Events API",
        "version": "1.0.0",
        "features": [
            "Polymarket events catalog sync",
            "Event listings with live CLOB prices",
            "Last trade price lookup",
        ],
    }


# Include API routers
from api import events, sync, prices, system

app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(prices.router, prefix="/api/prices", tags=["Prices"])
app.include_router(system.router, prefix="/api/system", tags=["System"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
