#!/usr/bin/env python3
"""Run one Polymarket events sync from the command line."""

import asyncio
import logging
import sys
sys.path.insert(0, "backend")

from database import init_db, close_db
from jobs.scheduler import sync_events_job
from services.polymarket_client import PolymarketClient


async def main():
    logging.basicConfig(level=logging.INFO)
    await init_db()
    client = PolymarketClient()
    try:
        await sync_events_job(client)
    finally:
        await client.close()
        await close_db()
    print("Sync complete")


if __name__ == "__main__":
    asyncio.run(main())
