"""Shared FastAPI dependencies.

Process-wide resources (the Polymarket HTTP client) are created in the
application lifespan and stored on app.state; these helpers hand them to
request handlers so that tests can swap them via app.dependency_overrides.
"""

import asyncio
import hmac
from typing import AsyncGenerator, Callable, Optional

from fastapi import Depends, Header, Request

from config import settings
from services.polymarket_client import PolymarketClient
from services.price_oracle import PriceOracle

CronGate = Callable[[Optional[str], Optional[str]], bool]

# How often a request is checked for a client disconnect
DISCONNECT_POLL_SECONDS = 0.1


def is_cron_authorized(authorization: Optional[str], secret: Optional[str]) -> bool:
    """Accept "Bearer <secret>" when a secret is configured."""
    if not secret or not authorization:
        return False
    expected = f"Bearer {secret}"
    return hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8"))


def get_cron_gate() -> CronGate:
    return is_cron_authorized


def get_polymarket_client(request: Request) -> PolymarketClient:
    client = getattr(request.app.state, "polymarket_client", None)
    if client is None:
        client = PolymarketClient()
        request.app.state.polymarket_client = client
    return client


def get_price_oracle(
    client: PolymarketClient = Depends(get_polymarket_client),
) -> PriceOracle:
    return PriceOracle(client)


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[str]:
    """Current user id as resolved by the session layer in front of this service."""
    return x_user_id or None


def get_cron_secret() -> Optional[str]:
    return settings.cron_secret


async def watch_disconnect(
    request: Request,
    cancel_event: asyncio.Event,
    interval: float = DISCONNECT_POLL_SECONDS,
) -> None:
    """Set cancel_event once the client has gone away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            cancel_event.set()
            return
        await asyncio.sleep(interval)


async def get_request_cancel_event(request: Request) -> AsyncGenerator[asyncio.Event, None]:
    """An event that is set when the caller disconnects mid-request.

    Handed to the price oracle so an abandoned listing stops issuing
    CLOB requests and falls back to default prices.
    """
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel_event))
    try:
        yield cancel_event
    finally:
        watcher.cancel()
