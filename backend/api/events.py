"""Event listing API endpoints."""

import asyncio
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_current_user_id, get_price_oracle, get_request_cancel_event
from database import get_db
from errors import InvalidFilterError
from services.event_reader import DEFAULT_ERROR_MESSAGE, EventFilters, EventReadService
from services.price_oracle import PriceOracle

logger = logging.getLogger(__name__)

router = APIRouter()

LISTABLE_STATUSES = ("active", "resolved")

LEADING_INTEGER = re.compile(r"\s*([+-]?\d+)")


def parse_offset(value: Optional[str]) -> int:
    """Parse the leading integer of the offset parameter ("12abc" is 12).

    No leading digits gives 0; negatives clamp to 0.
    """
    match = LEADING_INTEGER.match(value or "")
    if not match:
        return 0
    return max(0, int(match.group(1)))


def validate_status(status: Optional[str]) -> str:
    status = status or "active"
    if status not in LISTABLE_STATUSES:
        raise InvalidFilterError("Invalid status filter.", field="status", value=status)
    return status


@router.get("")
async def list_events(
    tag: Optional[str] = Query(None, description="Tag slug, or 'trending' / 'new'"),
    search: Optional[str] = Query(None, description="Whitespace-separated title search terms"),
    bookmarked: Optional[str] = Query(None, description="'true' to list bookmarked events only"),
    status: Optional[str] = Query(None, description="'active' or 'resolved'"),
    offset: Optional[str] = Query(None, description="Pagination offset"),
    user_id: Optional[str] = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db),
    price_oracle: PriceOracle = Depends(get_price_oracle),
    cancel_event: asyncio.Event = Depends(get_request_cancel_event),
):
    """List events with their markets, outcomes and live prices.

    Returns a JSON array of events, 40 per page, newest first.
    """
    try:
        status = validate_status(status)
    except InvalidFilterError as e:
        return JSONResponse({"error": e.message}, status_code=400)

    filters = EventFilters(
        tag=tag or "trending",
        search=search or "",
        user_id=user_id,
        bookmarked=bookmarked == "true",
        status=status,
        offset=parse_offset(offset),
    )

    service = EventReadService(session, price_oracle)
    result = await service.list_events(filters, cancel_event=cancel_event)
    if result.error:
        return JSONResponse({"error": DEFAULT_ERROR_MESSAGE}, status_code=500)

    logger.info(f"Polymarket events count: {len(result.data)}")
    return [event.model_dump() for event in result.data]
