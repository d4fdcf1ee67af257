"""Read path for the events listing.

Loads a page of events, joins their markets and outcomes in memory,
prices every outcome with a single oracle call and assembles EventViews.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.bookmark import Bookmark
from models.event import PolymarketEvent
from models.event_tag import PolymarketEventTag
from models.market import PolymarketMarket
from models.outcome import PolymarketOutcome
from models.tag import Tag
from services.event_view import EventView, MarketRows, build_event_view
from services.price_oracle import PriceOracle

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Internal server error"

# Tags that select an ordering in the UI rather than filtering by category
SENTINEL_TAGS = ("trending", "new")


@dataclass
class EventFilters:
    tag: str = "trending"
    search: str = ""
    user_id: Optional[str] = None
    bookmarked: bool = False
    status: str = "active"
    offset: int = 0


@dataclass
class QueryResult:
    """Outcome of a read: data on success, a generic error message otherwise."""

    data: List[EventView] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def search_terms(search: str) -> List[str]:
    return [term for term in (search or "").strip().lower().split() if term]


def build_event_conditions(filters: EventFilters) -> list:
    """WHERE clauses for the events query."""
    conditions = [PolymarketEvent.status == filters.status]

    # Every term must appear in the title, case-insensitively
    for term in search_terms(filters.search):
        conditions.append(PolymarketEvent.title.icontains(term, autoescape=True))

    if filters.tag and filters.tag not in SENTINEL_TAGS:
        conditions.append(
            select(PolymarketEventTag.event_id)
            .join(Tag, PolymarketEventTag.tag_id == Tag.id)
            .where(
                PolymarketEventTag.event_id == PolymarketEvent.id,
                Tag.slug == filters.tag,
            )
            .exists()
        )

    if filters.bookmarked and filters.user_id:
        conditions.append(
            select(Bookmark.event_id)
            .where(
                Bookmark.event_id == PolymarketEvent.id,
                Bookmark.user_id == filters.user_id,
            )
            .exists()
        )

    return conditions


class EventReadService:
    """Lists events with their markets, outcomes and live prices."""

    def __init__(
        self,
        session: AsyncSession,
        price_oracle: PriceOracle,
        page_size: Optional[int] = None,
    ):
        self.session = session
        self.price_oracle = price_oracle
        self.page_size = page_size or settings.events_page_size

    async def list_events(
        self,
        filters: EventFilters,
        cancel_event: Optional[asyncio.Event] = None,
        now: Optional[datetime] = None,
    ) -> QueryResult:
        """Return one page of enriched events. Never raises."""
        try:
            events = await self._list_events(filters, cancel_event, now)
        except Exception as e:
            logger.exception(f"Failed to list events: {e}")
            return QueryResult(data=[], error=DEFAULT_ERROR_MESSAGE)
        return QueryResult(data=events, error=None)

    async def fetch_events(self, filters: EventFilters) -> List[PolymarketEvent]:
        offset = filters.offset if filters.offset and filters.offset > 0 else 0
        result = await self.session.execute(
            select(PolymarketEvent)
            .where(and_(*build_event_conditions(filters)))
            .order_by(PolymarketEvent.created_at.desc(), PolymarketEvent.id.desc())
            .limit(self.page_size)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def fetch_markets(self, event_ids: List[int]) -> List[PolymarketMarket]:
        """Markets of the given events that can be matched to outcomes."""
        result = await self.session.execute(
            select(PolymarketMarket)
            .where(
                PolymarketMarket.event_id.in_(event_ids),
                PolymarketMarket.condition_id.is_not(None),
                PolymarketMarket.condition_id != "",
            )
            .order_by(PolymarketMarket.id)
        )
        return list(result.scalars().all())

    async def fetch_outcomes(self, condition_ids: List[str]) -> List[PolymarketOutcome]:
        if not condition_ids:
            return []
        result = await self.session.execute(
            select(PolymarketOutcome)
            .where(PolymarketOutcome.condition_id.in_(condition_ids))
            .order_by(PolymarketOutcome.outcome_index, PolymarketOutcome.token_id)
        )
        return list(result.scalars().all())

    async def fetch_bookmarked_ids(self, user_id: Optional[str], event_ids: List[int]) -> Set[int]:
        if not user_id or not event_ids:
            return set()
        result = await self.session.execute(
            select(Bookmark.event_id).where(
                Bookmark.user_id == user_id,
                Bookmark.event_id.in_(event_ids),
            )
        )
        return {row[0] for row in result}

    async def _list_events(
        self,
        filters: EventFilters,
        cancel_event: Optional[asyncio.Event],
        now: Optional[datetime],
    ) -> List[EventView]:
        events = await self.fetch_events(filters)
        if not events:
            return []
        logger.debug(f"Fetched events: {len(events)}")

        event_ids = [event.id for event in events]
        markets = await self.fetch_markets(event_ids)

        condition_ids = sorted({m.condition_id for m in markets if m.condition_id})
        outcomes = await self.fetch_outcomes(condition_ids)
        logger.debug(f"Fetched markets: {len(markets)}, outcomes: {len(outcomes)}")

        # condition_id is a join key, not a foreign key: index outcomes by it here
        outcomes_by_condition: Dict[str, List[PolymarketOutcome]] = defaultdict(list)
        for outcome in outcomes:
            outcomes_by_condition[outcome.condition_id].append(outcome)

        markets_by_event: Dict[int, List[MarketRows]] = defaultdict(list)
        for market in markets:
            markets_by_event[market.event_id].append(
                MarketRows(market=market, outcomes=outcomes_by_condition.get(market.condition_id, []))
            )

        # Events without a priceable market are not listed at all
        events = [event for event in events if markets_by_event.get(event.id)]
        if not events:
            return []

        token_ids = [
            outcome.token_id
            for event in events
            for rows in markets_by_event[event.id]
            for outcome in rows.outcomes
            if outcome.token_id
        ]
        logger.debug(f"Fetching prices for tokens: {len(token_ids)}")
        price_map = await self.price_oracle.fetch_outcome_prices(token_ids, cancel_event=cancel_event)

        bookmarked_ids = await self.fetch_bookmarked_ids(filters.user_id, [e.id for e in events])

        return [
            build_event_view(
                event,
                markets_by_event[event.id],
                price_map,
                now=now,
                is_bookmarked=event.id in bookmarked_ids,
            )
            for event in events
        ]
