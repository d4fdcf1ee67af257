"""Assemble the event/market/outcome view models served by /api/events.

build_event_view() is a pure function of the stored rows, the price map
and the clock, so the listing endpoint and tests can reason about derived
fields (mid price, probability, trending) without touching the network.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel

from config import settings
from services.price_oracle import FALLBACK_PRICES, OutcomePrices

OUTCOME_INDEX_YES = 0

DEFAULT_MAIN_TAG = "World"


class OutcomeView(BaseModel):
    token_id: str
    condition_id: str
    outcome_text: str
    outcome_index: int = 0
    is_winning_outcome: bool = False
    buy_price: float
    sell_price: float
    created_at: str
    updated_at: str


class MarketView(BaseModel):
    id: str
    event_id: str
    condition_id: str
    question_id: str
    slug: str
    title: Optional[str] = None
    question: Optional[str] = None
    description: Optional[str] = None
    resolution_source: Optional[str] = None
    icon_url: Optional[str] = None
    neg_risk: bool = False
    neg_risk_other: bool = False
    neg_risk_market_id: Optional[str] = None
    neg_risk_request_id: Optional[str] = None
    is_active: bool = False
    is_closed: bool = False
    is_resolved: bool = False
    probability: float
    price: float
    volume: float = 0.0
    volume_24h: float = 0.0
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    created_at: str
    updated_at: str
    outcomes: List[OutcomeView] = []


class EventView(BaseModel):
    """Event as rendered by the front end. Integer ids are sent as strings."""

    id: str
    slug: str
    title: str
    creator: str = ""
    icon_url: Optional[str] = None
    show_market_icons: bool = True
    enable_neg_risk: bool = False
    neg_risk_augmented: bool = False
    neg_risk: bool = False
    neg_risk_market_id: Optional[str] = None
    status: str
    rules: Optional[str] = None
    active_markets_count: int = 0
    total_markets_count: int = 0
    created_at: str
    updated_at: str
    end_date: Optional[str] = None
    resolved_at: Optional[str] = None
    volume: float = 0.0
    markets: List[MarketView] = []
    tags: List[str] = []
    main_tag: str = DEFAULT_MAIN_TAG
    is_bookmarked: bool = False
    is_trending: bool = False


@dataclass
class MarketRows:
    """A stored market together with the outcomes sharing its condition_id."""

    market: object
    outcomes: List[object] = field(default_factory=list)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-01-02T03:04:05.678Z.

    Naive datetimes are taken to be UTC, which is how they are stored.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _number(value) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def build_outcome_view(outcome, price_map: Dict[str, OutcomePrices], now: datetime) -> OutcomeView:
    prices = price_map.get(outcome.token_id) if outcome.token_id else None
    prices = prices or FALLBACK_PRICES
    return OutcomeView(
        token_id=outcome.token_id,
        condition_id=outcome.condition_id,
        outcome_text=outcome.outcome_text,
        outcome_index=int(outcome.outcome_index or 0),
        is_winning_outcome=bool(outcome.is_winning_outcome),
        buy_price=prices.buy,
        sell_price=prices.sell,
        created_at=format_timestamp(outcome.created_at or now),
        updated_at=format_timestamp(outcome.updated_at or now),
    )


def primary_outcome(outcomes: List[OutcomeView]) -> Optional[OutcomeView]:
    """The YES outcome, or the first one when no outcome carries the YES index."""
    for outcome in outcomes:
        if outcome.outcome_index == OUTCOME_INDEX_YES:
            return outcome
    return outcomes[0] if outcomes else None


def build_market_view(rows: MarketRows, price_map: Dict[str, OutcomePrices], now: datetime) -> MarketView:
    market = rows.market
    outcomes = [build_outcome_view(o, price_map, now) for o in rows.outcomes]

    primary = primary_outcome(outcomes)
    buy = primary.buy_price if primary else FALLBACK_PRICES.buy
    sell = primary.sell_price if primary else buy
    mid = (buy + sell) / 2

    return MarketView(
        id=str(market.id),
        event_id=str(market.event_id),
        condition_id=market.condition_id or "",
        question_id=market.condition_id or "",
        slug=market.slug or "",
        title=market.short_title or market.title,
        question=market.question,
        description=market.description,
        resolution_source=market.resolution_source,
        icon_url=market.icon_url,
        neg_risk=bool(market.neg_risk),
        neg_risk_other=bool(market.neg_risk_other),
        neg_risk_market_id=market.neg_risk_market_id,
        neg_risk_request_id=market.neg_risk_request_id,
        is_active=bool(market.is_active),
        is_closed=bool(market.is_closed),
        is_resolved=bool(market.is_closed),
        probability=mid * 100,
        price=mid,
        volume=_number(market.volume),
        volume_24h=_number(market.volume_24h),
        start_time=format_timestamp(market.start_time),
        end_time=format_timestamp(market.end_time),
        created_at=format_timestamp(market.created_at or now),
        updated_at=format_timestamp(market.updated_at or now),
        outcomes=outcomes,
    )


def is_trending(markets: List[MarketView], updated_at: Optional[datetime], now: datetime) -> bool:
    """Trending means any 24h volume, or an update within the trending window."""
    recent_volume = sum(m.volume_24h for m in markets)
    if recent_volume > 0:
        return True
    if updated_at is None:
        return False
    return now - updated_at < timedelta(days=settings.trending_window_days)


def build_event_view(
    event,
    markets: List[MarketRows],
    price_map: Dict[str, OutcomePrices],
    now: Optional[datetime] = None,
    is_bookmarked: bool = False,
) -> EventView:
    """Assemble one EventView from stored rows and live prices."""
    now = now or datetime.utcnow()
    market_views = [build_market_view(rows, price_map, now) for rows in markets]

    return EventView(
        id=str(event.id or ""),
        slug=event.slug or "",
        title=event.title or "",
        icon_url=event.icon_url,
        show_market_icons=event.show_market_icons if event.show_market_icons is not None else True,
        enable_neg_risk=bool(event.enable_neg_risk),
        neg_risk_augmented=bool(event.neg_risk_augmented),
        neg_risk=bool(event.neg_risk),
        neg_risk_market_id=event.neg_risk_market_id or None,
        status=event.status or "active",
        rules=event.rules or None,
        active_markets_count=int(event.active_markets_count or 0),
        total_markets_count=int(event.total_markets_count or 0),
        created_at=format_timestamp(event.created_at or now),
        updated_at=format_timestamp(event.updated_at or now),
        end_date=format_timestamp(event.end_date),
        volume=sum(m.volume for m in market_views),
        markets=market_views,
        is_bookmarked=is_bookmarked,
        is_trending=is_trending(market_views, event.updated_at, now),
    )
