"""Live outcome prices from the Polymarket CLOB.

Quotes are requested in bulk, 500 tokens per request. A failed batch is
retried token by token so one bad id cannot blank out a whole page of
prices, and anything still unpriced at the end gets the neutral 0.5/0.5
quote. The read path never fails because of pricing.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

import httpx

from config import settings
from errors import PriceFetchAborted
from services.polymarket_client import PolymarketClient
from services.sync_observer import SyncObserver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutcomePrices:
    """Best buy/sell quote for one outcome token."""

    buy: float
    sell: float

    @property
    def mid(self) -> float:
        return (self.buy + self.sell) / 2


FALLBACK_PRICES = OutcomePrices(buy=settings.fallback_price, sell=settings.fallback_price)


def parse_finite(value) -> Optional[float]:
    """Parse a numeric string, returning None unless it is a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def normalize_trade_price(value) -> Optional[float]:
    """Clamp a last-trade price into [0, 1]; None if it is not a number."""
    if value is None or value == "":
        return None
    parsed = parse_finite(value)
    if parsed is None:
        return None
    if parsed < 0:
        return 0.0
    if parsed > 1:
        return 1.0
    return parsed


def unique_token_ids(token_ids: Iterable[str]) -> List[str]:
    """Drop empty ids and duplicates, keeping first-seen order."""
    seen: Set[str] = set()
    unique = []
    for token_id in token_ids:
        if token_id and token_id not in seen:
            seen.add(token_id)
            unique.append(token_id)
    return unique


def apply_price_batch(
    data: Optional[dict],
    price_map: Dict[str, OutcomePrices],
    missing: Set[str],
) -> None:
    """Merge one /prices reply into price_map.

    The CLOB reports the side of the book a quote sits on, which is the
    opposite of what a user pays: the SELL quote is our buy price and the
    BUY quote is our sell price. A token quoted on one side only gets that
    value for both.
    """
    if not data:
        return

    for token_id, price_by_side in data.items():
        if not isinstance(price_by_side, dict):
            continue

        bid = parse_finite(price_by_side.get("BUY"))
        ask = parse_finite(price_by_side.get("SELL"))
        if bid is None and ask is None:
            continue

        price_map[token_id] = OutcomePrices(
            buy=ask if ask is not None else bid,
            sell=bid if bid is not None else ask,
        )
        missing.discard(token_id)


class PriceOracle:
    """Fetches outcome quotes and last trade prices for token ids."""

    def __init__(
        self,
        client: PolymarketClient,
        batch_size: Optional[int] = None,
        observer: Optional[SyncObserver] = None,
    ):
        self.client = client
        self.batch_size = batch_size or settings.price_batch_size
        self.observer = observer or SyncObserver(logger)

    async def _fetch_price_batch(
        self,
        token_ids: List[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Tuple[Optional[dict], bool]:
        """Request quotes for token_ids.

        Returns (data, aborted). data is None when the request failed;
        aborted is True when the caller cancelled and no further requests
        should be made.
        """
        if cancel_event is not None and cancel_event.is_set():
            return None, True

        try:
            data = await self.client.get_prices(token_ids)
        except PriceFetchAborted:
            return None, True
        except (httpx.HTTPError, ValueError) as e:
            self.observer.price_batch_failed(len(token_ids), e)
            return None, False

        if not isinstance(data, dict):
            logger.warning(f"Unexpected /prices payload type {type(data).__name__}, ignoring")
            return {}, False
        return data, False

    async def fetch_outcome_prices(
        self,
        token_ids: Iterable[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, OutcomePrices]:
        """Return a quote for every distinct token id in token_ids.

        Batches run one after another. When a batch fails, its tokens are
        retried individually and concurrently. Setting cancel_event (or a
        transport raising PriceFetchAborted) stops further requests; every
        token without a quote at that point gets FALLBACK_PRICES.
        """
        unique_ids = unique_token_ids(token_ids)
        if not unique_ids:
            return {}

        price_map: Dict[str, OutcomePrices] = {}
        missing = set(unique_ids)
        aborted = False
        hits_before = self.client.rate_limit_hits
        requests_before = self.client._request_count

        for start in range(0, len(unique_ids), self.batch_size):
            batch = unique_ids[start:start + self.batch_size]
            data, aborted = await self._fetch_price_batch(batch, cancel_event)
            if aborted:
                break

            if data is not None:
                apply_price_batch(data, price_map, missing)
                continue

            results = await asyncio.gather(
                *(self._fetch_price_batch([token_id], cancel_event) for token_id in batch),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    continue
                token_data, aborted = result
                if aborted:
                    break
                apply_price_batch(token_data, price_map, missing)

            if aborted:
                break

        hits = self.client.rate_limit_hits - hits_before
        if hits > 0:
            requests = self.client._request_count - requests_before
            logger.warning(
                f"Hit rate limits {hits} times while fetching prices "
                f"({hits}/{requests} requests = {hits / max(requests, 1) * 100:.0f}%)"
            )

        if aborted:
            self.observer.price_fetch_aborted(len(missing))

        for token_id in missing:
            price_map[token_id] = FALLBACK_PRICES

        return price_map

    async def fetch_last_trade_prices(self, token_ids: Iterable[str]) -> Dict[str, float]:
        """Return the last traded price per token, clamped into [0, 1].

        Tokens that have no parseable trade price are simply absent.
        """
        unique_ids = unique_token_ids(token_ids)
        if not unique_ids:
            return {}

        last_trades: Dict[str, float] = {}
        try:
            payload = await self.client.get_last_trade_prices(unique_ids)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch last trades prices: {e}")
            return last_trades

        if not isinstance(payload, list):
            logger.warning("Unexpected /last-trades-prices payload, expected a list")
            return last_trades

        for entry in payload:
            if not isinstance(entry, dict):
                continue
            token_id = entry.get("token_id")
            price = normalize_trade_price(entry.get("price"))
            if token_id and price is not None:
                last_trades[token_id] = price

        return last_trades
