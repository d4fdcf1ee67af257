"""Tests for CLOB price fetching, batching and fallbacks."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from errors import PriceFetchAborted
from services.price_oracle import (
    FALLBACK_PRICES,
    OutcomePrices,
    PriceOracle,
    normalize_trade_price,
    unique_token_ids,
)


def requested_tokens(request):
    return [item["token_id"] for item in json.loads(request.content)]


def quote_all(bid="0.40", ask="0.42"):
    """/prices reply quoting every requested token."""

    def reply(request):
        return {token_id: {"BUY": bid, "SELL": ask} for token_id in requested_tokens(request)}

    return reply


class TestHelpers:
    def test_mid(self):
        assert OutcomePrices(buy=0.6, sell=0.4).mid == 0.5

    def test_unique_token_ids_keeps_order(self):
        assert unique_token_ids(["b", "a", "", "b", None, "c"]) == ["b", "a", "c"]

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("-0.1", 0.0),
            ("1.5", 1.0),
            ("0.37", 0.37),
            (0.5, 0.5),
            ("abc", None),
            ("", None),
            (None, None),
            ("inf", None),
        ],
    )
    def test_normalize_trade_price(self, raw, expected):
        assert normalize_trade_price(raw) == expected


class TestFetchOutcomePrices:
    """Tests for PriceOracle.fetch_outcome_prices()."""

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self, upstream, polymarket_client):
        oracle = PriceOracle(polymarket_client)

        assert await oracle.fetch_outcome_prices([]) == {}
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_batches_of_500(self, upstream, polymarket_client):
        upstream.routes["/prices"] = quote_all()
        token_ids = [f"tok-{i}" for i in range(1001)]

        prices = await PriceOracle(polymarket_client, batch_size=500).fetch_outcome_prices(token_ids)

        batches = [requested_tokens(r) for r in upstream.requests_to("/prices")]
        assert [len(b) for b in batches] == [500, 500, 1]
        assert len(prices) == 1001

    @pytest.mark.asyncio
    async def test_duplicates_requested_once(self, upstream, polymarket_client):
        upstream.routes["/prices"] = quote_all()

        prices = await PriceOracle(polymarket_client).fetch_outcome_prices(["a", "b", "a", ""])

        assert requested_tokens(upstream.requests_to("/prices")[0]) == ["a", "b"]
        assert set(prices) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_book_sides_are_inverted(self, upstream, polymarket_client):
        upstream.routes["/prices"] = {"t1": {"BUY": "0.40", "SELL": "0.42"}}

        prices = await PriceOracle(polymarket_client).fetch_outcome_prices(["t1"])

        # SELL side is what a user pays to buy, BUY side what they receive to sell
        assert prices["t1"] == OutcomePrices(buy=0.42, sell=0.40)

    @pytest.mark.asyncio
    async def test_single_sided_quote_used_for_both(self, upstream, polymarket_client):
        upstream.routes["/prices"] = {
            "bid-only": {"BUY": "0.30"},
            "ask-only": {"SELL": "0.70"},
        }

        prices = await PriceOracle(polymarket_client).fetch_outcome_prices(["bid-only", "ask-only"])

        assert prices["bid-only"] == OutcomePrices(buy=0.30, sell=0.30)
        assert prices["ask-only"] == OutcomePrices(buy=0.70, sell=0.70)

    @pytest.mark.asyncio
    async def test_unquoted_tokens_get_fallback(self, upstream, polymarket_client):
        upstream.routes["/prices"] = {
            "t1": {"BUY": "0.40", "SELL": "0.42"},
            "t2": {"BUY": "not-a-number"},
        }

        prices = await PriceOracle(polymarket_client).fetch_outcome_prices(["t1", "t2", "t3"])

        assert prices["t2"] == FALLBACK_PRICES
        assert prices["t3"] == FALLBACK_PRICES
        assert FALLBACK_PRICES == OutcomePrices(buy=0.5, sell=0.5)

    @pytest.mark.asyncio
    async def test_non_dict_payload_falls_back_without_retry(self, upstream, polymarket_client):
        upstream.routes["/prices"] = ["unexpected"]

        prices = await PriceOracle(polymarket_client).fetch_outcome_prices(["t1", "t2"])

        assert prices == {"t1": FALLBACK_PRICES, "t2": FALLBACK_PRICES}
        assert len(upstream.requests_to("/prices")) == 1

    @pytest.mark.asyncio
    async def test_failed_batch_retried_per_token(self, upstream, polymarket_client):
        def reply(request):
            tokens = requested_tokens(request)
            if len(tokens) > 1 or tokens == ["broken"]:
                return httpx.Response(500, text="boom")
            return {tokens[0]: {"BUY": "0.20", "SELL": "0.25"}}

        upstream.routes["/prices"] = reply
        observer = MagicMock()

        prices = await PriceOracle(polymarket_client, observer=observer).fetch_outcome_prices(
            ["t1", "broken", "t3"]
        )

        assert prices["t1"] == OutcomePrices(buy=0.25, sell=0.20)
        assert prices["t3"] == OutcomePrices(buy=0.25, sell=0.20)
        assert prices["broken"] == FALLBACK_PRICES
        # one batch request, then one request per token
        assert len(upstream.requests_to("/prices")) == 4
        assert observer.price_batch_failed.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limited_batch_logs_summary(self, upstream, polymarket_client, caplog):
        def reply(request):
            tokens = requested_tokens(request)
            if len(tokens) > 1:
                return httpx.Response(429, text="slow down")
            return {tokens[0]: {"BUY": "0.20", "SELL": "0.25"}}

        upstream.routes["/prices"] = reply

        with caplog.at_level(logging.WARNING, logger="services.price_oracle"):
            prices = await PriceOracle(polymarket_client).fetch_outcome_prices(["t1", "t2"])

        assert prices["t1"] == OutcomePrices(buy=0.25, sell=0.20)
        assert polymarket_client.rate_limit_hits == 1
        summaries = [r.getMessage() for r in caplog.records if "rate limits" in r.getMessage()]
        assert summaries == ["Hit rate limits 1 times while fetching prices (1/3 requests = 33%)"]

    @pytest.mark.asyncio
    async def test_no_rate_limit_summary_when_clean(self, upstream, polymarket_client, caplog):
        upstream.routes["/prices"] = quote_all()

        with caplog.at_level(logging.WARNING, logger="services.price_oracle"):
            await PriceOracle(polymarket_client).fetch_outcome_prices(["t1"])

        assert not [r for r in caplog.records if "rate limits" in r.getMessage()]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, upstream, polymarket_client):
        cancel_event = asyncio.Event()
        cancel_event.set()

        prices = await PriceOracle(polymarket_client).fetch_outcome_prices(
            ["t1", "t2"], cancel_event=cancel_event
        )

        assert upstream.requests == []
        assert prices == {"t1": FALLBACK_PRICES, "t2": FALLBACK_PRICES}

    @pytest.mark.asyncio
    async def test_cancel_between_batches_stops_requests(self, upstream, polymarket_client):
        cancel_event = asyncio.Event()

        def reply(request):
            cancel_event.set()
            return quote_all()(request)

        upstream.routes["/prices"] = reply

        prices = await PriceOracle(polymarket_client, batch_size=2).fetch_outcome_prices(
            ["t1", "t2", "t3", "t4"], cancel_event=cancel_event
        )

        assert len(upstream.requests_to("/prices")) == 1
        assert prices["t1"] == OutcomePrices(buy=0.42, sell=0.40)
        assert prices["t3"] == FALLBACK_PRICES
        assert prices["t4"] == FALLBACK_PRICES

    @pytest.mark.asyncio
    async def test_transport_abort_is_soft(self, polymarket_client):
        observer = MagicMock()
        oracle = PriceOracle(polymarket_client, batch_size=2, observer=observer)

        with patch.object(
            polymarket_client, "get_prices", new=AsyncMock(side_effect=PriceFetchAborted())
        ) as mock_get_prices:
            prices = await oracle.fetch_outcome_prices(["t1", "t2", "t3"])

        mock_get_prices.assert_awaited_once()
        assert all(p == FALLBACK_PRICES for p in prices.values())
        assert len(prices) == 3
        observer.price_fetch_aborted.assert_called_once_with(3)
        observer.price_batch_failed.assert_not_called()


class TestFetchLastTradePrices:
    """Tests for PriceOracle.fetch_last_trade_prices()."""

    @pytest.mark.asyncio
    async def test_prices_clamped_and_invalid_dropped(self, upstream, polymarket_client):
        upstream.routes["/last-trades-prices"] = [
            {"token_id": "a", "price": "-0.1"},
            {"token_id": "b", "price": "1.5"},
            {"token_id": "c", "price": "0.37"},
            {"token_id": "d", "price": "abc"},
            {"token_id": "e", "price": ""},
            {"price": "0.5"},
        ]

        prices = await PriceOracle(polymarket_client).fetch_last_trade_prices(
            ["a", "b", "c", "d", "e"]
        )

        assert prices == {"a": 0.0, "b": 1.0, "c": 0.37}

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self, upstream, polymarket_client):
        assert await PriceOracle(polymarket_client).fetch_last_trade_prices([]) == {}
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_http_error_returns_empty(self, upstream, polymarket_client):
        upstream.routes["/last-trades-prices"] = httpx.Response(503, text="unavailable")

        assert await PriceOracle(polymarket_client).fetch_last_trade_prices(["a"]) == {}
