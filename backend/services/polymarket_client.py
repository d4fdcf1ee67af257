"""Polymarket API client for the Gamma events and CLOB pricing endpoints."""

import logging
from typing import Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

USER_AGENT = "prediction-market-httpx/1.0"


class PolymarketClient:
    """Thin transport over the Gamma and CLOB HTTP APIs.

    Uses a shared httpx.AsyncClient for connection pooling. The application
    creates one instance at startup and hands it to the services that need
    it; tests pass an AsyncClient built on httpx.MockTransport.
    """

    def __init__(
        self,
        gamma_url: Optional[str] = None,
        clob_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.gamma_url = (gamma_url or settings.gamma_api_url).rstrip("/")
        self.clob_url = (clob_url or settings.clob_api_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout or settings.http_timeout_seconds)
        self._client: Optional[httpx.AsyncClient] = http_client

        # Rate limit monitoring
        self.rate_limit_hits = 0
        self._request_count = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": USER_AGENT,
                },
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _check_response(self, response: httpx.Response) -> None:
        self._request_count += 1
        if response.status_code == 429:
            self.rate_limit_hits += 1
        response.raise_for_status()

    async def _get(self, url: str, params: Optional[dict] = None):
        """GET and decode JSON; raises httpx.HTTPStatusError on non-2xx."""
        client = await self._get_client()
        response = await client.get(url, params=params)
        self._check_response(response)
        return response.json()

    async def _post(self, url: str, payload):
        """POST a JSON body and decode the JSON reply."""
        client = await self._get_client()
        response = await client.post(url, json=payload)
        self._check_response(response)
        return response.json()

    # ========== Gamma API (Event Catalog) ==========

    async def get_events(self, limit: int = 50, offset: int = 0):
        """Fetch one page of active, non-closed events from the Gamma API.

        Returns the decoded payload untouched; callers decide what a
        non-list reply means.
        """
        url = f"{self.gamma_url}/events"
        params = {
            "limit": limit,
            "offset": offset,
            "active": "true",
            "closed": "false",
        }
        return await self._get(url, params)

    # ========== CLOB API (Prices) ==========

    async def get_prices(self, token_ids: list):
        """Bulk quote lookup: {token_id: {"BUY": "0.41", "SELL": "0.43"}}."""
        url = f"{self.clob_url}/prices"
        return await self._post(url, [{"token_id": token_id} for token_id in token_ids])

    async def get_last_trade_prices(self, token_ids: list):
        """Last trade per token: [{"token_id": ..., "price": "0.42"}, ...]."""
        url = f"{self.clob_url}/last-trades-prices"
        return await self._post(url, [{"token_id": token_id} for token_id in token_ids])
