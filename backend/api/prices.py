"""Price lookup API endpoints."""

from typing import Dict

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_price_oracle
from services.price_oracle import PriceOracle

router = APIRouter()


@router.get("/last-trade")
async def get_last_trade_prices(
    token_ids: str = Query(..., description="Comma-separated CLOB token ids"),
    price_oracle: PriceOracle = Depends(get_price_oracle),
) -> Dict[str, float]:
    """Last traded price per token, clamped to [0, 1]. Unknown tokens are omitted."""
    ids = [token_id.strip() for token_id in token_ids.split(",") if token_id.strip()]
    return await price_oracle.fetch_last_trade_prices(ids)
