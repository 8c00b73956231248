"""Latest cached prices, per-coin price history, on-demand quotes and the manual refresh trigger."""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.exceptions import PriceFetchError, ValidationError
from folio.server.responses import ok, read_json
from folio.sync.wire import price_point_to_wire, quote_to_wire

router = APIRouter()

_DEFAULT_HISTORY_LIMIT = 2016  # 7 days at one point per 5 minutes
MAX_BATCH_COINS = 100


@router.get("/prices")
async def latest_prices(request: Request) -> JSONResponse:
    prices = await request.app.state.store.get_latest_prices()
    return ok({coin_id: str(price) for coin_id, price in sorted(prices.items())})


@router.post("/prices/batch")
async def batch_prices(request: Request) -> JSONResponse:
    """Fetch prices for {"coin_ids": [...]} straight from CoinGecko. Nothing is cached."""
    body = await read_json(request)
    coin_ids = body.get("coin_ids") if isinstance(body, dict) else None
    if not isinstance(coin_ids, list) or not coin_ids:
        raise ValidationError("coin_ids array is required")
    if not all(isinstance(coin_id, str) and coin_id for coin_id in coin_ids):
        raise ValidationError("coin_ids must be non-empty strings")
    if len(coin_ids) > MAX_BATCH_COINS:
        raise ValidationError(f"Maximum {MAX_BATCH_COINS} coins per request")

    try:
        quotes = await request.app.state.price_provider.fetch_quotes(coin_ids)
    except httpx.HTTPError as e:
        raise PriceFetchError(f"Price fetch failed: {e}") from e
    return ok([quote_to_wire(q) for q in quotes])


@router.get("/history/{coin_id}")
async def price_history(request: Request, coin_id: str) -> JSONResponse:
    """Newest-first price points for one coin. ?limit= defaults to 7 days."""
    raw = request.query_params.get("limit")
    try:
        limit = int(raw) if raw else _DEFAULT_HISTORY_LIMIT
    except ValueError as e:
        raise ValidationError(f"Invalid limit: {raw!r}") from e
    if limit < 1:
        raise ValidationError(f"Invalid limit: {raw!r}")

    points = await request.app.state.store.list_price_history(coin_id, limit)
    return ok([price_point_to_wire(p) for p in points], coin=coin_id)


@router.post("/fetch/now")
async def fetch_now(request: Request) -> JSONResponse:
    written = await request.app.state.price_refresher.trigger()
    return ok(updated=written)
