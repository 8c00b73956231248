"""User-defined symbol to CoinGecko id mappings."""

from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.exceptions import RecordNotFound
from folio.server.responses import ok, read_json
from folio.sync.wire import coin_from_wire, coin_to_wire

router = APIRouter()


@router.get("")
async def list_coins(request: Request) -> JSONResponse:
    coins = await request.app.state.store.list_custom_coins()
    return ok([coin_to_wire(c) for c in coins])


@router.post("")
async def create_coin(request: Request) -> JSONResponse:
    coin = coin_from_wire(await read_json(request))
    created = await request.app.state.store.create_custom_coin(replace(coin, id=None))
    return ok(coin_to_wire(created), status_code=201)


@router.delete("/{coin_id}")
async def delete_coin(request: Request, coin_id: int) -> JSONResponse:
    if not await request.app.state.store.delete_custom_coin(coin_id):
        raise RecordNotFound(f"Custom coin {coin_id} not found")
    return ok()
