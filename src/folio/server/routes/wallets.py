"""Wallet CRUD."""

from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.server.responses import ok, read_json
from folio.sync.wire import wallet_changes_from_wire, wallet_from_wire, wallet_to_wire

router = APIRouter()


@router.get("")
async def list_wallets(request: Request) -> JSONResponse:
    wallets = await request.app.state.manager.list_wallets()
    return ok([wallet_to_wire(w) for w in wallets])


@router.post("")
async def create_wallet(request: Request) -> JSONResponse:
    wallet = wallet_from_wire(await read_json(request))
    created = await request.app.state.manager.create_wallet(replace(wallet, id=None))
    return ok(wallet_to_wire(created), status_code=201)


@router.get("/{wallet_id}")
async def get_wallet(request: Request, wallet_id: int) -> JSONResponse:
    wallet = await request.app.state.manager.get_wallet(wallet_id)
    return ok(wallet_to_wire(wallet))


@router.put("/{wallet_id}")
async def update_wallet(request: Request, wallet_id: int) -> JSONResponse:
    changes = wallet_changes_from_wire(await read_json(request))
    wallet = await request.app.state.manager.update_wallet(wallet_id, changes)
    return ok(wallet_to_wire(wallet))


@router.delete("/{wallet_id}")
async def delete_wallet(request: Request, wallet_id: int) -> JSONResponse:
    """Delete a wallet together with its assets."""
    await request.app.state.manager.delete_wallet(wallet_id)
    return ok()
