"""Asset CRUD and the Earn position view."""

from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.exceptions import ValidationError
from folio.models import now_ms
from folio.server.responses import ok, read_json
from folio.sync.wire import asset_changes_from_wire, asset_from_wire, asset_to_wire

router = APIRouter()


@router.get("")
async def list_assets(request: Request) -> JSONResponse:
    """All assets, or one wallet's with ?walletId= (or ?wallet_id=)."""
    raw = request.query_params.get("walletId") or request.query_params.get("wallet_id")
    wallet_id = None
    if raw is not None:
        try:
            wallet_id = int(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid walletId: {raw!r}") from e
    assets = await request.app.state.manager.list_assets(wallet_id)
    return ok([asset_to_wire(a) for a in assets])


@router.get("/earn")
async def earn_positions(request: Request) -> JSONResponse:
    positions = await request.app.state.manager.earn_positions()
    return ok([
        {
            **asset_to_wire(p.asset),
            "next_payout_at": p.next_payout_at,
            "time_until_payout_ms": p.time_until_payout_ms,
        }
        for p in positions
    ])


@router.post("")
async def create_asset(request: Request) -> JSONResponse:
    asset = asset_from_wire(await read_json(request))
    created = await request.app.state.manager.create_asset(replace(asset, id=None))
    return ok(asset_to_wire(created), status_code=201)


@router.get("/{asset_id}")
async def get_asset(request: Request, asset_id: int) -> JSONResponse:
    asset = await request.app.state.manager.get_asset(asset_id)
    return ok(asset_to_wire(asset))


@router.put("/{asset_id}")
async def update_asset(request: Request, asset_id: int) -> JSONResponse:
    changes = asset_changes_from_wire(await read_json(request), now=now_ms())
    asset = await request.app.state.manager.update_asset(asset_id, changes)
    return ok(asset_to_wire(asset))


@router.delete("/{asset_id}")
async def delete_asset(request: Request, asset_id: int) -> JSONResponse:
    await request.app.state.manager.delete_asset(asset_id)
    return ok()
