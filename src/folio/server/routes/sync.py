"""Full-state pull and push for client replicas."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.server.responses import ok, read_json
from folio.sync.wire import id_map_to_wire, state_from_wire, state_to_wire

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/sync")
async def pull_state(request: Request) -> JSONResponse:
    """Current wallets, assets and custom coins, with due accrual applied."""
    await request.app.state.manager.list_assets()
    state = await request.app.state.store.export_state()
    return ok(state_to_wire(state))


@router.post("/sync")
async def push_state(request: Request) -> JSONResponse:
    """Replace all wallets, assets and custom coins with the posted state.

    Records posted with placeholder ids get fresh ids; the mapping is
    returned as idMap so the client can rewrite its own references.
    """
    body = await read_json(request)
    state = state_from_wire(body.get("data", body) if isinstance(body, dict) else body)
    id_map = await request.app.state.store.replace_all(state)
    log.info(
        "sync_state_replaced",
        wallets=len(state.wallets),
        assets=len(state.assets),
        custom_coins=len(state.custom_coins),
    )
    return ok(idMap=id_map_to_wire(id_map))
