"""Exchange credentials, live balances and the manual import trigger."""

from __future__ import annotations

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.exceptions import RecordNotFound, UnsupportedExchange
from folio.models import now_ms
from folio.server.responses import ok, read_json
from folio.sync.wire import api_key_from_wire, api_key_to_wire, balance_to_wire

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/apikey")
async def save_api_key(request: Request) -> JSONResponse:
    """Create or replace the credentials for one exchange."""
    state = request.app.state
    key = api_key_from_wire(await read_json(request))
    if not state.balance_provider.supports(key.exchange):
        raise UnsupportedExchange(f"Unsupported exchange: {key.exchange}")

    stored, created = await state.store.upsert_api_key(state.cipher.seal(key))
    log.info("api_key_saved", exchange=stored.exchange, created=created, encrypted=stored.is_encrypted)
    return ok(api_key_to_wire(stored), status_code=201 if created else 200, created=created)


@router.get("/list")
async def list_api_keys(request: Request) -> JSONResponse:
    keys = await request.app.state.store.list_api_keys()
    return ok([api_key_to_wire(k) for k in keys])


@router.delete("/apikey/{exchange}")
async def delete_api_key(request: Request, exchange: str) -> JSONResponse:
    if not await request.app.state.store.delete_api_key(exchange):
        raise RecordNotFound(f"No credentials for {exchange}")
    log.info("api_key_deleted", exchange=exchange)
    return ok()


@router.get("/{exchange}/balance")
async def get_balance(request: Request, exchange: str) -> JSONResponse:
    """Live balances for one exchange, without touching stored assets."""
    state = request.app.state
    stored = await state.store.get_api_key(exchange)
    if stored is None:
        raise RecordNotFound(f"No credentials for {exchange}")

    key = state.cipher.open(stored)
    balances = await state.balance_provider.fetch_balances(
        key.exchange, key.api_key, key.api_secret, key.password
    )
    if stored.id is not None:
        await state.store.touch_api_key(stored.id, now_ms())
    return ok([balance_to_wire(b) for b in balances], exchange=exchange)


@router.post("/import")
async def trigger_import(request: Request) -> JSONResponse:
    """Run the auto-importer now and return its report."""
    report = await request.app.state.importer.trigger()
    return ok({
        "started_at": report.started_at,
        "finished_at": report.finished_at,
        "failed": report.failed,
        "results": [asdict(r) for r in report.results],
    })
