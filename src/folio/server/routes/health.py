"""Liveness and component status."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.server.responses import ok

router = APIRouter()


@router.get("/health")
async def health() -> JSONResponse:
    return ok(status="ok")


@router.get("/status")
async def status(request: Request) -> JSONResponse:
    """Background task state, last import outcome and snapshot count."""
    state = request.app.state
    importer = state.importer
    report = importer.last_report if importer is not None else None

    data = {
        "importer": {
            "running": importer is not None and importer.is_running,
            "state": importer.state.value if importer is not None else None,
            "last_run": report.finished_at if report is not None else None,
            "failed_exchanges": report.failed if report is not None else [],
        },
        "snapshots": {
            "running": state.snapshots is not None and state.snapshots.is_running,
            "total": await state.store.count_snapshots(),
        },
        "prices": {
            "running": state.price_refresher is not None and state.price_refresher.is_running,
            "last_refresh": (
                state.price_refresher.last_refresh if state.price_refresher is not None else None
            ),
        },
    }
    return ok(data)


@router.get("/db/stats")
async def db_stats(request: Request) -> JSONResponse:
    """Row counts per table and the span of recorded price history."""
    return ok(stats=await request.app.state.store.database_stats())
