"""Portfolio value history and on-demand snapshots."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from folio.exceptions import ValidationError
from folio.models import now_ms
from folio.server.responses import ok
from folio.sync.wire import snapshot_to_wire

router = APIRouter()

_HOUR_MS = 3600 * 1000
_DEFAULT_HOURS = 24


def _int_param(request: Request, name: str) -> int | None:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {raw!r}") from e


@router.get("/history")
async def history(request: Request) -> JSONResponse:
    """Snapshots for ?hours=N, or ?start=&end= (epoch ms). Default: last 24 hours."""
    store = request.app.state.store
    hours = _int_param(request, "hours")
    start = _int_param(request, "start")
    end = _int_param(request, "end")

    if hours is None and start is not None and end is not None:
        snapshots = await store.list_snapshots(since_ms=start, until_ms=end)
    else:
        window = hours if hours is not None else _DEFAULT_HOURS
        snapshots = await store.list_snapshots(since_ms=now_ms() - window * _HOUR_MS)

    return ok(
        [snapshot_to_wire(s) for s in snapshots],
        totalCount=await store.count_snapshots(),
    )


@router.get("/history/count")
async def history_count(request: Request) -> JSONResponse:
    return ok(count=await request.app.state.store.count_snapshots())


@router.post("/snapshot/calculate")
async def calculate_snapshot(request: Request) -> JSONResponse:
    """Take a snapshot now. data is absent when there are no assets or no cached prices."""
    snapshot = await request.app.state.snapshots.trigger()
    if snapshot is None:
        return ok(message="No assets or no cached prices, snapshot skipped")
    return ok(snapshot_to_wire(snapshot), message="Portfolio snapshot calculated and saved")
