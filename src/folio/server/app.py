"""FastAPI application factory for the server-of-record."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from folio.exceptions import (
    BalanceFetchError,
    CredentialsLocked,
    FolioError,
    PriceFetchError,
    RecordNotFound,
    StoreTransactionError,
    SyncRejected,
    UnsupportedExchange,
    ValidationError,
)
from folio.server.responses import fail
from folio.server.routes import assets, coins, exchange, health, portfolio, prices, sync, wallets

log = structlog.get_logger(__name__)

# Most specific first; the first isinstance match wins.
_ERROR_STATUS: list[tuple[type[FolioError], int]] = [
    (ValidationError, 400),
    (UnsupportedExchange, 400),
    (RecordNotFound, 404),
    (CredentialsLocked, 409),
    (BalanceFetchError, 502),
    (PriceFetchError, 502),
    (StoreTransactionError, 500),
]


def _status_for(exc: FolioError) -> int:
    if isinstance(exc, SyncRejected):
        return exc.status_code
    for exc_type, status in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


async def _handle_folio_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, FolioError)
    status = _status_for(exc)
    if status >= 500:
        log.error("request_failed", path=request.url.path, error=str(exc), status=status)
    else:
        log.info("request_rejected", path=request.url.path, error=str(exc), status=status)
    return fail(str(exc), status)


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the server-of-record application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to open the store and start background tasks.

    Route handlers read their collaborators from app.state: store, manager,
    importer, snapshots, price_refresher, price_provider, balance_provider and
    cipher.
    """
    app = FastAPI(title="Folio Portfolio Server", lifespan=lifespan)

    app.state.store = None
    app.state.manager = None
    app.state.importer = None
    app.state.snapshots = None
    app.state.price_refresher = None
    app.state.price_provider = None
    app.state.balance_provider = None
    app.state.cipher = None

    app.add_exception_handler(FolioError, _handle_folio_error)

    app.include_router(health.router)
    app.include_router(sync.router, prefix="/api")
    app.include_router(wallets.router, prefix="/api/wallets")
    app.include_router(assets.router, prefix="/api/assets")
    app.include_router(exchange.router, prefix="/api/exchange")
    app.include_router(coins.router, prefix="/api/coins")
    app.include_router(portfolio.router, prefix="/portfolio")
    app.include_router(prices.router)

    return app
