"""Entry point for the portfolio server-of-record.

Wires all components together and serves the FastAPI app with uvicorn. The
background tasks share the server's event loop and are started and stopped by
the FastAPI lifespan.

Component wiring order (in _build_components):
1. Database + RecordStore (server-of-record)
2. PortfolioManager (validated CRUD, read-time accrual)
3. CredentialCipher + CcxtBalanceProvider
4. AutoImportReconciler (exchange balance import)
5. CoinGeckoPriceProvider + PriceRefresher (latest-price cache)
6. SnapshotScheduler (portfolio value history)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from folio.config import AppSettings
from folio.exchange.credentials import CredentialCipher
from folio.exchange.provider import CcxtBalanceProvider
from folio.importer.reconciler import AutoImportReconciler
from folio.logging import get_logger, setup_logging
from folio.portfolio.manager import PortfolioManager
from folio.prices.provider import CoinGeckoPriceProvider, PriceRefresher
from folio.snapshots.scheduler import SnapshotScheduler
from folio.store.database import Database
from folio.store.store import RecordStore


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all server components from settings.

    Note: Does NOT open the database or start any task -- that happens in
    the lifespan.
    """
    database = Database(settings.store.db_path)
    store = RecordStore(database)
    manager = PortfolioManager(store)

    cipher = CredentialCipher.from_settings(settings.credentials)
    balance_provider = CcxtBalanceProvider()
    importer = AutoImportReconciler(store, balance_provider, cipher, settings.importer)

    price_provider = CoinGeckoPriceProvider(settings.prices)
    price_refresher = PriceRefresher(store, price_provider, settings.prices)

    snapshots = SnapshotScheduler(manager, settings.snapshot)

    return {
        "database": database,
        "store": store,
        "manager": manager,
        "cipher": cipher,
        "balance_provider": balance_provider,
        "importer": importer,
        "price_provider": price_provider,
        "price_refresher": price_refresher,
        "snapshots": snapshots,
    }


def _enabled_tasks(settings: AppSettings, components: dict[str, Any]) -> list:
    tasks = []
    if settings.importer.enabled:
        tasks.append(components["importer"])
    if settings.prices.enabled:
        tasks.append(components["price_refresher"])
    if settings.snapshot.enabled:
        tasks.append(components["snapshots"])
    return tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store, expose components on app.state, run background tasks.

    On shutdown: stops tasks in reverse order, closes the price provider,
    then closes the database.
    """
    logger = get_logger("folio.main")
    settings = app.state.settings
    components = app.state.components

    await components["database"].connect()

    app.state.store = components["store"]
    app.state.manager = components["manager"]
    app.state.cipher = components["cipher"]
    app.state.balance_provider = components["balance_provider"]
    app.state.importer = components["importer"]
    app.state.price_refresher = components["price_refresher"]
    app.state.price_provider = components["price_provider"]
    app.state.snapshots = components["snapshots"]

    tasks = _enabled_tasks(settings, components)
    refresher = components["price_refresher"]
    for task in tasks:
        # first snapshot is valued from the first price refresh
        after = refresher if task is components["snapshots"] and refresher in tasks else None
        await task.start(after=after)

    logger.info(
        "lifespan_started",
        db_path=settings.store.db_path,
        tasks=[task.name for task in tasks],
        credentials_encrypted=components["cipher"].enabled,
    )

    yield

    for task in reversed(tasks):
        await task.stop()
    await components["price_provider"].close()
    await components["database"].close()

    logger.info("folio_server_stopped")


async def run() -> None:
    """Run the server-of-record until interrupted."""
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level, settings.log_format, settings.log_logger_levels)
    logger = get_logger("folio.main")

    # 3. Build components
    components = _build_components(settings)

    from folio.server.app import create_app

    app = create_app(lifespan=lifespan)
    app.state.settings = settings
    app.state.components = components

    logger.info("starting_server", host=settings.server.host, port=settings.server.port)

    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


async def run_sync() -> None:
    """Hydrate the client-local replica from the server-of-record once.

    Queued offline writes are replayed first. Exits after logging the
    resulting sync status; connectivity problems are reported, not raised.
    """
    from folio.sync.client import SyncClient
    from folio.sync.engine import SyncEngine

    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format, settings.log_logger_levels)
    logger = get_logger("folio.main")

    async with Database(settings.sync.local_db_path) as database:
        engine = SyncEngine(RecordStore(database), SyncClient(settings.sync), settings.sync)
        try:
            result = await engine.start()
        finally:
            await engine.close()

    status = engine.status
    logger.info(
        "local_sync_finished",
        success=result.success,
        error=status.error,
        is_online=status.is_online,
        pending_ops=status.pending_ops,
    )


def sync_main() -> None:
    """Synchronous entry point for a one-shot client hydration."""
    asyncio.run(run_sync())


if __name__ == "__main__":
    main()
