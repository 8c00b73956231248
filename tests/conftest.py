"""Shared test fixtures for the portfolio tracker."""

from collections.abc import AsyncIterator
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from folio.config import AppSettings, SnapshotSettings, SyncSettings
from folio.exchange.credentials import CredentialCipher
from folio.importer.reconciler import AutoImportReconciler
from folio.models import ExchangeBalance, PriceQuote
from folio.portfolio.manager import PortfolioManager
from folio.prices.provider import PriceRefresher
from folio.server.app import create_app
from folio.snapshots.scheduler import SnapshotScheduler
from folio.store.database import Database
from folio.store.store import RecordStore

# 2023-11-14T22:13:20Z
NOW_MS = 1_700_000_000_000


class FakeClock:
    """Settable epoch-ms clock."""

    def __init__(self, now: int = NOW_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_settings() -> AppSettings:
    """AppSettings with test defaults: in-memory stores, tasks disabled."""
    return AppSettings(
        log_level="DEBUG",
        sync=SyncSettings(base_url="http://server", local_db_path=":memory:"),
        snapshot=SnapshotSettings(enabled=False, retention_days=30),
    )


@pytest_asyncio.fixture
async def database() -> AsyncIterator[Database]:
    db = Database(":memory:")
    await db.connect()
    try:
        yield db
    finally:
        await db.close()


@pytest_asyncio.fixture
async def store(database: Database) -> RecordStore:
    return RecordStore(database)


@pytest.fixture
def manager(store: RecordStore, clock: FakeClock) -> PortfolioManager:
    return PortfolioManager(store, clock)


# ---------------------------------------------------------------------------
# Server-of-record app (in-process, no lifespan)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def server_store() -> AsyncIterator[RecordStore]:
    db = Database(":memory:")
    await db.connect()
    try:
        yield RecordStore(db)
    finally:
        await db.close()


@pytest.fixture
def balance_provider() -> MagicMock:
    """Balance provider that knows binance/okx and returns one BTC balance."""
    provider = MagicMock()
    provider.supports = MagicMock(side_effect=lambda exchange: exchange.lower() in ("binance", "okx"))
    provider.fetch_balances = AsyncMock(
        return_value=[
            ExchangeBalance(symbol="BTC", free=Decimal("1"), used=Decimal("0.5"), total=Decimal("1.5")),
        ]
    )
    return provider


@pytest.fixture
def price_provider() -> MagicMock:
    provider = MagicMock()
    provider.fetch_prices = AsyncMock(return_value={"bitcoin": Decimal("50000")})
    provider.fetch_quotes = AsyncMock(
        return_value=[
            PriceQuote(
                coin_id="bitcoin",
                price_usd=Decimal("50000"),
                change_24h=Decimal("-1.25"),
                last_updated=NOW_MS,
            )
        ]
    )
    provider.close = AsyncMock()
    return provider


@pytest.fixture
def server_app(
    server_store: RecordStore,
    balance_provider: MagicMock,
    price_provider: MagicMock,
    mock_settings: AppSettings,
) -> FastAPI:
    manager = PortfolioManager(server_store)
    cipher = CredentialCipher()

    app = create_app()
    app.state.store = server_store
    app.state.manager = manager
    app.state.cipher = cipher
    app.state.balance_provider = balance_provider
    app.state.importer = AutoImportReconciler(server_store, balance_provider, cipher, mock_settings.importer)
    app.state.price_refresher = PriceRefresher(server_store, price_provider, mock_settings.prices)
    app.state.price_provider = price_provider
    app.state.snapshots = SnapshotScheduler(manager, mock_settings.snapshot)
    return app


@pytest_asyncio.fixture
async def api(server_app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """httpx client bound to the in-process server app."""
    transport = httpx.ASGITransport(app=server_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://server") as client:
        yield client
