"""Tests for SnapshotScheduler valuation, aggregation and retention."""

from decimal import Decimal

import pytest

from folio.config import SnapshotSettings
from folio.models import Asset, CustomCoin, PortfolioSnapshot, Wallet, WalletType
from folio.portfolio.manager import PortfolioManager
from folio.snapshots.scheduler import SnapshotScheduler
from folio.store.store import RecordStore

_DAY_MS = 24 * 3600 * 1000


@pytest.fixture
def scheduler(manager: PortfolioManager, clock) -> SnapshotScheduler:
    return SnapshotScheduler(manager, SnapshotSettings(retention_days=30), clock)


async def _seed(store: RecordStore) -> tuple[Wallet, Wallet]:
    hot = await store.create_wallet(Wallet(name="Hot", type=WalletType.HOT))
    cold = await store.create_wallet(Wallet(name="Cold", type=WalletType.COLD))
    await store.create_asset(Asset(wallet_id=hot.id, symbol="BTC", amount=Decimal("0.5")))
    await store.create_asset(Asset(wallet_id=cold.id, symbol="BTC", amount=Decimal("0.25")))
    await store.create_asset(Asset(wallet_id=cold.id, symbol="ETH", amount=Decimal("2")))
    await store.upsert_latest_prices(
        {"bitcoin": Decimal("40000"), "ethereum": Decimal("2000")}, updated_at=1
    )
    return hot, cold


class TestSnapshotScheduler:
    @pytest.mark.asyncio
    async def test_no_assets_writes_nothing(self, scheduler: SnapshotScheduler, store: RecordStore) -> None:
        await store.create_wallet(Wallet(name="Empty", type=WalletType.HOT))
        assert await scheduler.run_once() is None
        assert await store.count_snapshots() == 0

    @pytest.mark.asyncio
    async def test_aggregates_by_wallet_and_coin(
        self, scheduler: SnapshotScheduler, store: RecordStore, clock
    ) -> None:
        hot, cold = await _seed(store)

        snapshot = await scheduler.run_once()

        assert snapshot is not None
        assert snapshot.timestamp == clock.now
        assert snapshot.total_value == Decimal("34000")
        wallets = snapshot.snapshot_data["wallets"]
        assert Decimal(wallets[str(hot.id)]) == Decimal("20000")
        assert Decimal(wallets[str(cold.id)]) == Decimal("14000")
        coins = snapshot.snapshot_data["coins"]
        assert Decimal(coins["BTC"]["amount"]) == Decimal("0.75")
        assert Decimal(coins["BTC"]["value"]) == Decimal("30000")
        assert Decimal(coins["ETH"]["value"]) == Decimal("4000")

        stored = await store.list_snapshots()
        assert len(stored) == 1
        assert stored[0].total_value == Decimal("34000")
        assert stored[0].snapshot_data == snapshot.snapshot_data

    @pytest.mark.asyncio
    async def test_unpriced_assets_count_as_zero(
        self, scheduler: SnapshotScheduler, store: RecordStore
    ) -> None:
        wallet = await store.create_wallet(Wallet(name="Hot", type=WalletType.HOT))
        await store.create_asset(Asset(wallet_id=wallet.id, symbol="NOPE", amount=Decimal("100")))
        await store.upsert_latest_prices({"bitcoin": Decimal("40000")}, updated_at=1)

        snapshot = await scheduler.run_once()

        assert snapshot is not None
        assert snapshot.total_value == Decimal("0")
        assert Decimal(snapshot.snapshot_data["coins"]["NOPE"]["amount"]) == Decimal("100")

    @pytest.mark.asyncio
    async def test_empty_price_cache_writes_nothing(
        self, scheduler: SnapshotScheduler, store: RecordStore
    ) -> None:
        wallet = await store.create_wallet(Wallet(name="Cold", type=WalletType.COLD))
        await store.create_asset(Asset(wallet_id=wallet.id, symbol="BTC", amount=Decimal("1")))

        assert await scheduler.run_once() is None
        assert await store.count_snapshots() == 0

    @pytest.mark.asyncio
    async def test_custom_coin_overrides_static_mapping(
        self, scheduler: SnapshotScheduler, store: RecordStore
    ) -> None:
        wallet = await store.create_wallet(Wallet(name="Hot", type=WalletType.HOT))
        await store.create_asset(Asset(wallet_id=wallet.id, symbol="PEPE", amount=Decimal("1000")))
        await store.create_custom_coin(CustomCoin(symbol="pepe", name="Pepe", coin_gecko_id="pepe-token"))
        await store.upsert_latest_prices({"pepe-token": Decimal("0.002")}, updated_at=1)

        snapshot = await scheduler.run_once()

        assert snapshot is not None
        assert snapshot.total_value == Decimal("2")

    @pytest.mark.asyncio
    async def test_prunes_beyond_retention(
        self, scheduler: SnapshotScheduler, store: RecordStore, clock
    ) -> None:
        await _seed(store)
        old = clock.now - 31 * _DAY_MS
        recent = clock.now - 29 * _DAY_MS
        for timestamp in (old, recent):
            await store.insert_snapshot(
                PortfolioSnapshot(timestamp=timestamp, total_value=Decimal("1"), snapshot_data={})
            )

        await scheduler.run_once()

        timestamps = [s.timestamp for s in await store.list_snapshots()]
        assert timestamps == [recent, clock.now]

    @pytest.mark.asyncio
    async def test_trigger_runs_once(self, scheduler: SnapshotScheduler, store: RecordStore) -> None:
        await _seed(store)
        snapshot = await scheduler.trigger()
        assert snapshot is not None
        assert await store.count_snapshots() == 1
