"""Tests for PortfolioManager validation and read-time accrual."""

from decimal import Decimal

import pytest

from folio.exceptions import RecordNotFound, ValidationError
from folio.models import Asset, EarnConfig, Wallet, WalletType
from folio.portfolio.manager import PortfolioManager
from folio.store.store import RecordStore

DAY_MS = 24 * 3600 * 1000


async def _wallet(manager: PortfolioManager) -> Wallet:
    return await manager.create_wallet(Wallet(name="Main", type=WalletType.HOT))


def _earn(last_payout_at: int) -> EarnConfig:
    return EarnConfig(apy=Decimal("12"), payout_interval_hours=24, last_payout_at=last_payout_at)


class TestWallets:
    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, manager: PortfolioManager, store: RecordStore) -> None:
        with pytest.raises(ValidationError):
            await manager.create_wallet(Wallet(name="", type=WalletType.HOT))
        assert await store.list_wallets() == []

    @pytest.mark.asyncio
    async def test_missing_wallet_raises(self, manager: PortfolioManager) -> None:
        with pytest.raises(RecordNotFound):
            await manager.get_wallet(42)
        with pytest.raises(RecordNotFound):
            await manager.update_wallet(42, {"name": "x"})
        with pytest.raises(RecordNotFound):
            await manager.delete_wallet(42)

    @pytest.mark.asyncio
    async def test_update_validates_merged_record(self, manager: PortfolioManager) -> None:
        wallet = await _wallet(manager)
        with pytest.raises(ValidationError):
            await manager.update_wallet(wallet.id, {"name": "   "})
        assert (await manager.get_wallet(wallet.id)).name == "Main"

    @pytest.mark.asyncio
    async def test_update_returns_merged_wallet(self, manager: PortfolioManager) -> None:
        wallet = await _wallet(manager)
        updated = await manager.update_wallet(wallet.id, {"color": "#ff0000"})
        assert updated.name == "Main"
        assert updated.color == "#ff0000"
        assert (await manager.get_wallet(wallet.id)).color == "#ff0000"


class TestAssets:
    @pytest.mark.asyncio
    async def test_create_requires_existing_wallet(self, manager: PortfolioManager) -> None:
        with pytest.raises(RecordNotFound):
            await manager.create_asset(Asset(wallet_id=9, symbol="BTC", amount=Decimal("1")))

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, manager: PortfolioManager) -> None:
        wallet = await _wallet(manager)
        with pytest.raises(ValidationError):
            await manager.create_asset(Asset(wallet_id=wallet.id, symbol="BTC", amount=Decimal("-0.1")))

    @pytest.mark.asyncio
    async def test_invalid_apy_rejected(self, manager: PortfolioManager, clock) -> None:
        wallet = await _wallet(manager)
        config = EarnConfig(apy=Decimal("150"), payout_interval_hours=24, last_payout_at=clock.now)
        with pytest.raises(ValidationError):
            await manager.create_asset(
                Asset(wallet_id=wallet.id, symbol="USDT", amount=Decimal("1"), earn_config=config)
            )

    @pytest.mark.asyncio
    async def test_update_stamps_updated_at(self, manager: PortfolioManager, clock) -> None:
        wallet = await _wallet(manager)
        asset = await manager.create_asset(Asset(wallet_id=wallet.id, symbol="BTC", amount=Decimal("1")))
        clock.advance(5000)

        updated = await manager.update_asset(asset.id, {"amount": Decimal("2")})

        assert updated.amount == Decimal("2")
        assert updated.updated_at == clock.now
        stored = await manager.get_asset(asset.id)
        assert stored.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_list_applies_and_persists_accrual(
        self, manager: PortfolioManager, store: RecordStore, clock
    ) -> None:
        wallet = await _wallet(manager)
        asset = await manager.create_asset(
            Asset(
                wallet_id=wallet.id,
                symbol="USDT",
                amount=Decimal("10000"),
                earn_config=_earn(clock.now - DAY_MS - 3600 * 1000),
            )
        )

        listed = await manager.list_assets()
        assert listed[0].amount == Decimal("10003.28767123")

        stored = await store.get_asset(asset.id)
        assert stored.amount == Decimal("10003.28767123")
        assert stored.earn_config.last_payout_at == clock.now - 3600 * 1000

        # same period: no further change
        again = await manager.list_assets()
        assert again[0].amount == Decimal("10003.28767123")

    @pytest.mark.asyncio
    async def test_get_asset_accrues(self, manager: PortfolioManager, clock) -> None:
        wallet = await _wallet(manager)
        asset = await manager.create_asset(
            Asset(
                wallet_id=wallet.id,
                symbol="USDT",
                amount=Decimal("10000"),
                earn_config=_earn(clock.now - DAY_MS),
            )
        )
        assert (await manager.get_asset(asset.id)).amount == Decimal("10003.28767123")


class TestEarnPositions:
    @pytest.mark.asyncio
    async def test_sorted_by_next_payout(self, manager: PortfolioManager, clock) -> None:
        wallet = await _wallet(manager)
        later = await manager.create_asset(
            Asset(wallet_id=wallet.id, symbol="ETH", amount=Decimal("1"), earn_config=_earn(clock.now))
        )
        sooner = await manager.create_asset(
            Asset(
                wallet_id=wallet.id,
                symbol="USDT",
                amount=Decimal("1"),
                earn_config=_earn(clock.now - 20 * 3600 * 1000),
            )
        )
        await manager.create_asset(Asset(wallet_id=wallet.id, symbol="BTC", amount=Decimal("1")))

        positions = await manager.earn_positions()

        assert [p.asset.id for p in positions] == [sooner.id, later.id]
        assert positions[0].time_until_payout_ms == 4 * 3600 * 1000
        assert positions[1].next_payout_at == clock.now + DAY_MS
