"""Tests for the sync payload wire mapping."""

from decimal import Decimal

import pytest

from folio.exceptions import ValidationError
from folio.models import Asset, EarnConfig, IdMap, InterestType, SyncState, Wallet, WalletType
from folio.sync.wire import (
    asset_changes_from_wire,
    asset_from_wire,
    asset_to_wire,
    changes_to_wire,
    id_map_from_wire,
    id_map_to_wire,
    parse_timestamp,
    state_from_wire,
    state_to_wire,
    wallet_changes_from_wire,
    wallet_from_wire,
)


class TestFieldNaming:
    def test_wallet_accepts_camel_case(self) -> None:
        wallet = wallet_from_wire(
            {"id": 3, "name": "Binance", "type": "exchange", "exchangeName": "binance", "createdAt": 1_700_000_000_000}
        )
        assert wallet.exchange_name == "binance"
        assert wallet.type == WalletType.EXCHANGE
        assert wallet.created_at == 1_700_000_000_000

    def test_wallet_accepts_snake_case(self) -> None:
        wallet = wallet_from_wire({"name": "Binance", "type": "exchange", "exchange_name": "binance"})
        assert wallet.exchange_name == "binance"
        assert wallet.id is None

    def test_asset_mixed_conventions(self) -> None:
        asset = asset_from_wire(
            {
                "id": 9,
                "walletId": "4",
                "symbol": "ETH ",
                "amount": 1.25,
                "auto_sync": 1,
                "earnConfig": {"apy": 5, "interestType": "simple", "payoutIntervalHours": 24},
                "created_at": 1_700_000_000,
            }
        )
        assert asset.wallet_id == 4
        assert asset.symbol == "ETH"
        assert asset.amount == Decimal("1.25")
        assert asset.auto_sync is True
        assert asset.earn_config.interest_type == InterestType.SIMPLE
        # seconds are promoted to milliseconds, and the earn anchor defaults to created_at
        assert asset.created_at == 1_700_000_000_000
        assert asset.earn_config.last_payout_at == 1_700_000_000_000

    def test_asset_emitted_snake_case_with_string_amount(self) -> None:
        wire = asset_to_wire(Asset(id=1, wallet_id=2, symbol="BTC", amount=Decimal("0.1"), auto_sync=None))
        assert wire["wallet_id"] == 2
        assert wire["amount"] == "0.1"
        assert wire["auto_sync"] is None
        assert wire["earn_config"] is None


class TestValidation:
    @pytest.mark.parametrize("amount", [None, "abc", float("nan"), True])
    def test_bad_amount(self, amount) -> None:
        with pytest.raises(ValidationError):
            asset_from_wire({"wallet_id": 1, "symbol": "BTC", "amount": amount})

    def test_bad_wallet_type(self) -> None:
        with pytest.raises(ValidationError):
            wallet_from_wire({"name": "x", "type": "paper"})

    def test_missing_wallet_id(self) -> None:
        with pytest.raises(ValidationError):
            asset_from_wire({"symbol": "BTC", "amount": "1"})

    def test_state_requires_object(self) -> None:
        with pytest.raises(ValidationError):
            state_from_wire([])


class TestPartialChanges:
    def test_wallet_changes_only_present_fields(self) -> None:
        changes = wallet_changes_from_wire({"exchangeName": None, "type": "cold"})
        assert changes == {"exchange_name": None, "type": WalletType.COLD}

    def test_asset_changes_earn_anchor_defaults_to_now(self) -> None:
        changes = asset_changes_from_wire({"amount": "2", "earnConfig": {"apy": "3"}}, now=42_000_000_000_000)
        assert changes["amount"] == Decimal("2")
        assert changes["earn_config"].last_payout_at == 42_000_000_000_000
        assert "symbol" not in changes

    def test_changes_to_wire(self) -> None:
        config = EarnConfig(apy=Decimal("3"), payout_interval_hours=24, last_payout_at=5)
        wire = changes_to_wire({"amount": Decimal("2.5"), "type": WalletType.HOT, "earn_config": config})
        assert wire == {"amount": "2.5", "type": "hot", "earn_config": config.to_dict()}


class TestFullState:
    def test_state_round_trip(self) -> None:
        state = SyncState(
            wallets=[Wallet(id=1, name="Cold", type=WalletType.COLD, created_at=1_700_000_000_000)],
            assets=[
                Asset(
                    id=2,
                    wallet_id=1,
                    symbol="BTC",
                    amount=Decimal("0.5"),
                    created_at=1_700_000_000_000,
                    updated_at=1_700_000_000_000,
                )
            ],
            timestamp=1_700_000_000_000,
        )
        wire = state_to_wire(state)
        assert set(wire) == {"wallets", "assets", "customCoins", "timestamp"}
        assert state_from_wire(wire) == state

    def test_state_accepts_snake_custom_coins(self) -> None:
        state = state_from_wire(
            {"wallets": [], "assets": [], "custom_coins": [{"symbol": "PEPE", "name": "Pepe", "coinGeckoId": "pepe"}]}
        )
        assert state.custom_coins[0].coin_gecko_id == "pepe"

    def test_id_map_keys_survive_json(self) -> None:
        id_map = IdMap(wallets={-1: 7}, assets={-2: 9, -3: 10})
        assert id_map_from_wire(id_map_to_wire(id_map)) == id_map


class TestTimestamps:
    def test_seconds_promoted(self) -> None:
        assert parse_timestamp(1_700_000_000) == 1_700_000_000_000

    def test_milliseconds_kept(self) -> None:
        assert parse_timestamp("1700000000000") == 1_700_000_000_000

    def test_default_when_missing(self) -> None:
        assert parse_timestamp(None, default=5) == 5
