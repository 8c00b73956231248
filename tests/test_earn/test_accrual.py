"""Tests for Earn interest accrual.

All amounts use Decimal. Reference case: 10000 at 12% APY paid daily.
"""

from decimal import Decimal

import pytest

from folio.earn.accrual import accrue, accrue_due, next_payout_at, periodic_rate, persist_accrued
from folio.models import Asset, EarnConfig, InterestType, Wallet, WalletType
from folio.store.store import RecordStore

HOUR_MS = 3600 * 1000
START = 1_700_000_000_000
TOLERANCE = Decimal("0.00000001")


def _earn_asset(
    interest_type: InterestType = InterestType.COMPOUND,
    interval_hours: int = 24,
    amount: str = "10000",
    enabled: bool = True,
) -> Asset:
    return Asset(
        id=1,
        wallet_id=1,
        symbol="USDT",
        amount=Decimal(amount),
        earn_config=EarnConfig(
            apy=Decimal("12"),
            payout_interval_hours=interval_hours,
            last_payout_at=START,
            interest_type=interest_type,
            enabled=enabled,
        ),
        created_at=START,
        updated_at=START,
    )


class TestAccrue:
    def test_compound_one_period_after_25_hours(self) -> None:
        asset = _earn_asset(InterestType.COMPOUND)
        assert accrue(asset, START + 25 * HOUR_MS) is True
        assert abs(asset.amount - Decimal("10003.28767123")) <= TOLERANCE

    def test_simple_one_period_after_25_hours(self) -> None:
        asset = _earn_asset(InterestType.SIMPLE)
        assert accrue(asset, START + 25 * HOUR_MS) is True
        assert abs(asset.amount - Decimal("10003.28767123")) <= TOLERANCE

    def test_last_payout_anchored_to_period_boundary(self) -> None:
        asset = _earn_asset()
        now = START + 25 * HOUR_MS
        accrue(asset, now)
        assert asset.earn_config.last_payout_at == START + 24 * HOUR_MS
        assert asset.updated_at == now

    def test_weekly_payout_within_25_hours_accrues_nothing(self) -> None:
        asset = _earn_asset(interval_hours=168)
        assert accrue(asset, START + 25 * HOUR_MS) is False
        assert asset.amount == Decimal("10000")
        assert asset.earn_config.last_payout_at == START

    def test_idempotent_within_period(self) -> None:
        asset = _earn_asset()
        now = START + 25 * HOUR_MS
        accrue(asset, now)
        first = asset.amount
        assert accrue(asset, now) is False
        assert accrue(asset, now + HOUR_MS) is False
        assert asset.amount == first

    def test_compound_beats_simple_over_several_periods(self) -> None:
        compound = _earn_asset(InterestType.COMPOUND)
        simple = _earn_asset(InterestType.SIMPLE)
        now = START + 3 * 24 * HOUR_MS
        accrue(compound, now)
        accrue(simple, now)

        rate = 0.12 / 365
        assert abs(compound.amount - Decimal(repr(10000 * (1 + rate) ** 3))) <= TOLERANCE
        assert abs(simple.amount - Decimal(repr(10000 + 10000 * rate * 3))) <= TOLERANCE
        assert compound.amount > simple.amount

    def test_catch_up_equals_step_by_step(self) -> None:
        """Applying three periods at once matches three daily reads."""
        at_once = _earn_asset()
        stepped = _earn_asset()
        accrue(at_once, START + 3 * 24 * HOUR_MS)
        for day in (1, 2, 3):
            accrue(stepped, START + day * 24 * HOUR_MS)
        assert abs(at_once.amount - stepped.amount) <= Decimal("0.00000003")

    def test_amount_rounded_to_eight_places(self) -> None:
        asset = _earn_asset(amount="1.123456789")
        accrue(asset, START + 24 * HOUR_MS)
        assert asset.amount == asset.amount.quantize(Decimal("0.00000001"))

    def test_disabled_or_missing_config_is_noop(self) -> None:
        disabled = _earn_asset(enabled=False)
        assert accrue(disabled, START + 100 * 24 * HOUR_MS) is False

        plain = Asset(wallet_id=1, symbol="BTC", amount=Decimal("1"))
        assert accrue(plain, START + 100 * 24 * HOUR_MS) is False

    def test_clock_before_last_payout_is_noop(self) -> None:
        asset = _earn_asset()
        assert accrue(asset, START - HOUR_MS) is False

    def test_periodic_rate(self) -> None:
        assert periodic_rate(Decimal("12"), 24) == Decimal("0.12") / Decimal("365")


class TestAccrueDue:
    def test_returns_only_changed(self) -> None:
        due = _earn_asset()
        not_due = _earn_asset(interval_hours=168)
        changed = accrue_due([due, not_due], START + 25 * HOUR_MS)
        assert changed == [due]

    def test_bad_config_is_isolated(self) -> None:
        broken = _earn_asset()
        broken.earn_config.apy = None  # type: ignore[assignment]
        good = _earn_asset()
        changed = accrue_due([broken, good], START + 25 * HOUR_MS)
        assert changed == [good]


class TestPersistAccrued:
    @pytest.mark.asyncio
    async def test_persist_is_not_double_applied(self, store: RecordStore) -> None:
        wallet = await store.create_wallet(Wallet(name="Earn", type=WalletType.HOT))
        template = _earn_asset()
        template.id = None
        template.wallet_id = wallet.id
        stored = await store.create_asset(template)

        now = START + 25 * HOUR_MS
        first_view = await store.list_assets()
        second_view = await store.list_assets()
        await persist_accrued(store, accrue_due(first_view, now), now)
        await persist_accrued(store, accrue_due(second_view, now), now)

        result = await store.get_asset(stored.id)
        assert abs(result.amount - Decimal("10003.28767123")) <= TOLERANCE
        assert result.earn_config.last_payout_at == START + 24 * HOUR_MS


class TestNextPayoutAt:
    def test_next_boundary(self) -> None:
        assert next_payout_at(_earn_asset()) == START + 24 * HOUR_MS

    def test_none_without_enabled_config(self) -> None:
        assert next_payout_at(_earn_asset(enabled=False)) is None
