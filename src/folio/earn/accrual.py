"""Interest accrual for assets carrying an Earn configuration.

Accrual is driven by reads: every time assets are listed, each enabled Earn
position is advanced by the number of whole payout periods that elapsed since
its last payout boundary. The boundary moves by whole periods, never to "now",
so running accrual twice inside one period is a no-op and repeated reads
converge on the same amount.

HOW IT WORKS:
    interval = payout_interval_hours in ms
    periods  = floor((now - last_payout_at) / interval)
    rate     = (apy / 100) / (periods per year)
    compound: amount * (1 + rate) ** periods
    simple:   amount + amount * rate * periods
"""

from decimal import ROUND_HALF_UP, Decimal

from folio.logging import get_logger
from folio.models import Asset, InterestType
from folio.store.store import RecordStore

logger = get_logger(__name__)

AMOUNT_QUANTUM = Decimal("0.00000001")
_HOURS_PER_YEAR = Decimal(365 * 24)


def periodic_rate(apy: Decimal, payout_interval_hours: int) -> Decimal:
    """Interest rate applied per payout period for a yearly percentage."""
    periods_per_year = _HOURS_PER_YEAR / Decimal(payout_interval_hours)
    return (apy / Decimal("100")) / periods_per_year


def accrue(asset: Asset, now: int) -> bool:
    """Apply all elapsed payout periods to asset in place.

    Returns True if the asset changed.
    """
    config = asset.earn_config
    if config is None or not config.enabled:
        return False
    if config.payout_interval_hours <= 0:
        return False

    interval_ms = config.interval_ms
    periods = (now - config.last_payout_at) // interval_ms
    if periods <= 0:
        return False

    rate = periodic_rate(config.apy, config.payout_interval_hours)
    if config.interest_type == InterestType.COMPOUND:
        new_amount = asset.amount * (Decimal("1") + rate) ** periods
    else:
        new_amount = asset.amount + asset.amount * rate * periods

    previous = asset.amount
    asset.amount = new_amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    config.last_payout_at += periods * interval_ms
    asset.updated_at = now

    logger.debug(
        "earn_interest_accrued",
        asset_id=asset.id,
        symbol=asset.symbol,
        periods=periods,
        previous=str(previous),
        amount=str(asset.amount),
    )
    return True


def accrue_due(assets: list[Asset], now: int) -> list[Asset]:
    """Accrue every asset in place and return the ones that changed.

    A malformed configuration on one asset is logged and skipped; the rest
    of the list is still processed.
    """
    changed = []
    for asset in assets:
        try:
            if accrue(asset, now):
                changed.append(asset)
        except (ArithmeticError, TypeError, ValueError):
            logger.error(
                "earn_accrual_failed",
                asset_id=asset.id,
                symbol=asset.symbol,
                exc_info=True,
            )
    return changed


async def persist_accrued(
    store: RecordStore, assets: list[Asset], now: int
) -> list[Asset]:
    """Write accrued assets back through store.mutate_asset.

    Each asset is re-read and re-accrued under the store lock, so a
    concurrent reader that already persisted the same periods causes no
    double payout.
    """
    persisted = []
    for asset in assets:
        if asset.id is None:
            continue

        def _apply(current: Asset) -> bool:
            return accrue(current, now)

        try:
            stored = await store.mutate_asset(asset.id, _apply)
        except Exception:
            logger.error("earn_accrual_persist_failed", asset_id=asset.id, exc_info=True)
            continue
        if stored is not None:
            persisted.append(stored)
    if persisted:
        logger.info("earn_accrual_persisted", count=len(persisted))
    return persisted


def next_payout_at(asset: Asset) -> int | None:
    """Epoch ms of the next payout boundary, or None without an enabled config."""
    config = asset.earn_config
    if config is None or not config.enabled or config.payout_interval_hours <= 0:
        return None
    return config.last_payout_at + config.interval_ms
