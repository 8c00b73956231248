"""Periodic portfolio valuation snapshots.

Each tick values every asset at the latest cached USD price, aggregates per
wallet and per symbol, appends one snapshot row and prunes rows older than
the retention window. A portfolio with no assets produces no row, and
neither does a tick that runs before any price has been cached.
"""

from collections.abc import Callable
from decimal import Decimal

from folio.config import SnapshotSettings
from folio.logging import get_logger
from folio.models import PortfolioSnapshot, now_ms
from folio.portfolio.manager import PortfolioManager
from folio.prices.symbols import custom_coin_index, resolve_coin_id
from folio.scheduling import PeriodicTask

logger = get_logger(__name__)

_DAY_MS = 24 * 3600 * 1000


class SnapshotScheduler(PeriodicTask):
    """Writes a PortfolioSnapshot every interval and prunes old ones.

    Args:
        manager: Portfolio manager; assets are read with accrual applied.
        settings: Snapshot interval and retention.
        clock: Returns the current time in epoch milliseconds.
    """

    name = "snapshot_scheduler"

    def __init__(
        self,
        manager: PortfolioManager,
        settings: SnapshotSettings,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(settings.interval_seconds)
        self._manager = manager
        self._store = manager.store
        self._retention_ms = settings.retention_days * _DAY_MS
        self._clock = clock

    async def run_once(self) -> PortfolioSnapshot | None:
        """Value the portfolio now. Returns the stored snapshot, or None if skipped."""
        assets = await self._manager.list_assets()
        if not assets:
            logger.info("snapshot_skipped_no_assets")
            return None

        prices = await self._store.get_latest_prices()
        if not prices:
            logger.info("snapshot_skipped_no_prices", assets=len(assets))
            return None
        custom = custom_coin_index(await self._store.list_custom_coins())

        wallets: dict[str, Decimal] = {}
        coins: dict[str, dict[str, Decimal]] = {}
        total = Decimal("0")
        priced = 0

        for asset in assets:
            price = prices.get(resolve_coin_id(asset.symbol, custom), Decimal("0"))
            if price > 0:
                priced += 1
            value = asset.amount * price

            wallet_key = str(asset.wallet_id)
            wallets[wallet_key] = wallets.get(wallet_key, Decimal("0")) + value

            coin = coins.setdefault(asset.symbol, {"amount": Decimal("0"), "value": Decimal("0")})
            coin["amount"] += asset.amount
            coin["value"] += value

            total += value

        now = self._clock()
        snapshot = await self._store.insert_snapshot(
            PortfolioSnapshot(
                timestamp=now,
                total_value=total,
                snapshot_data={
                    "wallets": {k: str(v) for k, v in wallets.items()},
                    "coins": {
                        symbol: {"amount": str(c["amount"]), "value": str(c["value"])}
                        for symbol, c in coins.items()
                    },
                },
            )
        )
        removed = await self._store.prune_snapshots(now - self._retention_ms)

        logger.info(
            "snapshot_saved",
            total_value=str(total),
            priced_assets=priced,
            assets=len(assets),
            pruned=removed,
        )
        return snapshot
