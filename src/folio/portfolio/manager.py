"""Validated wallet and asset operations over a record store.

PortfolioManager is the one place that validates entities before they are
written, and the one place that wires interest accrual into reads. Both the
server-of-record routes and the client sync engine go through it.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from folio.earn.accrual import accrue_due, next_payout_at, persist_accrued
from folio.exceptions import RecordNotFound
from folio.logging import get_logger
from folio.models import Asset, Wallet, now_ms, validate_asset, validate_wallet
from folio.store.store import RecordStore

logger = get_logger(__name__)


@dataclass
class EarnPosition:
    """An asset with an enabled Earn configuration and its payout schedule."""

    asset: Asset
    next_payout_at: int
    time_until_payout_ms: int


class PortfolioManager:
    """Wallet/asset CRUD with validation and read-time accrual.

    Args:
        store: Record store to operate on (client-local or server-of-record).
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> RecordStore:
        return self._store

    # ──────────────────────────────────────────────
    # Wallets
    # ──────────────────────────────────────────────

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        validate_wallet(wallet)
        created = await self._store.create_wallet(wallet)
        logger.info("wallet_created", wallet_id=created.id, name=created.name, type=created.type.value)
        return created

    async def get_wallet(self, wallet_id: int) -> Wallet:
        wallet = await self._store.get_wallet(wallet_id)
        if wallet is None:
            raise RecordNotFound(f"Wallet {wallet_id} not found")
        return wallet

    async def list_wallets(self) -> list[Wallet]:
        return await self._store.list_wallets()

    async def merged_wallet(self, wallet_id: int, changes: dict[str, Any]) -> Wallet:
        """Return the wallet as it would look after changes, validated."""
        merged = replace(await self.get_wallet(wallet_id), **changes)
        validate_wallet(merged)
        return merged

    async def update_wallet(self, wallet_id: int, changes: dict[str, Any]) -> Wallet:
        merged = await self.merged_wallet(wallet_id, changes)
        if not await self._store.update_wallet(wallet_id, changes):
            raise RecordNotFound(f"Wallet {wallet_id} not found")
        logger.info("wallet_updated", wallet_id=wallet_id, fields=sorted(changes))
        return merged

    async def delete_wallet(self, wallet_id: int) -> None:
        if not await self._store.delete_wallet(wallet_id):
            raise RecordNotFound(f"Wallet {wallet_id} not found")
        logger.info("wallet_deleted", wallet_id=wallet_id)

    # ──────────────────────────────────────────────
    # Assets
    # ──────────────────────────────────────────────

    async def create_asset(self, asset: Asset) -> Asset:
        validate_asset(asset)
        await self.get_wallet(asset.wallet_id)
        created = await self._store.create_asset(asset)
        logger.info(
            "asset_created",
            asset_id=created.id,
            wallet_id=created.wallet_id,
            symbol=created.symbol,
            amount=str(created.amount),
        )
        return created

    async def list_assets(self, wallet_id: int | None = None) -> list[Asset]:
        """Assets with every due Earn payout applied and persisted."""
        assets = await self._store.list_assets(wallet_id)
        now = self._clock()
        changed = accrue_due(assets, now)
        if not changed:
            return assets
        persisted = {a.id: a for a in await persist_accrued(self._store, changed, now)}
        return [persisted.get(asset.id, asset) for asset in assets]

    async def get_asset(self, asset_id: int) -> Asset:
        asset = await self._store.get_asset(asset_id)
        if asset is None:
            raise RecordNotFound(f"Asset {asset_id} not found")
        now = self._clock()
        if accrue_due([asset], now):
            await persist_accrued(self._store, [asset], now)
        return asset

    async def merged_asset(self, asset_id: int, changes: dict[str, Any]) -> Asset:
        """Return the asset as it would look after changes, validated."""
        existing = await self._store.get_asset(asset_id)
        if existing is None:
            raise RecordNotFound(f"Asset {asset_id} not found")
        merged = replace(existing, **changes)
        validate_asset(merged)
        return merged

    async def update_asset(self, asset_id: int, changes: dict[str, Any]) -> Asset:
        merged = await self.merged_asset(asset_id, changes)
        changes = {**changes, "updated_at": self._clock()}
        if not await self._store.update_asset(asset_id, changes):
            raise RecordNotFound(f"Asset {asset_id} not found")
        logger.info("asset_updated", asset_id=asset_id, fields=sorted(changes))
        return replace(merged, updated_at=changes["updated_at"])

    async def delete_asset(self, asset_id: int) -> None:
        if not await self._store.delete_asset(asset_id):
            raise RecordNotFound(f"Asset {asset_id} not found")
        logger.info("asset_deleted", asset_id=asset_id)

    async def earn_positions(self) -> list[EarnPosition]:
        """Enabled Earn positions, soonest payout first."""
        now = self._clock()
        positions = []
        for asset in await self.list_assets():
            payout_at = next_payout_at(asset)
            if payout_at is None:
                continue
            positions.append(
                EarnPosition(
                    asset=asset,
                    next_payout_at=payout_at,
                    time_until_payout_ms=max(payout_at - now, 0),
                )
            )
        positions.sort(key=lambda p: p.next_payout_at)
        return positions
