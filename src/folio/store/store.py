"""Typed SQLite read/write abstraction over wallets, assets, credentials and snapshots.

Provides RecordStore with typed methods for every collection. All SQL is
isolated behind this interface. Every public method serializes on one
asyncio.Lock, so a reader never observes a bulk replace half-applied and an
accrual read-compute-write never interleaves with another write.

CRITICAL: Amounts and prices are stored as TEXT in SQLite, restored as Decimal on read.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Any

import aiosqlite

from folio.exceptions import StoreTransactionError, ValidationError
from folio.logging import get_logger
from folio.models import (
    ApiKey,
    Asset,
    Collection,
    CustomCoin,
    EarnConfig,
    IdMap,
    PendingOp,
    PendingOpKind,
    PortfolioSnapshot,
    PricePoint,
    SyncState,
    Wallet,
    WalletType,
    now_ms,
)
from folio.store.database import Database

logger = get_logger(__name__)

_WALLET_COLUMNS = "id, name, type, exchange_name, color, created_at"
_ASSET_COLUMNS = (
    "id, wallet_id, symbol, amount, tags, notes, auto_sync, earn_config, "
    "created_at, updated_at"
)
_API_KEY_COLUMNS = (
    "id, exchange, api_key, api_secret, password, is_encrypted, created_at, last_used"
)
_COIN_COLUMNS = "id, symbol, name, coin_gecko_id, is_custom, created_at"
_STATS_TABLES = (
    "wallets",
    "assets",
    "api_keys",
    "custom_coins",
    "portfolio_snapshots",
    "latest_prices",
    "price_history",
    "pending_ops",
)


def _encode_earn(config: EarnConfig | None) -> str | None:
    return json.dumps(config.to_dict()) if config is not None else None


def _encode_bool(value: bool | None) -> int | None:
    return None if value is None else int(bool(value))


def _encode_enum(value: Any) -> Any:
    return value.value if isinstance(value, WalletType) else value


# Updatable attribute -> column encoder
_WALLET_FIELDS: dict[str, Callable[[Any], Any]] = {
    "name": str,
    "type": _encode_enum,
    "exchange_name": lambda v: v,
    "color": lambda v: v,
}

_ASSET_FIELDS: dict[str, Callable[[Any], Any]] = {
    "wallet_id": int,
    "symbol": str,
    "amount": str,
    "tags": lambda v: v,
    "notes": lambda v: v,
    "auto_sync": _encode_bool,
    "earn_config": _encode_earn,
    "updated_at": int,
}


def _encode_changes(
    changes: dict[str, Any], fields: dict[str, Callable[[Any], Any]]
) -> tuple[list[str], list[Any]]:
    unknown = set(changes) - set(fields)
    if unknown:
        raise ValidationError(f"Unknown fields: {sorted(unknown)}")
    columns = [f"{name} = ?" for name in changes]
    values = [fields[name](value) for name, value in changes.items()]
    return columns, values


def _wallet_from_row(row: Any) -> Wallet:
    return Wallet(
        id=row[0],
        name=row[1],
        type=WalletType(row[2]),
        exchange_name=row[3],
        color=row[4],
        created_at=row[5],
    )


def _asset_from_row(row: Any) -> Asset:
    created_at = row[8]
    earn_config = None
    if row[7]:
        earn_config = EarnConfig.from_dict(
            json.loads(row[7]), default_last_payout_at=created_at
        )
    return Asset(
        id=row[0],
        wallet_id=row[1],
        symbol=row[2],
        amount=Decimal(row[3]),
        tags=row[4],
        notes=row[5],
        auto_sync=None if row[6] is None else bool(row[6]),
        earn_config=earn_config,
        created_at=created_at,
        updated_at=row[9],
    )


def _api_key_from_row(row: Any) -> ApiKey:
    return ApiKey(
        id=row[0],
        exchange=row[1],
        api_key=row[2],
        api_secret=row[3],
        password=row[4],
        is_encrypted=bool(row[5]),
        created_at=row[6],
        last_used=row[7],
    )


def _coin_from_row(row: Any) -> CustomCoin:
    return CustomCoin(
        id=row[0],
        symbol=row[1],
        name=row[2],
        coin_gecko_id=row[3],
        is_custom=bool(row[4]),
        created_at=row[5],
    )


class RecordStore:
    """Async SQLite store for the portfolio collections.

    Wraps a Database with typed read/write methods. The same class serves
    the client-local store and the server-of-record; nothing here is a
    module-level singleton.

    Usage:
        async with Database("data/folio.db") as database:
            store = RecordStore(database)
            wallet = await store.create_wallet(Wallet(name="Ledger", type=WalletType.COLD))
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        self._lock = asyncio.Lock()

    @property
    def database(self) -> Database:
        return self._database

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """One BEGIN IMMEDIATE ... COMMIT, rolled back on any error."""
        db = self._database.db
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        else:
            await db.commit()

    # ──────────────────────────────────────────────
    # Wallets
    # ──────────────────────────────────────────────

    @staticmethod
    async def _insert_wallet(
        db: aiosqlite.Connection, wallet: Wallet, keep_id: bool = True
    ) -> int:
        values = (
            wallet.name,
            _encode_enum(wallet.type),
            wallet.exchange_name,
            wallet.color,
            wallet.created_at,
        )
        if keep_id and wallet.id is not None:
            await db.execute(
                "INSERT OR REPLACE INTO wallets "
                "(id, name, type, exchange_name, color, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (wallet.id, *values),
            )
            return wallet.id
        cursor = await db.execute(
            "INSERT INTO wallets (name, type, exchange_name, color, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            values,
        )
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        """Insert a wallet. An explicit id is kept, otherwise one is assigned."""
        async with self._lock:
            async with self._transaction() as db:
                wallet_id = await self._insert_wallet(db, wallet)
        return replace(wallet, id=wallet_id)

    async def get_wallet(self, wallet_id: int) -> Wallet | None:
        async with self._lock:
            cursor = await self._database.db.execute(
                f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE id = ?", (wallet_id,)
            )
            row = await cursor.fetchone()
        return _wallet_from_row(row) if row is not None else None

    async def list_wallets(self) -> list[Wallet]:
        async with self._lock:
            cursor = await self._database.db.execute(
                f"SELECT {_WALLET_COLUMNS} FROM wallets ORDER BY created_at ASC, id ASC"
            )
            rows = await cursor.fetchall()
        return [_wallet_from_row(row) for row in rows]

    async def find_exchange_wallet(self, exchange_name: str) -> Wallet | None:
        """Return the exchange-type wallet for an exchange (case-insensitive)."""
        async with self._lock:
            cursor = await self._database.db.execute(
                f"SELECT {_WALLET_COLUMNS} FROM wallets "
                "WHERE type = 'exchange' AND exchange_name IS NOT NULL "
                "AND lower(exchange_name) = lower(?) ORDER BY id ASC LIMIT 1",
                (exchange_name,),
            )
            row = await cursor.fetchone()
        return _wallet_from_row(row) if row is not None else None

    async def update_wallet(self, wallet_id: int, changes: dict[str, Any]) -> bool:
        """Apply a partial update. Returns False if the wallet does not exist."""
        columns, values = _encode_changes(changes, _WALLET_FIELDS)
        if not columns:
            return await self.get_wallet(wallet_id) is not None
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    f"UPDATE wallets SET {', '.join(columns)} WHERE id = ?",
                    (*values, wallet_id),
                )
        return cursor.rowcount > 0

    async def delete_wallet(self, wallet_id: int) -> bool:
        """Delete a wallet and every asset it owns in one commit."""
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "DELETE FROM wallets WHERE id = ?", (wallet_id,)
                )
                deleted = cursor.rowcount > 0
                if deleted:
                    cursor = await db.execute(
                        "DELETE FROM assets WHERE wallet_id = ?", (wallet_id,)
                    )
                    logger.debug(
                        "wallet_assets_cascaded",
                        wallet_id=wallet_id,
                        assets=cursor.rowcount,
                    )
        return deleted

    # ──────────────────────────────────────────────
    # Assets
    # ──────────────────────────────────────────────

    @staticmethod
    async def _insert_asset(
        db: aiosqlite.Connection, asset: Asset, keep_id: bool = True
    ) -> int:
        values = (
            asset.wallet_id,
            asset.symbol,
            str(asset.amount),
            asset.tags,
            asset.notes,
            _encode_bool(asset.auto_sync),
            _encode_earn(asset.earn_config),
            asset.created_at,
            asset.updated_at,
        )
        if keep_id and asset.id is not None:
            await db.execute(
                "INSERT OR REPLACE INTO assets "
                "(id, wallet_id, symbol, amount, tags, notes, auto_sync, earn_config, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (asset.id, *values),
            )
            return asset.id
        cursor = await db.execute(
            "INSERT INTO assets "
            "(wallet_id, symbol, amount, tags, notes, auto_sync, earn_config, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            values,
        )
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    async def create_asset(self, asset: Asset) -> Asset:
        """Insert an asset. An explicit id is kept, otherwise one is assigned."""
        async with self._lock:
            async with self._transaction() as db:
                asset_id = await self._insert_asset(db, asset)
        return replace(asset, id=asset_id)

    async def get_asset(self, asset_id: int) -> Asset | None:
        async with self._lock:
            return await self._get_asset_unlocked(asset_id)

    async def _get_asset_unlocked(self, asset_id: int) -> Asset | None:
        cursor = await self._database.db.execute(
            f"SELECT {_ASSET_COLUMNS} FROM assets WHERE id = ?", (asset_id,)
        )
        row = await cursor.fetchone()
        return _asset_from_row(row) if row is not None else None

    async def list_assets(self, wallet_id: int | None = None) -> list[Asset]:
        """Return assets, optionally for one wallet. Plain read, no accrual."""
        query = f"SELECT {_ASSET_COLUMNS} FROM assets"
        params: list = []
        if wallet_id is not None:
            query += " WHERE wallet_id = ?"
            params.append(wallet_id)
        query += " ORDER BY created_at ASC, id ASC"
        async with self._lock:
            cursor = await self._database.db.execute(query, params)
            rows = await cursor.fetchall()
        return [_asset_from_row(row) for row in rows]

    async def update_asset(self, asset_id: int, changes: dict[str, Any]) -> bool:
        """Apply a partial update, stamping updated_at unless given."""
        changes = {**changes}
        changes.setdefault("updated_at", now_ms())
        columns, values = _encode_changes(changes, _ASSET_FIELDS)
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    f"UPDATE assets SET {', '.join(columns)} WHERE id = ?",
                    (*values, asset_id),
                )
        return cursor.rowcount > 0

    async def delete_asset(self, asset_id: int) -> bool:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute("DELETE FROM assets WHERE id = ?", (asset_id,))
        return cursor.rowcount > 0

    async def mutate_asset(
        self, asset_id: int, mutate: Callable[[Asset], bool]
    ) -> Asset | None:
        """Atomically re-read an asset, apply mutate(), and persist if it returns True.

        Returns the (possibly mutated) asset, or None if it no longer exists.
        No other store write can interleave between the read and the write.
        """
        async with self._lock:
            asset = await self._get_asset_unlocked(asset_id)
            if asset is None:
                return None
            if mutate(asset):
                async with self._transaction() as db:
                    await db.execute(
                        "UPDATE assets SET amount = ?, earn_config = ?, updated_at = ? "
                        "WHERE id = ?",
                        (
                            str(asset.amount),
                            _encode_earn(asset.earn_config),
                            asset.updated_at,
                            asset_id,
                        ),
                    )
            return asset

    async def has_data(self) -> bool:
        """True if any wallet or asset is stored."""
        async with self._lock:
            cursor = await self._database.db.execute(
                "SELECT (SELECT COUNT(*) FROM wallets) + (SELECT COUNT(*) FROM assets)"
            )
            row = await cursor.fetchone()
        return bool(row and row[0])

    # ──────────────────────────────────────────────
    # API keys
    # ──────────────────────────────────────────────

    async def _get_api_key_unlocked(self, exchange: str) -> ApiKey | None:
        cursor = await self._database.db.execute(
            f"SELECT {_API_KEY_COLUMNS} FROM api_keys WHERE exchange = ?",
            (exchange,),
        )
        row = await cursor.fetchone()
        return _api_key_from_row(row) if row is not None else None

    async def upsert_api_key(self, key: ApiKey) -> tuple[ApiKey, bool]:
        """Insert or replace the credentials for an exchange.

        Returns (stored key, created) where created is False on update.
        """
        async with self._lock:
            existing = await self._get_api_key_unlocked(key.exchange)
            async with self._transaction() as db:
                if existing is not None:
                    await db.execute(
                        "UPDATE api_keys SET api_key = ?, api_secret = ?, password = ?, "
                        "is_encrypted = ? WHERE id = ?",
                        (
                            key.api_key,
                            key.api_secret,
                            key.password,
                            int(key.is_encrypted),
                            existing.id,
                        ),
                    )
                else:
                    await db.execute(
                        "INSERT INTO api_keys "
                        "(exchange, api_key, api_secret, password, is_encrypted, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            key.exchange,
                            key.api_key,
                            key.api_secret,
                            key.password,
                            int(key.is_encrypted),
                            key.created_at,
                        ),
                    )
            stored = await self._get_api_key_unlocked(key.exchange)
        assert stored is not None
        return stored, existing is None

    async def get_api_key(self, exchange: str) -> ApiKey | None:
        async with self._lock:
            return await self._get_api_key_unlocked(exchange)

    async def list_api_keys(self) -> list[ApiKey]:
        async with self._lock:
            cursor = await self._database.db.execute(
                f"SELECT {_API_KEY_COLUMNS} FROM api_keys ORDER BY id ASC"
            )
            rows = await cursor.fetchall()
        return [_api_key_from_row(row) for row in rows]

    async def touch_api_key(self, key_id: int, used_at: int) -> None:
        async with self._lock:
            async with self._transaction() as db:
                await db.execute(
                    "UPDATE api_keys SET last_used = ? WHERE id = ?", (used_at, key_id)
                )

    async def delete_api_key(self, exchange: str) -> bool:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "DELETE FROM api_keys WHERE exchange = ?", (exchange,)
                )
        return cursor.rowcount > 0

    # ──────────────────────────────────────────────
    # Custom coins
    # ──────────────────────────────────────────────

    async def create_custom_coin(self, coin: CustomCoin) -> CustomCoin:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "INSERT INTO custom_coins (symbol, name, coin_gecko_id, is_custom, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        coin.symbol,
                        coin.name,
                        coin.coin_gecko_id,
                        int(coin.is_custom),
                        coin.created_at,
                    ),
                )
        return replace(coin, id=cursor.lastrowid)

    async def list_custom_coins(self) -> list[CustomCoin]:
        async with self._lock:
            cursor = await self._database.db.execute(
                f"SELECT {_COIN_COLUMNS} FROM custom_coins ORDER BY id ASC"
            )
            rows = await cursor.fetchall()
        return [_coin_from_row(row) for row in rows]

    async def delete_custom_coin(self, coin_id: int) -> bool:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "DELETE FROM custom_coins WHERE id = ?", (coin_id,)
                )
        return cursor.rowcount > 0

    # ──────────────────────────────────────────────
    # Snapshots and prices
    # ──────────────────────────────────────────────

    async def insert_snapshot(self, snapshot: PortfolioSnapshot) -> PortfolioSnapshot:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "INSERT INTO portfolio_snapshots (timestamp, total_value, snapshot_data) "
                    "VALUES (?, ?, ?)",
                    (
                        snapshot.timestamp,
                        str(snapshot.total_value),
                        json.dumps(snapshot.snapshot_data, default=str),
                    ),
                )
        return replace(snapshot, id=cursor.lastrowid)

    async def list_snapshots(
        self,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> list[PortfolioSnapshot]:
        """Snapshots within an optional time range, ordered by timestamp ASC."""
        conditions = []
        params: list = []
        if since_ms is not None:
            conditions.append("timestamp >= ?")
            params.append(since_ms)
        if until_ms is not None:
            conditions.append("timestamp <= ?")
            params.append(until_ms)

        query = "SELECT id, timestamp, total_value, snapshot_data FROM portfolio_snapshots"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY timestamp ASC"

        async with self._lock:
            cursor = await self._database.db.execute(query, params)
            rows = await cursor.fetchall()
        return [
            PortfolioSnapshot(
                id=row[0],
                timestamp=row[1],
                total_value=Decimal(row[2]),
                snapshot_data=json.loads(row[3]),
            )
            for row in rows
        ]

    async def count_snapshots(self) -> int:
        async with self._lock:
            cursor = await self._database.db.execute(
                "SELECT COUNT(*) FROM portfolio_snapshots"
            )
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def prune_snapshots(self, before_ms: int) -> int:
        """Delete snapshots older than before_ms. Returns the number removed."""
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "DELETE FROM portfolio_snapshots WHERE timestamp < ?", (before_ms,)
                )
        return cursor.rowcount

    async def upsert_latest_prices(self, prices: dict[str, Decimal], updated_at: int) -> int:
        if not prices:
            return 0
        async with self._lock:
            async with self._transaction() as db:
                await db.executemany(
                    "INSERT INTO latest_prices (coin_id, price_usd, last_updated) "
                    "VALUES (?, ?, ?) ON CONFLICT(coin_id) DO UPDATE SET "
                    "price_usd = excluded.price_usd, last_updated = excluded.last_updated",
                    [(coin_id, str(price), updated_at) for coin_id, price in prices.items()],
                )
        return len(prices)

    async def get_latest_prices(self) -> dict[str, Decimal]:
        async with self._lock:
            cursor = await self._database.db.execute(
                "SELECT coin_id, price_usd FROM latest_prices"
            )
            rows = await cursor.fetchall()
        return {row[0]: Decimal(row[1]) for row in rows}

    async def insert_price_history(self, prices: dict[str, Decimal], timestamp: int) -> int:
        """Append one history point per coin. A repeat of (timestamp, coin) is ignored."""
        if not prices:
            return 0
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.executemany(
                    "INSERT OR IGNORE INTO price_history (timestamp, coin_id, price_usd) "
                    "VALUES (?, ?, ?)",
                    [(timestamp, coin_id, str(price)) for coin_id, price in prices.items()],
                )
        return cursor.rowcount

    async def list_price_history(self, coin_id: str, limit: int = 2016) -> list[PricePoint]:
        """Most recent points for one coin, newest first."""
        async with self._lock:
            cursor = await self._database.db.execute(
                "SELECT coin_id, price_usd, timestamp FROM price_history "
                "WHERE coin_id = ? ORDER BY timestamp DESC LIMIT ?",
                (coin_id, limit),
            )
            rows = await cursor.fetchall()
        return [PricePoint(coin_id=row[0], price_usd=Decimal(row[1]), timestamp=row[2]) for row in rows]

    async def prune_price_history(self, before_ms: int) -> int:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "DELETE FROM price_history WHERE timestamp < ?", (before_ms,)
                )
        return cursor.rowcount

    async def database_stats(self) -> dict[str, int | None]:
        """Row counts per table plus the span of recorded price history."""
        stats: dict[str, int | None] = {}
        async with self._lock:
            db = self._database.db
            for table in _STATS_TABLES:
                cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
                row = await cursor.fetchone()
                stats[table] = row[0] if row else 0
            cursor = await db.execute("SELECT MIN(timestamp), MAX(timestamp) FROM price_history")
            row = await cursor.fetchone()
        stats["oldest_price_timestamp"] = row[0] if row else None
        stats["newest_price_timestamp"] = row[1] if row else None
        return stats

    # ──────────────────────────────────────────────
    # Full-state sync
    # ──────────────────────────────────────────────

    async def export_state(self) -> SyncState:
        """Consistent copy of wallets, assets and custom coins."""
        async with self._lock:
            db = self._database.db
            cursor = await db.execute(
                f"SELECT {_WALLET_COLUMNS} FROM wallets ORDER BY id ASC"
            )
            wallets = [_wallet_from_row(row) for row in await cursor.fetchall()]
            cursor = await db.execute(f"SELECT {_ASSET_COLUMNS} FROM assets ORDER BY id ASC")
            assets = [_asset_from_row(row) for row in await cursor.fetchall()]
            cursor = await db.execute(
                f"SELECT {_COIN_COLUMNS} FROM custom_coins ORDER BY id ASC"
            )
            coins = [_coin_from_row(row) for row in await cursor.fetchall()]
        return SyncState(wallets=wallets, assets=assets, custom_coins=coins)

    async def replace_all(self, state: SyncState) -> IdMap:
        """Replace wallets, assets and custom coins with state in one transaction.

        Records with a positive id keep it. Records with a missing or
        non-positive (placeholder) id get a fresh id; asset wallet_ids are
        rewritten to match. Positive ids are inserted first so a fresh id can
        never collide with an incoming one.

        Raises StoreTransactionError if the transaction was rolled back; the
        store is then unchanged.
        """
        id_map = IdMap()
        async with self._lock:
            try:
                async with self._transaction() as db:
                    await db.execute("DELETE FROM assets")
                    await db.execute("DELETE FROM wallets")
                    await db.execute("DELETE FROM custom_coins")

                    fresh_wallets = []
                    for wallet in state.wallets:
                        if wallet.id is not None and wallet.id > 0:
                            await self._insert_wallet(db, wallet)
                        else:
                            fresh_wallets.append(wallet)
                    for wallet in fresh_wallets:
                        new_id = await self._insert_wallet(db, wallet, keep_id=False)
                        if wallet.id is not None:
                            id_map.wallets[wallet.id] = new_id

                    fresh_assets = []
                    for asset in state.assets:
                        asset = replace(
                            asset,
                            wallet_id=id_map.wallets.get(asset.wallet_id, asset.wallet_id),
                        )
                        if asset.id is not None and asset.id > 0:
                            await self._insert_asset(db, asset)
                        else:
                            fresh_assets.append(asset)
                    for asset in fresh_assets:
                        new_id = await self._insert_asset(db, asset, keep_id=False)
                        if asset.id is not None:
                            id_map.assets[asset.id] = new_id

                    for coin in state.custom_coins:
                        await db.execute(
                            "INSERT INTO custom_coins "
                            "(id, symbol, name, coin_gecko_id, is_custom, created_at) "
                            "VALUES (?, ?, ?, ?, ?, ?)",
                            (
                                coin.id if coin.id is not None and coin.id > 0 else None,
                                coin.symbol,
                                coin.name,
                                coin.coin_gecko_id,
                                int(coin.is_custom),
                                coin.created_at,
                            ),
                        )
            except (aiosqlite.Error, ValueError, TypeError) as e:
                logger.error("replace_all_rolled_back", error=str(e))
                raise StoreTransactionError(f"Bulk replace rolled back: {e}") from e

        logger.info(
            "replace_all_committed",
            wallets=len(state.wallets),
            assets=len(state.assets),
            custom_coins=len(state.custom_coins),
            remapped=len(id_map.wallets) + len(id_map.assets),
        )
        return id_map

    # ──────────────────────────────────────────────
    # Pending write-through operations (client deployment)
    # ──────────────────────────────────────────────

    async def next_placeholder_id(self, collection: Collection) -> int:
        """Next negative id for a record created without a server round-trip."""
        async with self._lock:
            cursor = await self._database.db.execute(
                f"SELECT MIN(id) FROM {collection.value}"
            )
            row = await cursor.fetchone()
        lowest = row[0] if row and row[0] is not None else 0
        return min(lowest, 0) - 1

    async def remap_id(
        self,
        collection: Collection,
        old_id: int,
        new_id: int,
        op_id: int | None = None,
    ) -> None:
        """Rewrite a placeholder id to its server id, including every reference to it.

        When op_id is given, that pending op is removed in the same transaction,
        so a replayed create is either fully applied locally or still queued.
        A local row already holding new_id is replaced; for a wallet its assets
        go with it.
        """
        table = collection.value
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(f"SELECT 1 FROM {table} WHERE id = ?", (new_id,))
                if await cursor.fetchone() is not None:
                    logger.warning(
                        "placeholder_id_collision", collection=table, old_id=old_id, new_id=new_id
                    )
                    if collection is Collection.WALLETS:
                        await db.execute("DELETE FROM assets WHERE wallet_id = ?", (new_id,))
                    await db.execute(f"DELETE FROM {table} WHERE id = ?", (new_id,))
                await db.execute(
                    f"UPDATE {table} SET id = ? WHERE id = ?", (new_id, old_id)
                )
                await db.execute(
                    "UPDATE pending_ops SET record_id = ? "
                    "WHERE collection = ? AND record_id = ?",
                    (new_id, table, old_id),
                )
                if op_id is not None:
                    await db.execute("DELETE FROM pending_ops WHERE id = ?", (op_id,))
                if collection is Collection.WALLETS:
                    await db.execute(
                        "UPDATE assets SET wallet_id = ? WHERE wallet_id = ?",
                        (new_id, old_id),
                    )
                    cursor = await db.execute(
                        "SELECT id, payload FROM pending_ops WHERE collection = ?",
                        (Collection.ASSETS.value,),
                    )
                    for asset_op_id, raw in await cursor.fetchall():
                        payload = json.loads(raw)
                        if payload.get("wallet_id") == old_id:
                            payload["wallet_id"] = new_id
                            await db.execute(
                                "UPDATE pending_ops SET payload = ? WHERE id = ?",
                                (json.dumps(payload), asset_op_id),
                            )
        logger.info("placeholder_id_remapped", collection=table, old_id=old_id, new_id=new_id)

    async def enqueue_pending_op(self, op: PendingOp) -> PendingOp:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "INSERT INTO pending_ops (collection, op, record_id, payload, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        op.collection.value,
                        op.op.value,
                        op.record_id,
                        json.dumps(op.payload, default=str),
                        op.created_at,
                    ),
                )
        return replace(op, id=cursor.lastrowid)

    async def list_pending_ops(self) -> list[PendingOp]:
        """Queued operations in the order they were made."""
        async with self._lock:
            cursor = await self._database.db.execute(
                "SELECT id, collection, op, record_id, payload, created_at "
                "FROM pending_ops ORDER BY id ASC"
            )
            rows = await cursor.fetchall()
        return [
            PendingOp(
                id=row[0],
                collection=Collection(row[1]),
                op=PendingOpKind(row[2]),
                record_id=row[3],
                payload=json.loads(row[4]),
                created_at=row[5],
            )
            for row in rows
        ]

    async def count_pending_ops(self) -> int:
        async with self._lock:
            cursor = await self._database.db.execute("SELECT COUNT(*) FROM pending_ops")
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_pending_op(self, op_id: int) -> None:
        async with self._lock:
            async with self._transaction() as db:
                await db.execute("DELETE FROM pending_ops WHERE id = ?", (op_id,))

    async def delete_pending_ops_for(self, collection: Collection, record_id: int) -> int:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "DELETE FROM pending_ops WHERE collection = ? AND record_id = ?",
                    (collection.value, record_id),
                )
        return cursor.rowcount

    async def clear_pending_ops(self) -> int:
        async with self._lock:
            async with self._transaction() as db:
                cursor = await db.execute("DELETE FROM pending_ops")
        return cursor.rowcount
