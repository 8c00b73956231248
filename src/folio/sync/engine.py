"""Client-side sync and hydration against the server-of-record.

The local store is a replica. On startup (and on demand) it is hydrated: the
server's full state replaces the local collections in one transaction, never
merged. Between hydrations every mutation is written through to the server.

Write-through is deliberately asymmetric:
    - creates go to the server first; the server assigns the id and the record
      is stored locally under it. If the server is unreachable the record is
      stored under a negative placeholder id and the create is queued.
    - updates and deletes are applied locally whatever the server outcome; a
      failed call is queued.
A server rejection (4xx) raises SyncRejected and nothing is applied locally.
Queued operations are replayed in order before the next pull, and placeholder
ids are remapped to server ids as their creates succeed.

Connectivity problems never raise: they are reported through SyncStatus and
SyncResult.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from folio.config import SyncSettings
from folio.exceptions import (
    StoreTransactionError,
    SyncRejected,
    SyncUnavailable,
    ValidationError,
)
from folio.logging import get_logger
from folio.models import (
    Asset,
    Collection,
    PendingOp,
    PendingOpKind,
    SyncResult,
    SyncStatus,
    Wallet,
    is_placeholder_id,
    now_ms,
    validate_asset,
    validate_wallet,
)
from folio.portfolio.manager import PortfolioManager
from folio.store.store import RecordStore
from folio.sync.client import SyncClient
from folio.sync.wire import (
    asset_from_wire,
    asset_to_wire,
    changes_to_wire,
    wallet_from_wire,
    wallet_to_wire,
)

logger = get_logger(__name__)

OFFLINE_ERROR = "Backend offline - using local data"
TIMEOUT_ERROR = "Sync timed out - using local data"
IN_PROGRESS_ERROR = "Sync already in progress"
RATE_LIMITED_ERROR = "Rate limited"


class SyncEngine:
    """Keeps a client-local store consistent with the server-of-record.

    Args:
        store: The client-local record store.
        client: HTTP client for the server-of-record.
        settings: Sync timeouts and push rate limit.
        clock: Returns the current time in epoch milliseconds.

    Usage:
        engine = SyncEngine(store, SyncClient(settings), settings)
        await engine.start()           # first hydration, never raises
        wallet = await engine.create_wallet(Wallet(name="Ledger", type=WalletType.COLD))
        await engine.close()
    """

    def __init__(
        self,
        store: RecordStore,
        client: SyncClient,
        settings: SyncSettings,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._client = client
        self._settings = settings
        self._clock = clock
        self._manager = PortfolioManager(store, clock)

        self._status = SyncStatus()
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._hydrating = False
        self._last_push: float | None = None

    @property
    def status(self) -> SyncStatus:
        return replace(self._status)

    @property
    def manager(self) -> PortfolioManager:
        return self._manager

    async def start(self) -> SyncResult:
        """Run the first hydration. Writes wait until it has settled."""
        logger.info("sync_engine_starting", base_url=self._settings.base_url)
        return await self.hydrate()

    async def close(self) -> None:
        await self._client.close()
        logger.info("sync_engine_closed")

    async def has_local_data(self) -> bool:
        """True if the local replica can be shown before hydration completes."""
        return await self._store.has_data()

    # ──────────────────────────────────────────────
    # Pull
    # ──────────────────────────────────────────────

    async def hydrate(self) -> SyncResult:
        """Replace local state with the server's, bounded by hydrate_timeout."""
        if self._hydrating:
            logger.warning("sync_hydrate_rejected_in_progress")
            return SyncResult(success=False, error=IN_PROGRESS_ERROR)

        self._hydrating = True
        self._status.is_syncing = True
        try:
            async with self._lock:
                try:
                    return await asyncio.wait_for(
                        self._hydrate_locked(), timeout=self._settings.hydrate_timeout
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        "sync_hydrate_timed_out", timeout=self._settings.hydrate_timeout
                    )
                    return self._fallback(TIMEOUT_ERROR, online=False)
        finally:
            self._hydrating = False
            self._status.is_syncing = False
            self._status.is_initial_sync = False
            self._status.pending_ops = await self._store.count_pending_ops()
            self._ready.set()

    async def sync_from_server(self) -> SyncResult:
        """Manual re-hydrate."""
        return await self.hydrate()

    async def _hydrate_locked(self) -> SyncResult:
        if not await self._client.health():
            logger.warning("sync_backend_offline")
            return self._fallback(OFFLINE_ERROR, online=False)

        try:
            await self._flush_outbox()
            state = await self._client.fetch_state()
            await self._store.replace_all(state)
        except SyncUnavailable as e:
            logger.warning("sync_hydrate_unavailable", error=str(e))
            return self._fallback(OFFLINE_ERROR, online=False)
        except (SyncRejected, ValidationError, StoreTransactionError) as e:
            logger.error("sync_hydrate_failed", error=str(e))
            return self._fallback(str(e), online=True)

        self._status.last_sync_time = self._clock()
        self._status.is_online = True
        self._status.error = None
        logger.info(
            "sync_hydrated",
            wallets=len(state.wallets),
            assets=len(state.assets),
            custom_coins=len(state.custom_coins),
        )
        return SyncResult(success=True, state=state)

    def _fallback(self, error: str, online: bool) -> SyncResult:
        self._status.is_online = online
        self._status.error = error
        return SyncResult(success=False, error=error)

    # ──────────────────────────────────────────────
    # Pending operations
    # ──────────────────────────────────────────────

    async def _enqueue(
        self, collection: Collection, op: PendingOpKind, record_id: int, payload: dict
    ) -> None:
        await self._store.enqueue_pending_op(
            PendingOp(
                collection=collection,
                op=op,
                record_id=record_id,
                payload=payload,
                created_at=self._clock(),
            )
        )
        self._status.pending_ops = await self._store.count_pending_ops()
        logger.info(
            "sync_op_queued",
            collection=collection.value,
            op=op.value,
            record_id=record_id,
        )

    async def _flush_outbox(self) -> None:
        """Replay queued operations oldest first.

        Ops are re-read after each replay because a successful create remaps
        ids inside the ops that follow it. SyncUnavailable aborts the flush.

        Each op runs in its own task and is shielded from the hydrate timeout:
        once a request is in flight, the server outcome and the local commit
        land together before the cancellation is honoured.
        """
        replayed = 0
        while True:
            ops = await self._store.list_pending_ops()
            if not ops:
                break
            task = asyncio.ensure_future(self._flush_one(ops[0]))
            try:
                if await asyncio.shield(task):
                    replayed += 1
            except asyncio.CancelledError:
                if not task.done():
                    await asyncio.wait([task])
                if not task.cancelled() and task.exception() is not None:
                    logger.warning("sync_op_replay_interrupted", error=str(task.exception()))
                raise
        if replayed:
            logger.info("sync_outbox_flushed", replayed=replayed)

    async def _flush_one(self, op: PendingOp) -> bool:
        """Replay one op. Returns False if the server rejected it and it was dropped."""
        assert op.id is not None
        try:
            await self._replay(op)
        except SyncRejected as e:
            logger.warning(
                "sync_op_dropped_rejected",
                collection=op.collection.value,
                op=op.op.value,
                record_id=op.record_id,
                status_code=e.status_code,
                error=str(e),
            )
            await self._store.delete_pending_op(op.id)
            return False
        return True

    async def _replay(self, op: PendingOp) -> None:
        """Send one queued op and settle it locally."""
        assert op.id is not None
        is_wallet = op.collection is Collection.WALLETS

        if op.op is PendingOpKind.CREATE:
            if is_wallet:
                server_id = (await self._client.create_wallet(wallet_from_wire(op.payload))).id
            else:
                if is_placeholder_id(int(op.payload.get("wallet_id", 0))):
                    raise SyncRejected("Asset wallet was never created on the server", 409)
                server_id = (await self._client.create_asset(asset_from_wire(op.payload))).id
            assert server_id is not None
            await self._store.remap_id(op.collection, op.record_id, server_id, op_id=op.id)
            return

        if is_placeholder_id(op.record_id):
            raise SyncRejected("Record was never created on the server", 409)

        if op.op is PendingOpKind.UPDATE:
            if is_wallet:
                await self._client.update_wallet(op.record_id, op.payload)
            else:
                await self._client.update_asset(op.record_id, op.payload)
        else:
            try:
                if is_wallet:
                    await self._client.delete_wallet(op.record_id)
                else:
                    await self._client.delete_asset(op.record_id)
            except SyncRejected as e:
                if e.status_code != 404:
                    raise
        await self._store.delete_pending_op(op.id)

    # ──────────────────────────────────────────────
    # Write-through
    # ──────────────────────────────────────────────

    async def _settled(self) -> None:
        """Block until the first hydration has finished, successfully or not."""
        await self._ready.wait()

    def _mark_unavailable(self, error: SyncUnavailable) -> None:
        self._status.is_online = False
        self._status.error = OFFLINE_ERROR
        logger.warning("sync_write_through_unavailable", error=str(error))

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        validate_wallet(wallet)
        await self._settled()
        async with self._lock:
            try:
                created = await self._client.create_wallet(replace(wallet, id=None))
            except SyncUnavailable as e:
                self._mark_unavailable(e)
                placeholder = await self._store.next_placeholder_id(Collection.WALLETS)
                local = await self._manager.create_wallet(replace(wallet, id=placeholder))
                await self._enqueue(
                    Collection.WALLETS, PendingOpKind.CREATE, placeholder, wallet_to_wire(local)
                )
                return local
            return await self._manager.create_wallet(created)

    async def update_wallet(self, wallet_id: int, changes: dict[str, Any]) -> Wallet:
        await self._settled()
        async with self._lock:
            await self._manager.merged_wallet(wallet_id, changes)
            queued = await self._write_through(
                wallet_id, lambda: self._client.update_wallet(wallet_id, changes_to_wire(changes))
            )
            updated = await self._manager.update_wallet(wallet_id, changes)
            if queued:
                await self._enqueue(
                    Collection.WALLETS, PendingOpKind.UPDATE, wallet_id, changes_to_wire(changes)
                )
            return updated

    async def delete_wallet(self, wallet_id: int) -> None:
        await self._settled()
        async with self._lock:
            wallet = await self._manager.get_wallet(wallet_id)
            if wallet.is_placeholder:
                await self._drop_placeholder_wallet_ops(wallet_id)
                await self._manager.delete_wallet(wallet_id)
                return
            queued = await self._write_through(
                wallet_id, lambda: self._client.delete_wallet(wallet_id), missing_ok=True
            )
            await self._manager.delete_wallet(wallet_id)
            if queued:
                await self._enqueue(Collection.WALLETS, PendingOpKind.DELETE, wallet_id, {})

    async def create_asset(self, asset: Asset) -> Asset:
        validate_asset(asset)
        await self._settled()
        async with self._lock:
            wallet = await self._manager.get_wallet(asset.wallet_id)
            if not wallet.is_placeholder:
                try:
                    created = await self._client.create_asset(replace(asset, id=None))
                except SyncUnavailable as e:
                    self._mark_unavailable(e)
                else:
                    return await self._manager.create_asset(created)

            placeholder = await self._store.next_placeholder_id(Collection.ASSETS)
            local = await self._manager.create_asset(replace(asset, id=placeholder))
            await self._enqueue(
                Collection.ASSETS, PendingOpKind.CREATE, placeholder, asset_to_wire(local)
            )
            return local

    async def update_asset(self, asset_id: int, changes: dict[str, Any]) -> Asset:
        await self._settled()
        async with self._lock:
            merged = await self._manager.merged_asset(asset_id, changes)
            await self._manager.get_wallet(merged.wallet_id)
            queued = await self._write_through(
                asset_id, lambda: self._client.update_asset(asset_id, changes_to_wire(changes))
            )
            updated = await self._manager.update_asset(asset_id, changes)
            if queued:
                await self._enqueue(
                    Collection.ASSETS, PendingOpKind.UPDATE, asset_id, changes_to_wire(changes)
                )
            return updated

    async def delete_asset(self, asset_id: int) -> None:
        await self._settled()
        async with self._lock:
            existing = await self._manager.merged_asset(asset_id, {})
            if existing.is_placeholder:
                await self._store.delete_pending_ops_for(Collection.ASSETS, asset_id)
                await self._manager.delete_asset(asset_id)
                self._status.pending_ops = await self._store.count_pending_ops()
                return
            queued = await self._write_through(
                asset_id, lambda: self._client.delete_asset(asset_id), missing_ok=True
            )
            await self._manager.delete_asset(asset_id)
            if queued:
                await self._enqueue(Collection.ASSETS, PendingOpKind.DELETE, asset_id, {})

    async def _write_through(
        self,
        record_id: int,
        call: Callable[[], Any],
        missing_ok: bool = False,
    ) -> bool:
        """Send an update/delete to the server. Returns True if it must be queued.

        Placeholder records are always queued. SyncRejected propagates unless
        missing_ok and the server reported 404.
        """
        if is_placeholder_id(record_id):
            return True
        try:
            await call()
        except SyncUnavailable as e:
            self._mark_unavailable(e)
            return True
        except SyncRejected as e:
            if missing_ok and e.status_code == 404:
                return False
            raise
        return False

    async def _drop_placeholder_wallet_ops(self, wallet_id: int) -> None:
        for asset in await self._store.list_assets(wallet_id):
            if asset.id is not None:
                await self._store.delete_pending_ops_for(Collection.ASSETS, asset.id)
        dropped = await self._store.delete_pending_ops_for(Collection.WALLETS, wallet_id)
        self._status.pending_ops = await self._store.count_pending_ops()
        logger.info("sync_placeholder_ops_dropped", wallet_id=wallet_id, dropped=dropped)

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def list_wallets(self) -> list[Wallet]:
        return await self._manager.list_wallets()

    async def list_assets(self, wallet_id: int | None = None) -> list[Asset]:
        return await self._manager.list_assets(wallet_id)

    # ──────────────────────────────────────────────
    # Push
    # ──────────────────────────────────────────────

    async def push(self) -> SyncResult:
        """Push the full local state to the server, replacing its collections."""
        now = time.monotonic()
        if self._last_push is not None and now - self._last_push < self._settings.min_push_interval:
            logger.info("sync_push_rate_limited")
            return SyncResult(success=False, error=RATE_LIMITED_ERROR)
        self._last_push = now

        await self._settled()
        async with self._lock:
            state = await self._store.export_state()
            try:
                id_map = await self._client.push_state(state)
            except (SyncUnavailable, SyncRejected) as e:
                logger.warning("sync_push_failed", error=str(e))
                self._status.error = str(e)
                if isinstance(e, SyncUnavailable):
                    self._status.is_online = False
                return SyncResult(success=False, error=str(e))

            for old_id, new_id in id_map.wallets.items():
                if old_id != new_id:
                    await self._store.remap_id(Collection.WALLETS, old_id, new_id)
            for old_id, new_id in id_map.assets.items():
                if old_id != new_id:
                    await self._store.remap_id(Collection.ASSETS, old_id, new_id)
            await self._store.clear_pending_ops()

            self._status.pending_ops = 0
            self._status.is_online = True
            self._status.error = None
            self._status.last_sync_time = self._clock()
            logger.info(
                "sync_pushed",
                wallets=len(state.wallets),
                assets=len(state.assets),
                remapped=len(id_map.wallets) + len(id_map.assets),
            )
            return SyncResult(success=True, state=state, id_map=id_map)
