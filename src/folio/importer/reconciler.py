"""Exchange balance auto-import.

For every stored exchange credential, fetch balances and reconcile them into
that exchange's wallet. Only importer-owned assets (auto_sync=True) are ever
changed; manually entered assets for the same symbol are left alone.

HOW IT WORKS (per exchange, independently):
    1. Fetch balances with total > 0
    2. Find or create the exchange wallet
    3. For each balance, find the importer-owned asset, migrate exactly one
       legacy asset, or create a new one
    4. Write the amount only when it moved by more than AMOUNT_EPSILON

A failure for one exchange is logged and reported; the other exchanges still
run and the failed exchange's assets are not touched.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

import structlog

from folio.config import ImporterSettings
from folio.exceptions import FolioError
from folio.exchange.credentials import CredentialCipher
from folio.exchange.provider import BalanceProvider
from folio.logging import get_logger
from folio.models import ApiKey, Asset, ExchangeBalance, Wallet, WalletType, now_ms
from folio.scheduling import PeriodicTask
from folio.store.store import RecordStore

logger = get_logger(__name__)

AMOUNT_EPSILON = Decimal("0.00000001")


class ImporterState(str, Enum):
    """Phase of the current import run."""

    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"


@dataclass
class ExchangeImportResult:
    """Outcome of reconciling one exchange."""

    exchange: str
    success: bool
    wallet_id: int | None = None
    created: int = 0
    updated: int = 0
    migrated: int = 0
    unchanged: int = 0
    error: str | None = None


@dataclass
class ImportReport:
    """Outcome of one import run across all exchanges."""

    started_at: int
    finished_at: int | None = None
    results: list[ExchangeImportResult] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [r.exchange for r in self.results if not r.success]


class AutoImportReconciler(PeriodicTask):
    """Periodic exchange-balance importer.

    Args:
        store: Record store holding credentials, wallets and assets.
        provider: Balance provider used to query each exchange.
        cipher: Decrypts stored credentials flagged is_encrypted.
        settings: Importer settings (interval).
        clock: Returns the current time in epoch milliseconds.
    """

    name = "auto_importer"

    def __init__(
        self,
        store: RecordStore,
        provider: BalanceProvider,
        cipher: CredentialCipher,
        settings: ImporterSettings,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(settings.interval_seconds)
        self._store = store
        self._provider = provider
        self._cipher = cipher
        self._clock = clock
        self._state = ImporterState.IDLE
        self._last_report: ImportReport | None = None

    @property
    def state(self) -> ImporterState:
        return self._state

    @property
    def last_report(self) -> ImportReport | None:
        return self._last_report

    async def run_once(self) -> ImportReport:
        """Import balances for every stored credential."""
        report = ImportReport(started_at=self._clock())
        keys = await self._store.list_api_keys()
        if not keys:
            logger.debug("import_skipped_no_credentials")

        try:
            for key in keys:
                report.results.append(await self._import_exchange(key))
        finally:
            self._state = ImporterState.IDLE

        report.finished_at = self._clock()
        self._last_report = report
        logger.info(
            "import_run_completed",
            exchanges=len(report.results),
            failed=report.failed,
            duration_ms=report.finished_at - report.started_at,
        )
        return report

    async def _import_exchange(self, key: ApiKey) -> ExchangeImportResult:
        result = ExchangeImportResult(exchange=key.exchange, success=False)
        with structlog.contextvars.bound_contextvars(exchange=key.exchange):
            try:
                self._state = ImporterState.FETCHING
                credentials = self._cipher.open(key)
                balances = await self._provider.fetch_balances(
                    credentials.exchange,
                    credentials.api_key,
                    credentials.api_secret,
                    credentials.password,
                )
                if key.id is not None:
                    await self._store.touch_api_key(key.id, self._clock())

                self._state = ImporterState.RECONCILING
                await self._reconcile(key.exchange, balances, result)
                result.success = True
            except asyncio.CancelledError:
                raise
            except FolioError as e:
                result.error = str(e)
                logger.error("import_exchange_failed", error=str(e))
            except Exception as e:
                result.error = str(e)
                logger.error("import_exchange_failed", error=str(e), exc_info=True)
        return result

    async def _resolve_wallet(self, exchange: str) -> Wallet:
        wallet = await self._store.find_exchange_wallet(exchange)
        if wallet is not None:
            return wallet
        wallet = await self._store.create_wallet(
            Wallet(
                name=exchange.upper(),
                type=WalletType.EXCHANGE,
                exchange_name=exchange.lower(),
                created_at=self._clock(),
            )
        )
        logger.info("exchange_wallet_created", wallet_id=wallet.id)
        return wallet

    async def _reconcile(
        self,
        exchange: str,
        balances: list[ExchangeBalance],
        result: ExchangeImportResult,
    ) -> None:
        wallet = await self._resolve_wallet(exchange)
        assert wallet.id is not None
        result.wallet_id = wallet.id
        existing = await self._store.list_assets(wallet.id)

        for balance in balances:
            if balance.total <= 0:
                continue
            symbol = balance.symbol.upper()
            same_symbol = [a for a in existing if a.symbol.upper() == symbol]
            owned = next((a for a in same_symbol if a.auto_sync is True), None)

            if owned is None:
                owned = await self._migrate_legacy(same_symbol)
                if owned is not None:
                    result.migrated += 1

            if owned is None:
                now = self._clock()
                created = await self._store.create_asset(
                    Asset(
                        wallet_id=wallet.id,
                        symbol=symbol,
                        amount=balance.total,
                        notes=f"Auto-imported from {exchange}",
                        auto_sync=True,
                        created_at=now,
                        updated_at=now,
                    )
                )
                existing.append(created)
                result.created += 1
                logger.info("import_asset_created", symbol=symbol, amount=str(balance.total))
                continue

            assert owned.id is not None
            if abs(owned.amount - balance.total) > AMOUNT_EPSILON:
                await self._store.update_asset(owned.id, {"amount": balance.total})
                logger.info(
                    "import_asset_updated",
                    symbol=symbol,
                    previous=str(owned.amount),
                    amount=str(balance.total),
                )
                owned.amount = balance.total
                result.updated += 1
            else:
                result.unchanged += 1

    async def _migrate_legacy(self, same_symbol: list[Asset]) -> Asset | None:
        """Adopt the single pre-flag asset for a symbol, if there is exactly one.

        Zero or several candidates means ownership is ambiguous, so nothing
        is migrated. A candidate with notes or an Earn config is manual.
        """
        candidates = [a for a in same_symbol if a.auto_sync is None]
        if len(candidates) != 1:
            return None
        candidate = candidates[0]
        if candidate.notes or candidate.earn_config is not None:
            return None
        assert candidate.id is not None
        await self._store.update_asset(candidate.id, {"auto_sync": True})
        candidate.auto_sync = True
        logger.info("import_asset_migrated", asset_id=candidate.id, symbol=candidate.symbol)
        return candidate
