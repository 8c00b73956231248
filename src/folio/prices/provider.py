"""Latest USD prices from CoinGecko.

PriceProvider is the contract the refresh task depends on.
CoinGeckoPriceProvider calls /simple/price over httpx. PriceRefresher polls
on an interval, writes the results into the latest_prices cache that the
snapshot scheduler reads, and keeps a per-coin price history for
history_retention_days.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

import httpx

from folio.config import PriceSettings
from folio.logging import get_logger
from folio.models import PriceQuote, now_ms
from folio.prices.symbols import custom_coin_index, resolve_coin_id
from folio.scheduling import PeriodicTask
from folio.store.store import RecordStore

logger = get_logger(__name__)


class PriceProvider(ABC):
    """Abstract source of USD prices keyed by coin id."""

    @abstractmethod
    async def fetch_prices(self, coin_ids: list[str]) -> dict[str, Decimal]:
        """Return USD prices for the ids that the source knows about."""
        ...

    @abstractmethod
    async def fetch_quotes(self, coin_ids: list[str]) -> list[PriceQuote]:
        """Return price quotes for the ids that the source knows about."""
        ...

    async def close(self) -> None:
        """Release any network resources."""


class CoinGeckoPriceProvider(PriceProvider):
    """CoinGecko /simple/price client.

    Args:
        settings: Price settings (API base URL and request timeout).
        client: Optional pre-built httpx.AsyncClient, closed by the caller.
    """

    def __init__(
        self,
        settings: PriceSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.api_base,
            timeout=settings.request_timeout,
            headers={"Accept": "application/json", "User-Agent": "folio/0.1"},
        )

    async def fetch_prices(self, coin_ids: list[str]) -> dict[str, Decimal]:
        quotes = await self.fetch_quotes(coin_ids)
        return {quote.coin_id: quote.price_usd for quote in quotes}

    async def fetch_quotes(self, coin_ids: list[str]) -> list[PriceQuote]:
        """Prices with 24h change, in the order the ids were asked for.

        Ids CoinGecko does not know are left out. last_updated is epoch ms.
        """
        if not coin_ids:
            return []
        response = await self._client.get(
            "/simple/price",
            params={
                "ids": ",".join(sorted(set(coin_ids))),
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_last_updated_at": "true",
            },
        )
        response.raise_for_status()
        data = response.json()

        quotes: list[PriceQuote] = []
        seen: set[str] = set()
        for coin_id in coin_ids:
            entry = data.get(coin_id)
            if coin_id in seen or not isinstance(entry, dict) or entry.get("usd") is None:
                continue
            seen.add(coin_id)
            change = entry.get("usd_24h_change")
            updated = entry.get("last_updated_at")
            quotes.append(
                PriceQuote(
                    coin_id=coin_id,
                    price_usd=Decimal(str(entry["usd"])),
                    change_24h=Decimal(str(change)) if change is not None else None,
                    last_updated=int(updated) * 1000 if updated is not None else None,
                )
            )
        missing = set(coin_ids) - seen
        if missing:
            logger.debug("coingecko_prices_missing", coins=sorted(missing))
        return quotes

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class PriceRefresher(PeriodicTask):
    """Periodically refresh the latest-price cache and append to price history.

    Coin ids are the configured tracked set plus every id resolved from the
    symbols currently held.
    """

    name = "price_refresher"

    def __init__(
        self,
        store: RecordStore,
        provider: PriceProvider,
        settings: PriceSettings,
    ) -> None:
        super().__init__(settings.refresh_interval_seconds)
        self._store = store
        self._provider = provider
        self._settings = settings
        self._last_refresh: int | None = None
        self._history_retention_ms = settings.history_retention_days * 24 * 3600 * 1000

    @property
    def last_refresh(self) -> int | None:
        return self._last_refresh

    async def _coin_ids(self) -> list[str]:
        custom = custom_coin_index(await self._store.list_custom_coins())
        ids = set(self._settings.tracked_coins)
        for asset in await self._store.list_assets():
            ids.add(resolve_coin_id(asset.symbol, custom))
        return sorted(ids)

    async def run_once(self) -> int:
        """Fetch and store prices. Returns the number of prices written."""
        coin_ids = await self._coin_ids()
        try:
            prices = await self._provider.fetch_prices(coin_ids)
        except httpx.HTTPError as e:
            logger.warning("price_refresh_failed", error=str(e), coins=len(coin_ids))
            return 0

        timestamp = now_ms()
        written = await self._store.upsert_latest_prices(prices, timestamp)
        recorded = await self._store.insert_price_history(prices, timestamp)
        pruned = await self._store.prune_price_history(timestamp - self._history_retention_ms)
        self._last_refresh = timestamp
        logger.info(
            "prices_refreshed",
            requested=len(coin_ids),
            written=written,
            history_recorded=recorded,
            history_pruned=pruned,
        )
        return written
