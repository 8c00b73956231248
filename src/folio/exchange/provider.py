"""Exchange balance providers.

Defines the contract the auto-importer depends on, plus a ccxt-backed
implementation that opens a short-lived client per request.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any

import ccxt.async_support as ccxt_async

from folio.exceptions import BalanceFetchError, UnsupportedExchange
from folio.logging import get_logger
from folio.models import ExchangeBalance

logger = get_logger(__name__)


class BalanceProvider(ABC):
    """Abstract source of per-currency exchange balances."""

    @abstractmethod
    def supports(self, exchange: str) -> bool:
        """Return True if balances can be fetched for this exchange id."""
        ...

    @abstractmethod
    async def fetch_balances(
        self,
        exchange: str,
        api_key: str,
        api_secret: str,
        password: str | None = None,
    ) -> list[ExchangeBalance]:
        """Fetch balances with a positive total for one account.

        Raises UnsupportedExchange for an unknown exchange id and
        BalanceFetchError when the request fails.
        """
        ...


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def parse_ccxt_balance(balance: dict) -> list[ExchangeBalance]:
    """Convert a ccxt unified balance structure into ExchangeBalance rows.

    Only currencies with total > 0 are returned.
    """
    totals = balance.get("total") or {}
    free = balance.get("free") or {}
    used = balance.get("used") or {}

    result = []
    for symbol, raw_total in totals.items():
        total = _to_decimal(raw_total)
        if total <= 0:
            continue
        result.append(
            ExchangeBalance(
                symbol=symbol.upper(),
                free=_to_decimal(free.get(symbol)),
                used=_to_decimal(used.get(symbol)),
                total=total,
            )
        )
    return result


class CcxtBalanceProvider(BalanceProvider):
    """Balance provider backed by ccxt.async_support.

    A new exchange instance is created per fetch and always closed, since
    credentials differ per account and ccxt async leaks sessions otherwise.
    """

    def __init__(
        self,
        exchange_factory: Callable[[str, dict], Any] | None = None,
    ) -> None:
        self._factory = exchange_factory or self._default_factory

    @staticmethod
    def _default_factory(exchange_id: str, config: dict) -> Any:
        exchange_cls = getattr(ccxt_async, exchange_id)
        return exchange_cls(config)

    def supports(self, exchange: str) -> bool:
        return exchange.lower() in ccxt_async.exchanges

    async def fetch_balances(
        self,
        exchange: str,
        api_key: str,
        api_secret: str,
        password: str | None = None,
    ) -> list[ExchangeBalance]:
        exchange_id = exchange.lower()
        if not self.supports(exchange_id):
            raise UnsupportedExchange(f"Unsupported exchange: {exchange}")

        config: dict = {
            "apiKey": api_key,
            "secret": api_secret,
            "enableRateLimit": True,
        }
        if password:
            config["password"] = password

        client = self._factory(exchange_id, config)
        try:
            raw = await client.fetch_balance()
        except ccxt_async.BaseError as e:
            logger.warning("exchange_balance_fetch_failed", exchange=exchange_id, error=str(e))
            raise BalanceFetchError(f"{exchange_id}: {e}") from e
        finally:
            await client.close()

        balances = parse_ccxt_balance(raw)
        logger.debug("exchange_balances_fetched", exchange=exchange_id, count=len(balances))
        return balances
