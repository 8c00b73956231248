"""Tests for the ccxt-backed balance provider.

The ccxt exchange instance is replaced by a factory returning a mock, so no
network calls are made.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import ccxt.async_support as ccxt_async
import pytest

from folio.exceptions import BalanceFetchError, UnsupportedExchange
from folio.exchange.provider import CcxtBalanceProvider, parse_ccxt_balance

RAW_BALANCE = {
    "free": {"BTC": 0.4, "usdt": 100.0, "DUST": 0.0},
    "used": {"BTC": 0.1, "usdt": 0.0, "DUST": 0.0},
    "total": {"BTC": 0.5, "usdt": 100.0, "DUST": 0.0, "ETH": None},
    "info": {},
}


def _mock_exchange(balance: dict | None = None, error: Exception | None = None) -> MagicMock:
    exchange = MagicMock()
    if error is not None:
        exchange.fetch_balance = AsyncMock(side_effect=error)
    else:
        exchange.fetch_balance = AsyncMock(return_value=balance or RAW_BALANCE)
    exchange.close = AsyncMock()
    return exchange


class TestParseCcxtBalance:
    def test_keeps_positive_totals_only(self) -> None:
        balances = parse_ccxt_balance(RAW_BALANCE)
        assert [b.symbol for b in balances] == ["BTC", "USDT"]

    def test_values_are_decimal(self) -> None:
        btc = parse_ccxt_balance(RAW_BALANCE)[0]
        assert btc.total == Decimal("0.5")
        assert btc.free == Decimal("0.4")
        assert btc.used == Decimal("0.1")

    def test_empty_structure(self) -> None:
        assert parse_ccxt_balance({}) == []


class TestCcxtBalanceProvider:
    @pytest.mark.asyncio
    async def test_fetch_builds_client_with_credentials(self) -> None:
        exchange = _mock_exchange()
        factory = MagicMock(return_value=exchange)
        provider = CcxtBalanceProvider(exchange_factory=factory)

        balances = await provider.fetch_balances("Binance", "key", "secret")

        factory.assert_called_once()
        exchange_id, config = factory.call_args.args
        assert exchange_id == "binance"
        assert config["apiKey"] == "key"
        assert config["secret"] == "secret"
        assert "password" not in config
        assert len(balances) == 2
        exchange.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_password_passed_through(self) -> None:
        factory = MagicMock(return_value=_mock_exchange())
        await CcxtBalanceProvider(exchange_factory=factory).fetch_balances("okx", "k", "s", password="p")
        assert factory.call_args.args[1]["password"] == "p"

    @pytest.mark.asyncio
    async def test_ccxt_error_becomes_balance_fetch_error(self) -> None:
        exchange = _mock_exchange(error=ccxt_async.NetworkError("connection reset"))
        provider = CcxtBalanceProvider(exchange_factory=MagicMock(return_value=exchange))

        with pytest.raises(BalanceFetchError, match="connection reset"):
            await provider.fetch_balances("binance", "key", "secret")
        exchange.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_auth_error_becomes_balance_fetch_error(self) -> None:
        exchange = _mock_exchange(error=ccxt_async.AuthenticationError("invalid api key"))
        provider = CcxtBalanceProvider(exchange_factory=MagicMock(return_value=exchange))

        with pytest.raises(BalanceFetchError):
            await provider.fetch_balances("binance", "key", "secret")

    @pytest.mark.asyncio
    async def test_unknown_exchange_rejected_before_connecting(self) -> None:
        factory = MagicMock()
        provider = CcxtBalanceProvider(exchange_factory=factory)

        with pytest.raises(UnsupportedExchange):
            await provider.fetch_balances("not-a-real-exchange", "key", "secret")
        factory.assert_not_called()

    def test_supports_known_ids(self) -> None:
        provider = CcxtBalanceProvider()
        assert provider.supports("binance") is True
        assert provider.supports("KRAKEN") is True
        assert provider.supports("nowhere") is False
