"""Price lookup -- CoinGecko provider, refresh task and symbol mapping."""

from folio.prices.provider import CoinGeckoPriceProvider, PriceProvider, PriceRefresher
from folio.prices.symbols import SYMBOL_TO_COINGECKO, resolve_coin_id

__all__ = [
    "CoinGeckoPriceProvider",
    "PriceProvider",
    "PriceRefresher",
    "SYMBOL_TO_COINGECKO",
    "resolve_coin_id",
]
