"""Ticker symbol to CoinGecko coin id resolution.

A static table covers the common symbols. User-defined custom coins take
precedence; anything else falls back to the lower-cased symbol.
"""

from folio.models import CustomCoin

# Static mapping from ticker symbols to CoinGecko coin IDs
SYMBOL_TO_COINGECKO: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "WETH": "ethereum",
    "OPETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "SOL": "solana",
    "USDC": "usd-coin",
    "COMP": "compound-governance-token",
    "CRO": "crypto-com-chain",
    "POL": "polygon-ecosystem-token",
    "XPIN": "xpin-network",
    "XAUT": "tether-gold",
    "USD1": "usd1-wlfi",
    "XDAI": "xdai",
    "STETH": "staked-ether",
    "WBTC": "wrapped-bitcoin",
    "MATIC": "matic-network",
}


def custom_coin_index(custom_coins: list[CustomCoin]) -> dict[str, str]:
    """Upper-cased symbol -> coin id for user-defined coins."""
    return {coin.symbol.upper(): coin.coin_gecko_id for coin in custom_coins}


def resolve_coin_id(symbol: str, custom: dict[str, str] | None = None) -> str:
    """Map a ticker symbol to its price id. Case-insensitive."""
    key = symbol.strip().upper()
    if custom and key in custom:
        return custom[key]
    return SYMBOL_TO_COINGECKO.get(key, symbol.strip().lower())
