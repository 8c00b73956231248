"""JSON wire mapping for the full-state sync payload and the HTTP API.

Records are emitted in snake_case with Decimal amounts as strings. Parsing
accepts either snake_case or camelCase on every field, numeric or string
amounts, and second- or millisecond-resolution timestamps.
"""

from decimal import Decimal
from typing import Any

from folio.exceptions import ValidationError
from folio.models import (
    ApiKey,
    Asset,
    CustomCoin,
    EarnConfig,
    ExchangeBalance,
    IdMap,
    PortfolioSnapshot,
    PricePoint,
    PriceQuote,
    SyncState,
    Wallet,
    WalletType,
    now_ms,
    pick_field,
    to_decimal,
)

# Below this an epoch value is in seconds (1e11 ms is March 1973).
_SECONDS_CUTOFF = 100_000_000_000

_WALLET_KEYS = {
    "name": ("name",),
    "type": ("type",),
    "exchange_name": ("exchange_name", "exchangeName"),
    "color": ("color",),
}

_ASSET_KEYS = {
    "wallet_id": ("wallet_id", "walletId"),
    "symbol": ("symbol",),
    "amount": ("amount",),
    "tags": ("tags",),
    "notes": ("notes",),
    "auto_sync": ("auto_sync", "autoSync"),
    "earn_config": ("earn_config", "earnConfig"),
}


def parse_timestamp(value: Any, default: int | None = None) -> int:
    """Epoch milliseconds from a seconds or milliseconds value."""
    if value is None or value == "":
        if default is None:
            return now_ms()
        return default
    try:
        ts = int(float(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if 0 < ts < _SECONDS_CUTOFF:
        ts *= 1000
    return ts


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {name}: {value!r}") from e


def _parse_optional_id(data: dict) -> int | None:
    value = pick_field(data, "id")
    return None if value is None else _parse_int(value, "id")


def _parse_wallet_type(value: Any) -> WalletType:
    try:
        return WalletType(str(value).lower())
    except ValueError as e:
        raise ValidationError(f"Invalid wallet type: {value!r}") from e


def _parse_auto_sync(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _parse_earn(value: Any, default_last_payout_at: int) -> EarnConfig | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError("earn_config must be an object")
    return EarnConfig.from_dict(value, default_last_payout_at=default_last_payout_at)


def _first_present(data: dict, keys: tuple[str, ...]) -> tuple[bool, Any]:
    """(present, value) for the first spelling present, None values included."""
    for key in keys:
        if key in data:
            return True, data[key]
    return False, None


# ──────────────────────────────────────────────
# Wallets
# ──────────────────────────────────────────────


def wallet_to_wire(wallet: Wallet) -> dict:
    return {
        "id": wallet.id,
        "name": wallet.name,
        "type": wallet.type.value,
        "exchange_name": wallet.exchange_name,
        "color": wallet.color,
        "created_at": wallet.created_at,
    }


def wallet_from_wire(data: dict) -> Wallet:
    if not isinstance(data, dict):
        raise ValidationError("Wallet must be an object")
    return Wallet(
        id=_parse_optional_id(data),
        name=str(pick_field(data, "name", default="")),
        type=_parse_wallet_type(pick_field(data, "type", default="hot")),
        exchange_name=pick_field(data, "exchange_name", "exchangeName"),
        color=pick_field(data, "color"),
        created_at=parse_timestamp(pick_field(data, "created_at", "createdAt")),
    )


def wallet_changes_from_wire(data: dict) -> dict[str, Any]:
    """Partial wallet update; only fields present in data are returned."""
    if not isinstance(data, dict):
        raise ValidationError("Wallet update must be an object")
    changes: dict[str, Any] = {}
    for field_name, keys in _WALLET_KEYS.items():
        present, value = _first_present(data, keys)
        if not present:
            continue
        if field_name == "type":
            value = _parse_wallet_type(value)
        elif field_name == "name":
            value = "" if value is None else str(value)
        changes[field_name] = value
    return changes


# ──────────────────────────────────────────────
# Assets
# ──────────────────────────────────────────────


def asset_to_wire(asset: Asset) -> dict:
    return {
        "id": asset.id,
        "wallet_id": asset.wallet_id,
        "symbol": asset.symbol,
        "amount": str(asset.amount),
        "tags": asset.tags,
        "notes": asset.notes,
        "auto_sync": asset.auto_sync,
        "earn_config": asset.earn_config.to_dict() if asset.earn_config else None,
        "created_at": asset.created_at,
        "updated_at": asset.updated_at,
    }


def asset_from_wire(data: dict) -> Asset:
    if not isinstance(data, dict):
        raise ValidationError("Asset must be an object")
    created_at = parse_timestamp(pick_field(data, "created_at", "createdAt"))
    return Asset(
        id=_parse_optional_id(data),
        wallet_id=_parse_int(pick_field(data, "wallet_id", "walletId"), "wallet_id"),
        symbol=str(pick_field(data, "symbol", default="")).strip(),
        amount=to_decimal(pick_field(data, "amount")),
        tags=pick_field(data, "tags"),
        notes=pick_field(data, "notes"),
        auto_sync=_parse_auto_sync(pick_field(data, "auto_sync", "autoSync")),
        earn_config=_parse_earn(pick_field(data, "earn_config", "earnConfig"), created_at),
        created_at=created_at,
        updated_at=parse_timestamp(pick_field(data, "updated_at", "updatedAt"), default=created_at),
    )


def asset_changes_from_wire(data: dict, now: int | None = None) -> dict[str, Any]:
    """Partial asset update; only fields present in data are returned.

    An earn_config without last_payout_at starts its first period at now.
    """
    if not isinstance(data, dict):
        raise ValidationError("Asset update must be an object")
    changes: dict[str, Any] = {}
    for field_name, keys in _ASSET_KEYS.items():
        present, value = _first_present(data, keys)
        if not present:
            continue
        if field_name == "wallet_id":
            value = _parse_int(value, "wallet_id")
        elif field_name == "amount":
            value = to_decimal(value)
        elif field_name == "symbol":
            value = "" if value is None else str(value).strip()
        elif field_name == "auto_sync":
            value = _parse_auto_sync(value)
        elif field_name == "earn_config":
            value = _parse_earn(value, now if now is not None else now_ms())
        changes[field_name] = value
    return changes


# ──────────────────────────────────────────────
# Custom coins, credentials, snapshots, balances
# ──────────────────────────────────────────────


def coin_to_wire(coin: CustomCoin) -> dict:
    return {
        "id": coin.id,
        "symbol": coin.symbol,
        "name": coin.name,
        "coin_gecko_id": coin.coin_gecko_id,
        "is_custom": coin.is_custom,
        "created_at": coin.created_at,
    }


def coin_from_wire(data: dict) -> CustomCoin:
    if not isinstance(data, dict):
        raise ValidationError("Custom coin must be an object")
    symbol = str(pick_field(data, "symbol", default="")).strip()
    coin_gecko_id = str(pick_field(data, "coin_gecko_id", "coinGeckoId", default="")).strip()
    if not symbol or not coin_gecko_id:
        raise ValidationError("Custom coin requires symbol and coin_gecko_id")
    return CustomCoin(
        id=_parse_optional_id(data),
        symbol=symbol,
        name=str(pick_field(data, "name", default=symbol)),
        coin_gecko_id=coin_gecko_id,
        is_custom=bool(pick_field(data, "is_custom", "isCustom", default=True)),
        created_at=parse_timestamp(pick_field(data, "created_at", "createdAt")),
    )


def api_key_to_wire(key: ApiKey) -> dict:
    """Credential summary without secrets."""
    return {
        "id": key.id,
        "exchange": key.exchange,
        "is_encrypted": key.is_encrypted,
        "created_at": key.created_at,
        "last_used": key.last_used,
    }


def api_key_from_wire(data: dict) -> ApiKey:
    if not isinstance(data, dict):
        raise ValidationError("Credentials must be an object")
    exchange = str(pick_field(data, "exchange", default="")).strip()
    api_key = pick_field(data, "api_key", "apiKey")
    api_secret = pick_field(data, "api_secret", "apiSecret", "secret")
    if not exchange or not api_key or not api_secret:
        raise ValidationError("exchange, api_key and api_secret are required")
    return ApiKey(
        exchange=exchange,
        api_key=str(api_key),
        api_secret=str(api_secret),
        password=pick_field(data, "password", "passphrase"),
    )


def snapshot_to_wire(snapshot: PortfolioSnapshot) -> dict:
    return {
        "id": snapshot.id,
        "timestamp": snapshot.timestamp,
        "total_value": str(snapshot.total_value),
        "snapshot_data": snapshot.snapshot_data,
    }


def price_point_to_wire(point: PricePoint) -> dict:
    return {"timestamp": point.timestamp, "price_usd": str(point.price_usd)}


def quote_to_wire(quote: PriceQuote) -> dict:
    return {
        "coin_id": quote.coin_id,
        "price_usd": str(quote.price_usd),
        "change_24h": str(quote.change_24h) if quote.change_24h is not None else None,
        "last_updated": quote.last_updated,
    }


def balance_to_wire(balance: ExchangeBalance) -> dict:
    return {
        "symbol": balance.symbol,
        "free": str(balance.free),
        "used": str(balance.used),
        "total": str(balance.total),
    }


# ──────────────────────────────────────────────
# Full state
# ──────────────────────────────────────────────


def state_to_wire(state: SyncState) -> dict:
    return {
        "wallets": [wallet_to_wire(w) for w in state.wallets],
        "assets": [asset_to_wire(a) for a in state.assets],
        "customCoins": [coin_to_wire(c) for c in state.custom_coins],
        "timestamp": state.timestamp,
    }


def state_from_wire(data: Any) -> SyncState:
    """Parse a full-state payload. Raises ValidationError on malformed records."""
    if not isinstance(data, dict):
        raise ValidationError("Sync payload must be an object")
    wallets = pick_field(data, "wallets", default=[])
    assets = pick_field(data, "assets", default=[])
    coins = pick_field(data, "customCoins", "custom_coins", default=[])
    if not all(isinstance(v, list) for v in (wallets, assets, coins)):
        raise ValidationError("wallets, assets and customCoins must be lists")
    return SyncState(
        wallets=[wallet_from_wire(w) for w in wallets],
        assets=[asset_from_wire(a) for a in assets],
        custom_coins=[coin_from_wire(c) for c in coins],
        timestamp=parse_timestamp(pick_field(data, "timestamp")),
    )


def id_map_to_wire(id_map: IdMap) -> dict:
    return {
        "wallets": {str(k): v for k, v in id_map.wallets.items()},
        "assets": {str(k): v for k, v in id_map.assets.items()},
    }


def id_map_from_wire(data: Any) -> IdMap:
    if not isinstance(data, dict):
        return IdMap()
    return IdMap(
        wallets={int(k): int(v) for k, v in (data.get("wallets") or {}).items()},
        assets={int(k): int(v) for k, v in (data.get("assets") or {}).items()},
    )


def changes_to_wire(changes: dict[str, Any]) -> dict:
    """Serialize a partial update built by the *_changes_from_wire helpers."""
    wire: dict[str, Any] = {}
    for name, value in changes.items():
        if isinstance(value, WalletType):
            value = value.value
        elif isinstance(value, EarnConfig):
            value = value.to_dict()
        elif isinstance(value, Decimal):
            value = str(value)
        wire[name] = value
    return wire
