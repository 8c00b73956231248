"""Shared data models for the portfolio tracker.

CRITICAL: All amounts and prices use Decimal. Never use float for balances.
All timestamps are Unix milliseconds.
"""

import math
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from folio.exceptions import ValidationError


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def is_placeholder_id(record_id: int | None) -> bool:
    """True for ids assigned locally before any server round-trip."""
    return record_id is not None and record_id < 0


class WalletType(str, Enum):
    """Where a wallet's funds live."""

    HOT = "hot"
    COLD = "cold"
    EXCHANGE = "exchange"


class InterestType(str, Enum):
    """How an Earn position pays out."""

    COMPOUND = "compound"
    SIMPLE = "simple"


class Collection(str, Enum):
    """Collections that take part in write-through sync."""

    WALLETS = "wallets"
    ASSETS = "assets"


class PendingOpKind(str, Enum):
    """Kind of a queued write-through operation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def pick_field(data: dict, *keys: str, default: Any = None) -> Any:
    """Return the first key present in data (snake_case or camelCase spelling)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class EarnConfig:
    """Staking/Earn configuration attached to an asset.

    last_payout_at is the boundary of the last applied payout period, not the
    time accrual last ran.
    """

    apy: Decimal  # percent, 0-100
    payout_interval_hours: int
    last_payout_at: int  # Unix milliseconds
    interest_type: InterestType = InterestType.COMPOUND
    enabled: bool = True

    @property
    def interval_ms(self) -> int:
        return self.payout_interval_hours * 3600 * 1000

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "apy": str(self.apy),
            "interest_type": self.interest_type.value,
            "payout_interval_hours": self.payout_interval_hours,
            "last_payout_at": self.last_payout_at,
        }

    @classmethod
    def from_dict(cls, data: dict, default_last_payout_at: int) -> "EarnConfig":
        """Build from a snake_case or camelCase dict.

        Raises ValidationError on malformed values.
        """
        try:
            return cls(
                enabled=bool(pick_field(data, "enabled", default=True)),
                apy=Decimal(str(pick_field(data, "apy", default="0"))),
                interest_type=InterestType(
                    pick_field(data, "interest_type", "interestType", default="compound")
                ),
                payout_interval_hours=int(
                    pick_field(data, "payout_interval_hours", "payoutIntervalHours", default=24)
                ),
                last_payout_at=int(
                    pick_field(
                        data,
                        "last_payout_at",
                        "lastPayoutAt",
                        default=default_last_payout_at,
                    )
                ),
            )
        except (ValueError, TypeError, InvalidOperation) as e:
            raise ValidationError(f"Invalid earn config: {e}") from e


@dataclass
class Wallet:
    """A user wallet. Exchange wallets are keyed by exchange_name."""

    name: str
    type: WalletType
    id: int | None = None
    exchange_name: str | None = None
    color: str | None = None
    created_at: int = field(default_factory=now_ms)

    @property
    def is_placeholder(self) -> bool:
        return is_placeholder_id(self.id)


@dataclass
class Asset:
    """A holding of one symbol inside a wallet.

    auto_sync=True: owned by the exchange importer.
    auto_sync=False: user-managed.
    auto_sync=None: flag never set (records older than the flag).
    """

    wallet_id: int
    symbol: str
    amount: Decimal
    id: int | None = None
    tags: str | None = None
    notes: str | None = None
    auto_sync: bool | None = None
    earn_config: EarnConfig | None = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    @property
    def is_placeholder(self) -> bool:
        return is_placeholder_id(self.id)


@dataclass
class ApiKey:
    """Exchange credentials. One record per exchange (case-insensitive)."""

    exchange: str
    api_key: str
    api_secret: str
    password: str | None = None
    is_encrypted: bool = False
    id: int | None = None
    created_at: int = field(default_factory=now_ms)
    last_used: int | None = None


@dataclass
class CustomCoin:
    """User-defined symbol -> CoinGecko id mapping."""

    symbol: str
    name: str
    coin_gecko_id: str
    is_custom: bool = True
    id: int | None = None
    created_at: int = field(default_factory=now_ms)


@dataclass
class PortfolioSnapshot:
    """Point-in-time portfolio valuation.

    snapshot_data: {"wallets": {wallet_id: value}, "coins": {symbol: {"amount", "value"}}}
    """

    timestamp: int
    total_value: Decimal
    snapshot_data: dict
    id: int | None = None


@dataclass
class PricePoint:
    """One recorded USD price for a coin at a refresh time."""

    coin_id: str
    price_usd: Decimal
    timestamp: int


@dataclass
class PriceQuote:
    """A price fetched on demand, with CoinGecko's 24h change when it has one."""

    coin_id: str
    price_usd: Decimal
    change_24h: Decimal | None = None
    last_updated: int | None = None


@dataclass
class ExchangeBalance:
    """One currency balance reported by an exchange."""

    symbol: str
    free: Decimal
    used: Decimal
    total: Decimal


@dataclass
class SyncState:
    """Full state exchanged between a local store and the server-of-record."""

    wallets: list[Wallet] = field(default_factory=list)
    assets: list[Asset] = field(default_factory=list)
    custom_coins: list[CustomCoin] = field(default_factory=list)
    timestamp: int = field(default_factory=now_ms)


@dataclass
class IdMap:
    """Identifier reassignments produced by a bulk replace (old id -> new id)."""

    wallets: dict[int, int] = field(default_factory=dict)
    assets: dict[int, int] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.wallets and not self.assets


@dataclass
class PendingOp:
    """A write-through operation that has not reached the server yet."""

    collection: Collection
    op: PendingOpKind
    record_id: int
    payload: dict = field(default_factory=dict)
    id: int | None = None
    created_at: int = field(default_factory=now_ms)


@dataclass
class SyncStatus:
    """Structured sync status surfaced to callers instead of exceptions."""

    is_initial_sync: bool = True
    is_syncing: bool = False
    last_sync_time: int | None = None
    error: str | None = None
    is_online: bool = False
    pending_ops: int = 0


@dataclass
class SyncResult:
    """Outcome of a full push or pull."""

    success: bool
    error: str | None = None
    state: SyncState | None = None
    id_map: IdMap | None = None


# ──────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────


def validate_earn_config(config: EarnConfig) -> None:
    if not Decimal("0") <= config.apy <= Decimal("100"):
        raise ValidationError(f"apy must be between 0 and 100, got {config.apy}")
    if config.payout_interval_hours <= 0:
        raise ValidationError("payout_interval_hours must be positive")


def validate_wallet(wallet: Wallet) -> None:
    """Reject wallets that cannot be stored. Raises ValidationError."""
    if not isinstance(wallet.name, str) or not wallet.name.strip():
        raise ValidationError("Wallet name is required")
    if not isinstance(wallet.type, WalletType):
        raise ValidationError(f"Invalid wallet type: {wallet.type!r}")


def validate_asset(asset: Asset) -> None:
    """Reject assets that cannot be stored. Raises ValidationError."""
    if not isinstance(asset.symbol, str) or not asset.symbol.strip():
        raise ValidationError("Asset symbol is required")
    if not isinstance(asset.wallet_id, int) or asset.wallet_id == 0:
        raise ValidationError("Asset wallet_id is required")
    if not isinstance(asset.amount, Decimal) or not asset.amount.is_finite():
        raise ValidationError(f"Invalid amount: {asset.amount!r}")
    if asset.amount < 0:
        raise ValidationError("Asset amount cannot be negative")
    if asset.earn_config is not None:
        validate_earn_config(asset.earn_config)


def to_decimal(value: Any, name: str = "amount") -> Decimal:
    """Convert a wire value (number or string) to Decimal. Raises ValidationError."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{name} must be finite")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid {name}: {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite")
    return result
