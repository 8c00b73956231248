"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Server-of-record SQLite location."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    db_path: str = "data/folio.db"


class ServerSettings(BaseSettings):
    """HTTP server for the server-of-record."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 3000


class SyncSettings(BaseSettings):
    """Client-side sync/hydration settings.

    Three distinct time bounds apply: the health check, each individual HTTP
    request, and the whole hydration (health check + outbox flush + pull + replace).
    """

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    enabled: bool = True
    base_url: str = "http://localhost:3000"
    local_db_path: str = "data/local.db"
    health_timeout: float = 3.0
    request_timeout: float = 10.0
    hydrate_timeout: float = 60.0
    min_push_interval: float = 1.0  # seconds between full pushes


class ImporterSettings(BaseSettings):
    """Exchange balance auto-import."""

    model_config = SettingsConfigDict(env_prefix="IMPORTER_")

    enabled: bool = True
    interval_seconds: float = 300.0


class SnapshotSettings(BaseSettings):
    """Portfolio value snapshots."""

    model_config = SettingsConfigDict(env_prefix="SNAPSHOT_")

    enabled: bool = True
    interval_seconds: float = 300.0
    retention_days: int = 30


class PriceSettings(BaseSettings):
    """Latest-price refresh, price history and on-demand quotes from CoinGecko."""

    model_config = SettingsConfigDict(env_prefix="PRICES_")

    enabled: bool = True
    api_base: str = "https://api.coingecko.com/api/v3"
    refresh_interval_seconds: float = 300.0
    request_timeout: float = 10.0
    history_retention_days: int = 30
    tracked_coins: list[str] = [
        "bitcoin",
        "ethereum",
        "tether",
        "usd-coin",
        "binancecoin",
        "solana",
    ]


class CredentialSettings(BaseSettings):
    """Exchange credential encryption. Empty key stores credentials in plain text."""

    model_config = SettingsConfigDict(env_prefix="CREDENTIALS_")

    encryption_key: SecretStr = SecretStr("")


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    # e.g. LOG_LOGGER_LEVELS='{"ccxt": "DEBUG"}'
    log_logger_levels: dict[str, str] = {}
    store: StoreSettings = StoreSettings()
    server: ServerSettings = ServerSettings()
    sync: SyncSettings = SyncSettings()
    importer: ImporterSettings = ImporterSettings()
    snapshot: SnapshotSettings = SnapshotSettings()
    prices: PriceSettings = PriceSettings()
    credentials: CredentialSettings = CredentialSettings()
