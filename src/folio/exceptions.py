"""Custom exceptions for the portfolio tracker.

Store, sync and import exceptions live here to avoid circular imports
between the store, the sync engine and the server routes.
"""


class FolioError(Exception):
    """Base exception for all portfolio tracker errors."""


class RecordNotFound(FolioError):
    """Raised when a wallet, asset or credential id does not exist."""


class ValidationError(FolioError):
    """Raised when an entity is malformed. Nothing is written."""


class StoreTransactionError(FolioError):
    """Raised when a bulk replace was rolled back. Retry wholesale."""


class SyncUnavailable(FolioError):
    """Raised when the server-of-record is unreachable, timed out or returned 5xx/429."""


class SyncRejected(FolioError):
    """Raised when the server-of-record refused a request (4xx other than 429)."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnsupportedExchange(FolioError):
    """Raised when an exchange id is unknown to the balance provider."""


class BalanceFetchError(FolioError):
    """Raised when an exchange balance request fails."""


class CredentialsLocked(FolioError):
    """Raised when encrypted credentials are read without a key."""


class PriceFetchError(FolioError):
    """Raised when an on-demand price request to CoinGecko fails."""
