"""Exchange access layer -- balances via ccxt, credentials via Fernet."""

from folio.exchange.credentials import CredentialCipher
from folio.exchange.provider import BalanceProvider, CcxtBalanceProvider

__all__ = ["BalanceProvider", "CcxtBalanceProvider", "CredentialCipher"]
