"""Exchange credential encryption.

Credentials are encrypted at rest with Fernet when CREDENTIALS_ENCRYPTION_KEY
is set. Without a key they are stored as given and flagged is_encrypted=False.
"""

from dataclasses import replace

from cryptography.fernet import Fernet, InvalidToken

from folio.config import CredentialSettings
from folio.exceptions import CredentialsLocked
from folio.models import ApiKey


class CredentialCipher:
    """Opaque encrypt/decrypt of ApiKey secrets."""

    def __init__(self, key: str | bytes | None = None) -> None:
        self._fernet = Fernet(key) if key else None

    @classmethod
    def from_settings(cls, settings: CredentialSettings) -> "CredentialCipher":
        return cls(settings.encryption_key.get_secret_value() or None)

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def seal(self, key: ApiKey) -> ApiKey:
        """Return a copy ready for storage, encrypted when a key is configured."""
        if self._fernet is None or key.is_encrypted:
            return key
        return replace(
            key,
            api_key=self._encrypt(key.api_key),
            api_secret=self._encrypt(key.api_secret),
            password=self._encrypt(key.password) if key.password else None,
            is_encrypted=True,
        )

    def open(self, key: ApiKey) -> ApiKey:
        """Return a plain-text copy of stored credentials.

        Raises CredentialsLocked when the record is encrypted and no key is
        configured or the key does not match.
        """
        if not key.is_encrypted:
            return key
        return replace(
            key,
            api_key=self._decrypt(key.api_key),
            api_secret=self._decrypt(key.api_secret),
            password=self._decrypt(key.password) if key.password else None,
            is_encrypted=False,
        )

    def _encrypt(self, value: str) -> str:
        assert self._fernet is not None
        return self._fernet.encrypt(value.encode()).decode()

    def _decrypt(self, value: str) -> str:
        if self._fernet is None:
            raise CredentialsLocked("Credentials are encrypted but no key is configured")
        try:
            return self._fernet.decrypt(value.encode()).decode()
        except InvalidToken as e:
            raise CredentialsLocked("Credentials could not be decrypted with the configured key") from e
