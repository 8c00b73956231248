"""Tests for Fernet credential encryption."""

import pytest
from cryptography.fernet import Fernet
from pydantic import SecretStr

from folio.config import CredentialSettings
from folio.exceptions import CredentialsLocked
from folio.exchange.credentials import CredentialCipher
from folio.models import ApiKey


def _key(password: str | None = None) -> ApiKey:
    return ApiKey(exchange="binance", api_key="public-key", api_secret="very-secret", password=password)


class TestCredentialCipher:
    def test_disabled_cipher_stores_plain_text(self) -> None:
        cipher = CredentialCipher()
        sealed = cipher.seal(_key())
        assert cipher.enabled is False
        assert sealed.is_encrypted is False
        assert sealed.api_secret == "very-secret"

    def test_seal_then_open(self) -> None:
        cipher = CredentialCipher(Fernet.generate_key())
        sealed = cipher.seal(_key(password="pass"))

        assert sealed.is_encrypted is True
        assert sealed.api_key != "public-key"
        assert sealed.api_secret != "very-secret"
        assert sealed.password != "pass"

        opened = cipher.open(sealed)
        assert (opened.api_key, opened.api_secret, opened.password) == ("public-key", "very-secret", "pass")
        assert opened.is_encrypted is False

    def test_seal_is_not_applied_twice(self) -> None:
        cipher = CredentialCipher(Fernet.generate_key())
        sealed = cipher.seal(_key())
        assert cipher.seal(sealed) is sealed

    def test_open_without_key_is_locked(self) -> None:
        sealed = CredentialCipher(Fernet.generate_key()).seal(_key())
        with pytest.raises(CredentialsLocked):
            CredentialCipher().open(sealed)

    def test_open_with_wrong_key_is_locked(self) -> None:
        sealed = CredentialCipher(Fernet.generate_key()).seal(_key())
        with pytest.raises(CredentialsLocked):
            CredentialCipher(Fernet.generate_key()).open(sealed)

    def test_from_settings(self) -> None:
        key = Fernet.generate_key().decode()
        assert CredentialCipher.from_settings(CredentialSettings(encryption_key=SecretStr(key))).enabled
        assert not CredentialCipher.from_settings(CredentialSettings()).enabled
