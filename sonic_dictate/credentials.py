"""Provider API keys in the system keyring, one entry per remote provider."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from sonic_dictate.models import ProviderKind

logger = logging.getLogger(__name__)

SERVICE_NAME = "SonicDictate"

PROVIDER_CREDENTIAL_KEYS: dict[ProviderKind, str] = {
    ProviderKind.GOOGLE: "google_api_key",
    ProviderKind.OPENAI: "openai_api_key",
    ProviderKind.ANTHROPIC: "anthropic_api_key",
}

_GERUNDS = {"store": "storing", "retrieve": "retrieving", "delete": "deleting"}


class CredentialStorageError(Exception):
    """Raised when the keyring backend fails."""


def credential_key_for(provider: ProviderKind) -> str:
    """Keyring entry name for ``provider``; ValueError for NONE and LOCAL."""
    try:
        return PROVIDER_CREDENTIAL_KEYS[provider]
    except KeyError:
        raise ValueError(f"Provider '{provider.value}' does not use a credential") from None


def _require_key(key: str) -> None:
    if not key or not key.strip():
        raise ValueError("Credential key cannot be empty")


@contextmanager
def _keyring_errors(action: str, key: str) -> Iterator[None]:
    """Re-raise keyring failures as CredentialStorageError."""
    try:
        yield
    except KeyringError as e:
        logger.error(f"Failed to {action} credential {key}: {e}")
        raise CredentialStorageError(f"Failed to {action} credential: {e}") from e
    except Exception as e:
        # Backend initialization issues surface as arbitrary exceptions
        gerund = _GERUNDS[action]
        logger.error(f"Unexpected error {gerund} credential {key}: {e}")
        raise CredentialStorageError(f"Unexpected error {gerund} credential: {e}") from e


def store_credential(key: str, value: str) -> None:
    """
    Raises:
        CredentialStorageError: If the keyring rejects the value
        ValueError: If key or value is empty
    """
    _require_key(key)
    if not value or not value.strip():
        raise ValueError("Credential value cannot be empty")

    with _keyring_errors("store", key):
        keyring.set_password(SERVICE_NAME, key, value)
    logger.info(f"Stored credential: {key}")


def retrieve_credential(key: str) -> str | None:
    """Return the stored value, or None when nothing is stored under ``key``."""
    _require_key(key)
    with _keyring_errors("retrieve", key):
        value = keyring.get_password(SERVICE_NAME, key)
    logger.debug(f"{'Retrieved' if value else 'No'} credential for: {key}")
    return value


def delete_credential(key: str) -> None:
    _require_key(key)
    with _keyring_errors("delete", key):
        try:
            keyring.delete_password(SERVICE_NAME, key)
        except PasswordDeleteError:
            logger.debug(f"No credential to delete: {key}")
            return
    logger.info(f"Deleted credential: {key}")


def migrate_from_plaintext(plaintext_value: str, key: str) -> bool:
    """Move a key found in the settings file into the keyring. True on success."""
    if not plaintext_value or not plaintext_value.strip():
        return False

    try:
        store_credential(key, plaintext_value)
    except (CredentialStorageError, ValueError) as e:
        logger.warning(f"Failed to migrate credential {key}: {e}")
        return False
    logger.info(f"Migrated plaintext credential to secure storage: {key}")
    return True
