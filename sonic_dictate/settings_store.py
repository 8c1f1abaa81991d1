"""Persistent settings storage for sonic-dictate.

Plain settings live in a JSON file; provider API keys live in the system
keyring and never touch the JSON. Readers get snapshots, so a worker that
grabbed a ``ProviderConfig`` or vocabulary map keeps a consistent view while
the settings surface writes new values.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path
from typing import Any

from sonic_dictate import config, credentials
from sonic_dictate.models import AISkill, HotkeyMode, ProviderConfig, ProviderKind, VocabularyMap
from sonic_dictate.vocabulary import load_vocabulary, save_vocabulary

logger = logging.getLogger(__name__)

SETTINGS_FILE = Path.home() / ".sonic_dictate/sonic_dictate_settings.json"

# Settings keys that must be stored in the keyring instead of the JSON file
SECURE_KEYS = {
    credentials.PROVIDER_CREDENTIAL_KEYS[kind]: kind for kind in credentials.PROVIDER_CREDENTIAL_KEYS
}

SettingsListener = Callable[[str, Any, Any], None]


def default_settings() -> dict[str, Any]:
    return {
        "provider": ProviderKind.NONE.value,
        "local_model_path": "",
        "auto_refine": False,
        "hotkey": config.DEFAULT_HOTKEY,
        "refine_hotkey": config.DEFAULT_REFINE_HOTKEY,
        "hotkey_mode": config.DEFAULT_HOTKEY_MODE.value,
        "skills": [skill.to_dict() for skill in config.DEFAULT_SKILLS],
        "model": config.DEFAULT_MODEL,
        "device": config.DEFAULT_DEVICE,
        "compute_type": config.DEFAULT_COMPUTE,
        "language": config.DEFAULT_LANGUAGE,
        "input_device": None,
        "paste_delay": config.DEFAULT_PASTE_DELAY,
        "history_enabled": True,
        "mute_during_recording": False,
    }


def load_settings(path: Path | None = None) -> dict[str, Any]:
    """Load saved settings from disk, merged over defaults.

    Plaintext API keys found in the file are migrated to the keyring.
    """
    path = path or SETTINGS_FILE
    defaults = default_settings()

    try:
        if path.is_file():
            settings = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(settings, dict):
                raise ValueError("settings file does not contain an object")

            for key, value in defaults.items():
                settings.setdefault(key, value)

            _migrate_secure_settings(settings)
            return settings
    except (OSError, UnicodeDecodeError, ValueError) as e:
        # OSError: File access errors
        # UnicodeDecodeError: Invalid UTF-8 encoding
        # ValueError: Invalid JSON (JSONDecodeError) or wrong top-level type
        logger.error(f"Could not read saved settings: {e}")
    return defaults


def save_settings(settings: dict[str, Any], path: Path | None = None) -> bool:
    """Persist settings to disk without secure keys. Returns True on success."""
    path = path or SETTINGS_FILE

    try:
        settings_to_save = {k: v for k, v in settings.items() if k not in SECURE_KEYS}
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings_to_save, indent=2), encoding="utf-8")
        return True
    except (OSError, UnicodeEncodeError, TypeError, ValueError) as e:
        # OSError: File/directory write errors
        # UnicodeEncodeError: Invalid character encoding
        # TypeError: Non-serializable values in settings
        # ValueError: Invalid JSON structure
        logger.error(f"Could not save settings: {e}")
        return False


def _migrate_secure_settings(settings: dict[str, Any]) -> None:
    """Move plaintext API keys into the keyring (settings modified in-place)."""
    for key in SECURE_KEYS:
        value = settings.get(key)
        if isinstance(value, str) and value.strip():
            if credentials.migrate_from_plaintext(value, key):
                del settings[key]
                logger.info(f"Migrated {key} to secure storage")


def _parse_provider(value: Any) -> ProviderKind:
    try:
        return ProviderKind(value)
    except ValueError:
        logger.warning(f"Unknown provider '{value}' in settings, refinement disabled")
        return ProviderKind.NONE


def _parse_mode(value: Any) -> HotkeyMode:
    try:
        return HotkeyMode(value)
    except ValueError:
        return config.DEFAULT_HOTKEY_MODE


class SettingsStore:
    """Thread-safe settings surface shared by the pipeline and the UI."""

    def __init__(self, path: Path | None = None, vocabulary_path: Path | None = None):
        self._path = path
        self._vocabulary_path = vocabulary_path
        self._lock = threading.RLock()
        self._settings = load_settings(path)
        self._vocabulary: VocabularyMap = load_vocabulary(vocabulary_path)
        self._credentials: dict[ProviderKind, str] = {}
        self._overrides: dict[ProviderKind, list[tuple[object, str]]] = {}
        self._listeners: list[SettingsListener] = []
        self._load_credentials()

    def _load_credentials(self) -> None:
        for kind, key in credentials.PROVIDER_CREDENTIAL_KEYS.items():
            try:
                value = credentials.retrieve_credential(key)
            except (credentials.CredentialStorageError, ValueError) as e:
                logger.warning(f"Failed to retrieve {key} from credential manager: {e}")
                value = None
            self._credentials[kind] = value or ""

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: SettingsListener) -> None:
        """Register ``listener(key, old, new)`` for provider and hotkey changes."""
        with self._lock:
            self._listeners.append(listener)

    def _notify(self, key: str, old: Any, new: Any) -> None:
        if old == new:
            return
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key, old, new)
            except Exception as e:
                logger.error(f"Settings listener failed for {key}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def provider_config(self) -> ProviderConfig:
        with self._lock:
            merged = dict(self._credentials)
            merged.update({kind: stack[-1][1] for kind, stack in self._overrides.items() if stack})
            return ProviderConfig(
                provider=_parse_provider(self._settings.get("provider")),
                credentials=merged,
                local_model_path=str(self._settings.get("local_model_path") or ""),
            )

    def vocabulary(self) -> VocabularyMap:
        with self._lock:
            return dict(self._vocabulary)

    def skills(self) -> list[AISkill]:
        with self._lock:
            raw = deepcopy(self._settings.get("skills") or [])
        return [AISkill.from_dict(item) for item in raw if isinstance(item, dict)]

    def hotkey_mode(self) -> HotkeyMode:
        with self._lock:
            return _parse_mode(self._settings.get("hotkey_mode"))

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return deepcopy(self._settings.get(key, default))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def set(self, key: str, value: Any) -> None:
        if key in SECURE_KEYS:
            raise ValueError(f"'{key}' is a secure setting, use set_credential()")
        with self._lock:
            old = deepcopy(self._settings.get(key))
            self._settings[key] = deepcopy(value)
        if key in ("provider", "hotkey", "refine_hotkey", "hotkey_mode"):
            self._notify(key, old, value)

    def set_provider(self, provider: ProviderKind) -> None:
        self.set("provider", provider.value)

    def set_hotkey_mode(self, mode: HotkeyMode) -> None:
        self.set("hotkey_mode", mode.value)

    def set_skills(self, skills: list[AISkill]) -> None:
        self.set("skills", [skill.to_dict() for skill in skills])

    def set_vocabulary(self, vocabulary: VocabularyMap) -> bool:
        with self._lock:
            self._vocabulary = dict(vocabulary)
            snapshot = dict(self._vocabulary)
        return save_vocabulary(snapshot, self._vocabulary_path)

    def credential(self, provider: ProviderKind) -> str:
        return self.provider_config().credential_for(provider)

    def set_credential(self, provider: ProviderKind, value: str) -> None:
        """Persist an API key in the keyring and update the in-memory copy.

        Raises:
            CredentialStorageError: If the keyring refuses the value
            ValueError: If the provider takes no credential or value is empty
        """
        key = credentials.credential_key_for(provider)
        credentials.store_credential(key, value)
        with self._lock:
            self._credentials[provider] = value
        self._notify(key, None, provider.value)

    def delete_credential(self, provider: ProviderKind) -> None:
        key = credentials.credential_key_for(provider)
        credentials.delete_credential(key)
        with self._lock:
            self._credentials[provider] = ""
        self._notify(key, provider.value, None)

    @contextmanager
    def override_credential(self, provider: ProviderKind, value: str) -> Iterator[None]:
        """Temporarily use ``value`` as the key for ``provider``.

        The override is in memory only and is always reverted, whether the
        body returns or raises. Keys written with ``set_credential`` meanwhile
        are left intact. Overlapping overrides may exit in any order; each
        removes only its own entry and the newest remaining one stays active.
        """
        token = object()
        with self._lock:
            self._overrides.setdefault(provider, []).append((token, value))
        try:
            yield
        finally:
            with self._lock:
                stack = [entry for entry in self._overrides.get(provider, []) if entry[0] is not token]
                if stack:
                    self._overrides[provider] = stack
                else:
                    self._overrides.pop(provider, None)

    def save(self) -> bool:
        with self._lock:
            snapshot = deepcopy(self._settings)
        return save_settings(snapshot, self._path)
