"""Check candidate API keys against their provider without persisting them."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from typing import Protocol

from sonic_dictate import config
from sonic_dictate.credentials import PROVIDER_CREDENTIAL_KEYS
from sonic_dictate.models import ProviderConfig, ProviderKind, ValidationResult, ValidationStatus
from sonic_dictate.refinement import RefinementRouter, build_system_prompt

logger = logging.getLogger(__name__)


class CredentialOverrides(Protocol):
    def provider_config(self) -> ProviderConfig: ...

    def override_credential(
        self, provider: ProviderKind, value: str
    ) -> AbstractContextManager[None]: ...


class CredentialValidator:
    """Send a minimal request with a candidate key and report whether it worked."""

    def __init__(self, store: CredentialOverrides, router: RefinementRouter):
        self._store = store
        self._router = router
        # One request per provider at a time so each sees its own candidate key
        self._provider_locks = {kind: threading.Lock() for kind in ProviderKind}

    def validate(self, provider: ProviderKind, candidate_key: str) -> bool:
        """
        Return True if ``candidate_key`` is accepted by ``provider``.

        The key is swapped into the in-memory configuration only for the
        duration of the request; the stored key is restored afterwards even
        when the request raises. Never raises.
        """
        if not provider.is_remote:
            return True
        if not candidate_key or not candidate_key.strip():
            return False

        try:
            client = self._router.client_for(provider)
            with self._provider_locks[provider]:
                with self._store.override_credential(provider, candidate_key.strip()):
                    client.generate(
                        build_system_prompt(None),
                        config.VALIDATION_INSTRUCTION,
                        config.VALIDATION_TEXT,
                    )
        except Exception as e:
            # Any failure (auth, network, SDK, unexpected body) means "not valid"
            logger.info(f"Validation failed for {provider.value}: {type(e).__name__}")
            return False

        logger.info(f"Validation succeeded for {provider.value}")
        return True


Dispatch = Callable[[Callable[[], None]], None]


def _thread_dispatch(work: Callable[[], None]) -> None:
    threading.Thread(target=work, daemon=True).start()


class ValidationTracker:
    """Per-provider validation status with stale-result protection.

    Each ``start`` bumps a generation counter for the provider. When the
    check completes its outcome is applied only if no newer request started
    and the configured provider is the one it was started under.
    """

    def __init__(
        self,
        validator: CredentialValidator,
        store: CredentialOverrides,
        on_result: Callable[[ValidationResult], None] | None = None,
        dispatch: Dispatch | None = None,
    ):
        self._validator = validator
        self._store = store
        self._on_result = on_result
        self._dispatch = dispatch or _thread_dispatch
        self._lock = threading.Lock()
        self._results: dict[ProviderKind, ValidationResult] = {}
        self._generations: dict[ProviderKind, int] = {}

    def status(self, provider: ProviderKind) -> ValidationStatus:
        with self._lock:
            result = self._results.get(provider)
            return result.status if result else ValidationStatus.UNKNOWN

    def results(self) -> Iterator[ValidationResult]:
        with self._lock:
            snapshot = [ValidationResult(r.provider, r.status) for r in self._results.values()]
        return iter(snapshot)

    def reset(self, provider: ProviderKind) -> None:
        """Forget the outcome for ``provider``; any in-flight check becomes stale."""
        with self._lock:
            self._generations[provider] = self._generations.get(provider, 0) + 1
            self._results[provider] = ValidationResult(provider, ValidationStatus.UNKNOWN)

    def start(self, provider: ProviderKind, candidate_key: str) -> None:
        with self._lock:
            generation = self._generations.get(provider, 0) + 1
            self._generations[provider] = generation
            self._results[provider] = ValidationResult(provider, ValidationStatus.VALIDATING)
        started_under = self._store.provider_config().provider

        def work() -> None:
            ok = self._validator.validate(provider, candidate_key)
            self._complete(provider, generation, started_under, ok)

        self._dispatch(work)

    def _complete(
        self,
        provider: ProviderKind,
        generation: int,
        started_under: ProviderKind,
        ok: bool,
    ) -> None:
        current_provider = self._store.provider_config().provider
        with self._lock:
            if self._generations.get(provider) != generation:
                logger.debug(f"Discarding stale validation result for {provider.value}")
                return
            if current_provider is not started_under:
                logger.debug(
                    f"Provider changed from {started_under.value} to "
                    f"{current_provider.value} during validation, discarding result"
                )
                self._results[provider] = ValidationResult(provider, ValidationStatus.UNKNOWN)
                return
            status = ValidationStatus.VALID if ok else ValidationStatus.INVALID
            result = ValidationResult(provider, status)
            self._results[provider] = result

        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception as e:
                logger.error(f"Validation result callback failed: {e}", exc_info=True)

    def on_setting_changed(self, key: str, old, new) -> None:
        """SettingsStore listener: a changed key invalidates its old status."""
        for kind, credential_key in PROVIDER_CREDENTIAL_KEYS.items():
            if key == credential_key:
                self.reset(kind)

