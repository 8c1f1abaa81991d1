"""Route transcribed text to the configured LLM provider for refinement."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

from sonic_dictate import config
from sonic_dictate.local_model import LocalClient, LocalModelHandle, shared_handle
from sonic_dictate.models import AISkill, ProviderConfig, ProviderKind, VocabularyMap
from sonic_dictate.providers import ProviderClient, ProviderError, build_remote_clients
from sonic_dictate.sanitizer import sanitize
from sonic_dictate.vocabulary import format_for_prompt

logger = logging.getLogger(__name__)


class NoProviderConfigured(ProviderError):
    """Raised when a skill is requested but no provider is selected."""


class RefinementSettings(Protocol):
    def provider_config(self) -> ProviderConfig: ...

    def vocabulary(self) -> VocabularyMap: ...

    def skills(self) -> list[AISkill]: ...


def build_system_prompt(vocabulary: Mapping[str, str] | None) -> str:
    """Surgical-replacement instructions plus the user's vocabulary."""
    return config.SURGICAL_SYSTEM_PROMPT + format_for_prompt(vocabulary)


class RefinementRouter:
    """Pick a provider client and instruction, call it, and sanitize the result."""

    def __init__(
        self,
        settings: RefinementSettings,
        clients: Mapping[ProviderKind, ProviderClient] | None = None,
        local_handle: LocalModelHandle | None = None,
    ):
        self._settings = settings
        self._local_handle = local_handle or shared_handle()
        if clients is None:
            built: dict[ProviderKind, ProviderClient] = dict(
                build_remote_clients(settings.provider_config)
            )
            built[ProviderKind.LOCAL] = LocalClient(
                self._local_handle, lambda: settings.provider_config().local_model_path
            )
            clients = built
        self._clients = dict(clients)

    @property
    def local_handle(self) -> LocalModelHandle:
        return self._local_handle

    def client_for(self, provider: ProviderKind) -> ProviderClient:
        try:
            return self._clients[provider]
        except KeyError:
            raise NoProviderConfigured(f"No client available for provider '{provider.value}'") from None

    def default_instruction(self) -> str | None:
        skills = self._settings.skills()
        if skills and skills[0].prompt_template.strip():
            return skills[0].prompt_template
        return None

    def refine(self, text: str, skill: AISkill | None = None) -> str:
        """
        Refine ``text`` with the configured provider.

        With no provider configured the text is returned unchanged; this is
        the implicit path used after every dictation.

        Raises:
            ProviderError: If the selected provider fails
        """
        provider = self._settings.provider_config().provider
        if provider is ProviderKind.NONE:
            logger.debug("No refinement provider configured, passing text through")
            return text

        if not text or not text.strip():
            return ""

        instruction = skill.prompt_template if skill else self.default_instruction()
        return self._dispatch(provider, instruction, text)

    def process_skill(self, skill: AISkill, text: str) -> str:
        """
        Apply an explicitly requested skill to ``text``.

        Raises:
            NoProviderConfigured: If no provider is selected
            ProviderError: If the selected provider fails
        """
        provider = self._settings.provider_config().provider
        if provider is ProviderKind.NONE:
            raise NoProviderConfigured("No AI provider configured")

        logger.info(f"Processing skill '{skill.name}' with provider {provider.value}")
        return self._dispatch(provider, skill.prompt_template, text)

    def _dispatch(self, provider: ProviderKind, instruction: str | None, text: str) -> str:
        client = self.client_for(provider)
        system_prompt = build_system_prompt(self._settings.vocabulary())
        raw = client.generate(system_prompt, instruction, text)
        return sanitize(raw)

    # ------------------------------------------------------------------
    # Skills triggered by voice
    # ------------------------------------------------------------------
    def match_skill(self, text: str) -> tuple[AISkill, str] | None:
        """Return the skill whose trigger phrase opens ``text`` and the remainder."""
        if not text:
            return None

        skills = [s for s in self._settings.skills() if s.trigger_phrase.strip()]
        skills.sort(key=lambda s: -len(s.trigger_phrase.strip()))
        for skill in skills:
            pattern = re.compile(
                rf"^\s*{re.escape(skill.trigger_phrase.strip())}\b[\s,.:;!?-]*",
                re.IGNORECASE,
            )
            match = pattern.match(text)
            if match:
                remainder = text[match.end():].strip()
                if remainder:
                    return skill, remainder
        return None

    # ------------------------------------------------------------------
    # Local model lifecycle
    # ------------------------------------------------------------------
    def preload_local(self) -> None:
        """Load the local model now instead of on first use.

        Raises:
            LocalModelUnavailable: If the model cannot be loaded
        """
        self._local_handle.ensure_ready(self._settings.provider_config().local_model_path)

    def unload_local(self) -> None:
        self._local_handle.unload()

    def handle_provider_change(self, old: ProviderKind, new: ProviderKind) -> None:
        """Free the local model when the user switches away from it."""
        if old is ProviderKind.LOCAL and new is not ProviderKind.LOCAL:
            logger.info(f"Provider switched from local to {new.value}, unloading model")
            self.unload_local()

    def on_setting_changed(self, key: str, old: Any, new: Any) -> None:
        """SettingsStore listener."""
        if key != "provider":
            return
        self.handle_provider_change(_as_provider(old), _as_provider(new))


def _as_provider(value: Any) -> ProviderKind:
    try:
        return ProviderKind(value)
    except ValueError:
        return ProviderKind.NONE
