"""Refinement provider clients.

Every backend implements ``generate(system_prompt, instruction, text)`` and
returns the raw model output; sanitizing is left to the router. Remote
clients read their API key from a ``ProviderConfig`` snapshot at call time so
a key change (or a scoped override during validation) takes effect on the
next request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

import anthropic
import httpx
import openai
from anthropic import Anthropic
from openai import OpenAI

from sonic_dictate import config
from sonic_dictate.models import ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

ConfigSource = Callable[[], ProviderConfig]


class ProviderError(Exception):
    """Base class for refinement failures surfaced to the caller."""


class MissingCredential(ProviderError):
    """Raised when a remote provider is selected but has no API key."""


class ProviderRequestFailed(ProviderError):
    """Raised when a provider request fails or returns an unusable body."""


class ProviderClient(Protocol):
    def generate(self, system_prompt: str, instruction: str | None, text: str) -> str: ...


def format_user_turn(instruction: str | None, text: str) -> str:
    """Wrap the instruction and text in the tags the system prompt refers to."""
    parts = []
    if instruction and instruction.strip():
        parts.append(f"<INSTRUCTION>{instruction.strip()}</INSTRUCTION>")
    parts.append(f"<TEXT>{text}</TEXT>")
    return "\n".join(parts) + "\n\nRESULT:"


class RemoteClient:
    """Shared plumbing for API-key based providers."""

    kind: ProviderKind = ProviderKind.NONE

    def __init__(self, config_source: ConfigSource, timeout: float = config.REMOTE_TIMEOUT):
        self._config_source = config_source
        self.timeout = timeout

    @property
    def model(self) -> str:
        return config.PROVIDER_MODELS[self.kind]

    def _api_key(self) -> str:
        key = self._config_source().credential_for(self.kind)
        if not key:
            raise MissingCredential(f"{self.kind.value} API key missing")
        return key

    def generate(self, system_prompt: str, instruction: str | None, text: str) -> str:
        api_key = self._api_key()
        start_time = time.perf_counter()
        result = self._send(api_key, system_prompt, format_user_turn(instruction, text))
        logger.info(
            "%s refinement finished: model=%s total_time=%.3fs",
            self.kind.value,
            self.model,
            time.perf_counter() - start_time,
        )
        return result

    def _send(self, api_key: str, system_prompt: str, user_turn: str) -> str:
        raise NotImplementedError


class OpenAIClient(RemoteClient):
    """Chat Completions via the ``openai`` SDK."""

    kind = ProviderKind.OPENAI

    def _send(self, api_key: str, system_prompt: str, user_turn: str) -> str:
        try:
            client = OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_turn},
                ],
                temperature=config.REMOTE_TEMPERATURE,
            )
        except openai.APIStatusError as e:
            raise ProviderRequestFailed(f"OpenAI returned HTTP {e.status_code}") from e
        except openai.OpenAIError as e:
            raise ProviderRequestFailed(f"OpenAI request failed: {e}") from e

        if not response.choices:
            raise ProviderRequestFailed("OpenAI returned no choices")
        return response.choices[0].message.content or ""


class AnthropicClient(RemoteClient):
    """Messages API via the ``anthropic`` SDK."""

    kind = ProviderKind.ANTHROPIC

    def _send(self, api_key: str, system_prompt: str, user_turn: str) -> str:
        try:
            client = Anthropic(api_key=api_key, timeout=self.timeout, max_retries=0)
            response = client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_turn}],
                max_tokens=config.ANTHROPIC_MAX_TOKENS,
            )
        except anthropic.APIStatusError as e:
            raise ProviderRequestFailed(f"Anthropic returned HTTP {e.status_code}") from e
        except anthropic.AnthropicError as e:
            raise ProviderRequestFailed(f"Anthropic request failed: {e}") from e

        texts = [
            getattr(block, "text", "")
            for block in response.content or []
            if getattr(block, "type", "text") == "text"
        ]
        if not texts:
            raise ProviderRequestFailed("Anthropic returned no text content")
        return "".join(texts)


class GoogleClient(RemoteClient):
    """Gemini ``generateContent`` over plain HTTP with ``httpx``."""

    kind = ProviderKind.GOOGLE

    def _send(self, api_key: str, system_prompt: str, user_turn: str) -> str:
        url = config.GEMINI_API_URL.format(model=self.model)
        payload = {
            "contents": [{"parts": [{"text": f"{system_prompt}\n\n{user_turn}"}]}],
            "generationConfig": {"temperature": config.REMOTE_TEMPERATURE},
        }
        try:
            response = httpx.post(
                url,
                json=payload,
                headers={"x-goog-api-key": api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderRequestFailed(
                f"Gemini returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            # HTTPError: Connection, timeout and protocol failures
            # ValueError: Body is not JSON
            raise ProviderRequestFailed(f"Gemini request failed: {e}") from e

        try:
            return body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderRequestFailed(f"Unexpected Gemini response: {e}") from e


def build_remote_clients(config_source: ConfigSource) -> dict[ProviderKind, ProviderClient]:
    """Create one client per remote provider sharing the same config source."""
    return {
        ProviderKind.GOOGLE: GoogleClient(config_source),
        ProviderKind.OPENAI: OpenAIClient(config_source),
        ProviderKind.ANTHROPIC: AnthropicClient(config_source),
    }
