"""Core data types shared by the dictation pipeline."""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType

import numpy as np

VocabularyMap = dict[str, str]


class HotkeyMode(str, Enum):
    """How the dictation hotkey drives a recording session."""

    PUSH_TO_TALK = "push_to_talk"
    TOGGLE = "toggle"


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


class ProviderKind(str, Enum):
    """Refinement backends selectable in settings."""

    NONE = "none"
    LOCAL = "local"
    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @property
    def is_remote(self) -> bool:
        return self in (ProviderKind.GOOGLE, ProviderKind.OPENAI, ProviderKind.ANTHROPIC)


class LocalModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ValidationStatus(str, Enum):
    UNKNOWN = "unknown"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class RecordingSession:
    """The single recording session owned by a SessionController."""

    mode: HotkeyMode = HotkeyMode.PUSH_TO_TALK
    state: SessionState = SessionState.IDLE
    hotkey_code: str = ""
    started_at: float | None = None
    refine: bool = False

    def begin(self, refine: bool = False) -> None:
        self.state = SessionState.RECORDING
        self.started_at = time.monotonic()
        self.refine = refine

    def reset(self) -> None:
        self.state = SessionState.IDLE
        self.started_at = None
        self.refine = False


class AudioBuffer:
    """Append-only collection of sample chunks, sealed exactly once.

    Chunks arrive on the audio callback thread, so ``append`` only takes a
    short lock around a list append. ``seal`` concatenates everything into one
    read-only float32 array; later appends are dropped.
    """

    def __init__(self) -> None:
        self._chunks: list[np.ndarray] = []
        self._lock = threading.Lock()
        self._sealed: np.ndarray | None = None

    def append(self, chunk) -> None:
        with self._lock:
            if self._sealed is not None:
                return
            self._chunks.append(np.asarray(chunk, dtype=np.float32).reshape(-1))

    def seal(self) -> np.ndarray:
        with self._lock:
            if self._sealed is None:
                if self._chunks:
                    data = np.concatenate(self._chunks).astype(np.float32, copy=False)
                else:
                    data = np.zeros(0, dtype=np.float32)
                data.setflags(write=False)
                self._sealed = data
                self._chunks = []
            return self._sealed

    @property
    def sealed(self) -> bool:
        return self._sealed is not None

    def __len__(self) -> int:
        with self._lock:
            if self._sealed is not None:
                return int(self._sealed.size)
            return sum(int(c.size) for c in self._chunks)


@dataclass
class AISkill:
    """A named refinement instruction the user can trigger by voice."""

    id: str
    name: str
    trigger_phrase: str
    prompt_template: str
    color_tag: str = "blue"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "trigger_phrase": self.trigger_phrase,
            "prompt_template": self.prompt_template,
            "color_tag": self.color_tag,
        }

    @classmethod
    def from_dict(cls, data: dict) -> AISkill:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            trigger_phrase=str(data.get("trigger_phrase", "")),
            prompt_template=str(data.get("prompt_template", "")),
            color_tag=str(data.get("color_tag", "blue")),
        )


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable snapshot of the refinement provider settings."""

    provider: ProviderKind = ProviderKind.NONE
    credentials: Mapping[ProviderKind, str] = field(default_factory=dict)
    local_model_path: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "credentials", MappingProxyType(dict(self.credentials)))

    def credential_for(self, kind: ProviderKind) -> str:
        return (self.credentials.get(kind) or "").strip()

    def with_credential(self, kind: ProviderKind, key: str) -> ProviderConfig:
        updated = dict(self.credentials)
        updated[kind] = key
        return replace(self, credentials=updated)


@dataclass
class ValidationResult:
    provider: ProviderKind
    status: ValidationStatus = ValidationStatus.UNKNOWN
