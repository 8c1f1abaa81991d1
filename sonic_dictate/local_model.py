"""Ownership of the on-device LLM used by the Local refinement provider.

The model weights, inference context and sampler are one expensive unit. A
single ``LocalModelHandle`` owns them and moves through
UNLOADED -> LOADING -> READY (or FAILED). One lock serializes every load and
unload, so concurrent callers wait for the in-flight operation instead of
allocating a second model.
"""

from __future__ import annotations

import gc
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from sonic_dictate import config
from sonic_dictate.models import LocalModelState
from sonic_dictate.providers import ProviderError, format_user_turn

logger = logging.getLogger(__name__)

ModelLoader = Callable[[str], Any]


class LocalModelUnavailable(ProviderError):
    """Raised when the local model file is missing or fails to load."""


def load_llama_model(model_path: str) -> Any:
    """Load a GGUF model with llama.cpp."""
    from llama_cpp import Llama

    return Llama(
        model_path=model_path,
        n_ctx=config.LOCAL_CONTEXT_SIZE,
        n_gpu_layers=config.LOCAL_GPU_LAYERS,
        main_gpu=0,
        verbose=False,
    )


def format_local_prompt(system_prompt: str, instruction: str | None, text: str) -> str:
    """Mistral-instruct prompt used by the bundled local models."""
    user_turn = format_user_turn(instruction, text).removesuffix("\n\nRESULT:")
    return f"[INST] {system_prompt}\n\n{user_turn} [/INST] RESULT:"


class LocalModelHandle:
    """Exclusive owner of the loaded local model."""

    def __init__(self, loader: ModelLoader | None = None):
        self._loader = loader or load_llama_model
        self._lock = threading.Lock()
        self._model: Any = None
        self._model_path = ""
        self._state = LocalModelState.UNLOADED

    @property
    def state(self) -> LocalModelState:
        return self._state

    @property
    def model_path(self) -> str:
        return self._model_path

    @property
    def is_ready(self) -> bool:
        return self._state is LocalModelState.READY

    def ensure_ready(self, model_path: str) -> None:
        """
        Load the model at ``model_path`` unless it is already loaded.

        A FAILED handle retries on the next call. Asking for a different path
        while READY replaces the loaded model.

        Raises:
            LocalModelUnavailable: If the file is missing or loading fails
        """
        with self._lock:
            if self._state is LocalModelState.READY and self._model_path == model_path:
                return
            if self._model is not None:
                self._release_locked()

            self._model_path = model_path
            if not model_path or not Path(model_path).is_file():
                self._state = LocalModelState.FAILED
                logger.error(f"Local model file not found: {model_path!r}")
                raise LocalModelUnavailable(f"Local model not found at {model_path!r}")

            self._state = LocalModelState.LOADING
            logger.info(f"Loading local model: {model_path}")
            try:
                self._model = self._loader(model_path)
            except Exception as e:
                # Loader failures come from native code in many shapes
                self._model = None
                self._state = LocalModelState.FAILED
                logger.error(f"Local model failed to load: {e}", exc_info=True)
                raise LocalModelUnavailable(f"Local model failed to load: {e}") from e

            self._state = LocalModelState.READY
            logger.info("Local model ready")

    def generate(self, system_prompt: str, instruction: str | None, text: str) -> str:
        """Run bounded generation on the loaded model.

        Raises:
            LocalModelUnavailable: If no model is loaded
        """
        with self._lock:
            if self._state is not LocalModelState.READY or self._model is None:
                raise LocalModelUnavailable("Local model is not loaded")

            prompt = format_local_prompt(system_prompt, instruction, text)
            try:
                output = self._model(
                    prompt,
                    max_tokens=config.LOCAL_MAX_TOKENS,
                    stop=list(config.LOCAL_STOP_SEQUENCES),
                    temperature=config.LOCAL_TEMPERATURE,
                )
                result = output["choices"][0]["text"]
            except (KeyError, IndexError, TypeError) as e:
                raise LocalModelUnavailable(f"Unexpected local model output: {e}") from e
            except (RuntimeError, ValueError) as e:
                # ValueError: prompt longer than the context window
                raise LocalModelUnavailable(f"Local inference failed: {e}") from e

        return result.replace("</s>", "").strip()

    def unload(self) -> None:
        """Release the model and its native memory. Safe to call when unloaded."""
        with self._lock:
            if self._model is None and self._state is LocalModelState.UNLOADED:
                return
            self._release_locked()
            logger.info("Local model unloaded")

    def _release_locked(self) -> None:
        model, self._model = self._model, None
        if model is not None:
            close = getattr(model, "close", None)
            if callable(close):
                try:
                    close()
                except Exception as e:
                    logger.warning(f"Error while closing local model: {e}")
        del model
        # Run finalizers now so native buffers are freed before returning
        gc.collect()
        self._state = LocalModelState.UNLOADED


_shared_handle: LocalModelHandle | None = None
_shared_lock = threading.Lock()


def shared_handle() -> LocalModelHandle:
    """Return the process-wide local model handle."""
    global _shared_handle
    with _shared_lock:
        if _shared_handle is None:
            _shared_handle = LocalModelHandle()
        return _shared_handle


class LocalClient:
    """Provider client backed by the shared local model handle."""

    def __init__(self, handle: LocalModelHandle, model_path_source: Callable[[], str]):
        self._handle = handle
        self._model_path_source = model_path_source

    @property
    def handle(self) -> LocalModelHandle:
        return self._handle

    def generate(self, system_prompt: str, instruction: str | None, text: str) -> str:
        self._handle.ensure_ready(self._model_path_source())
        return self._handle.generate(system_prompt, instruction, text)
