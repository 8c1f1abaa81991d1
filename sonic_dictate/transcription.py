"""Whisper transcription of sealed audio buffers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import numpy as np
from faster_whisper import WhisperModel

from sonic_dictate.config import (
    DEFAULT_COMPUTE,
    DEFAULT_DEVICE,
    DEFAULT_LANGUAGE,
    DEFAULT_MODEL,
    normalize_compute_type,
)

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """Raised when transcription fails."""


class EngineNotReady(TranscriptionError):
    """Raised when transcribe is called before the model is loaded."""


def load_model(model_name: str, device: str, compute_type: str) -> WhisperModel:
    """
    Load a Whisper model with normalized compute type.

    Args:
        model_name: Model name (e.g., "small", "medium", "large-v3")
        device: Device ("cpu" or "cuda")
        compute_type: Compute type (will be normalized based on device)

    Returns:
        Loaded WhisperModel instance
    """
    normalized_compute = normalize_compute_type(device, compute_type)
    logger.info(f"Loading Whisper model: {model_name} on {device} ({normalized_compute})")
    return WhisperModel(model_name, device=device, compute_type=normalized_compute)


class WhisperTranscriber:
    """Maps a sealed sample buffer to text with faster-whisper."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        device: str = DEFAULT_DEVICE,
        compute_type: str = DEFAULT_COMPUTE,
        language: str | None = DEFAULT_LANGUAGE,
        beam_size: int = 5,
        vad_filter: bool = False,
    ):
        self.model_name = model_name
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self.vad_filter = vad_filter
        self._model: WhisperModel | None = None
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        """
        Load the Whisper model.

        Raises:
            TranscriptionError: If the model cannot be loaded
        """
        with self._lock:
            if self._model is not None:
                return
            try:
                self._model = load_model(self.model_name, self.device, self.compute_type)
            except Exception as e:
                # CTranslate2 and huggingface_hub raise many unrelated types
                raise TranscriptionError(f"Failed to load Whisper model: {e}") from e
        logger.info("Whisper model ready")

    def unload(self) -> None:
        with self._lock:
            self._model = None

    def transcribe(self, buffer: np.ndarray) -> str:
        """
        Transcribe a mono 16 kHz float32 buffer.

        Raises:
            EngineNotReady: If load() has not completed
            TranscriptionError: If transcription fails
        """
        model = self._model
        if model is None:
            raise EngineNotReady("Whisper model is not loaded")
        if buffer.size == 0:
            return ""

        options: dict[str, Any] = {
            "beam_size": self.beam_size,
            "vad_filter": self.vad_filter,
            "language": self.language,
        }
        if self.vad_filter:
            options["vad_parameters"] = {
                "threshold": 0.5,
                "min_speech_duration_ms": 250,
                "min_silence_duration_ms": 500,
                "speech_pad_ms": 400,
            }

        start_time = time.perf_counter()
        try:
            segments, _info = model.transcribe(buffer, **options)
            text = "".join(s.text for s in segments).strip()
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e
        logger.debug(
            f"Transcribed {buffer.size} samples in {time.perf_counter() - start_time:.3f}s"
        )
        return text
