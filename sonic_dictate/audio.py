"""Microphone capture feeding the session controller."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

import numpy as np
import sounddevice as sd

from sonic_dictate.config import CHUNK_MS, INPUT_CHANNELS, SAMPLE_RATE

logger = logging.getLogger(__name__)

SamplesCallback = Callable[[np.ndarray], None]
LevelCallback = Callable[[float], None]


def compute_level(chunk: np.ndarray) -> float:
    """RMS level of a chunk, clipped to 0..1."""
    if chunk.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(chunk, dtype=np.float64))))
    return min(rms, 1.0)


def resolve_input_device(selector: str | int | None) -> int | None:
    """
    Turn an index or name substring into a sounddevice input device index.

    Args:
        selector: Device index, index as string, name substring, or None for default

    Returns:
        Device index, or None to use the system default

    Raises:
        ValueError: If no input device matches
    """
    if selector is None or selector == "":
        return None
    if isinstance(selector, int):
        return selector
    if selector.strip().isdigit():
        return int(selector.strip())

    needle = selector.strip().lower()
    for index, device in enumerate(sd.query_devices()):
        if device.get("max_input_channels", 0) > 0 and needle in str(device.get("name", "")).lower():
            return index
    raise ValueError(f"No input device matching '{selector}'")


class SoundDeviceAudioEngine:
    """Captures mono float32 audio and reports chunks and levels via callbacks."""

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        channels: int = INPUT_CHANNELS,
        chunk_ms: float = CHUNK_MS,
        device: int | None = None,
    ):
        """
        Initialize the audio engine.

        Args:
            sample_rate: Sample rate in Hz (default: from config)
            channels: Number of input channels (default: from config)
            chunk_ms: Chunk size in milliseconds (default: from config)
            device: Audio input device index (None for default)
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device

        self._on_samples: SamplesCallback | None = None
        self._on_level: LevelCallback | None = None
        self._stream: sd.InputStream | None = None
        self._lock = threading.Lock()

    def bind(self, on_samples: SamplesCallback, on_level: LevelCallback | None = None) -> None:
        """Set the receivers for captured chunks and level updates."""
        self._on_samples = on_samples
        self._on_level = on_level

    @property
    def is_running(self) -> bool:
        return self._stream is not None

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """Callback for audio input stream."""
        if status:
            logger.debug(f"Audio status: {status}")
        # Convert to mono if necessary
        data = indata if indata.ndim == 1 else np.mean(indata, axis=1)
        chunk = np.array(data, dtype=np.float32, copy=True)

        on_samples = self._on_samples
        if on_samples is not None:
            on_samples(chunk)

        on_level = self._on_level
        if on_level is not None:
            try:
                on_level(compute_level(chunk))
            except Exception as e:
                # Level updates are best-effort
                logger.debug(f"Level callback failed: {e}")

    def start(self) -> None:
        """
        Start audio capture.

        Raises:
            sd.PortAudioError: If the input stream cannot be opened
        """
        with self._lock:
            if self._stream is not None:
                return
            stream = sd.InputStream(
                channels=self.channels,
                samplerate=self.sample_rate,
                dtype="float32",
                callback=self._audio_callback,
                blocksize=int(self.sample_rate * (self.chunk_ms / 1000.0)),
                device=self.device,
            )
            stream.start()
            self._stream = stream
        logger.debug("Audio capture started")

    def stop(self) -> None:
        """Stop audio capture. Safe to call when not running."""
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except (sd.PortAudioError, RuntimeError, AttributeError) as e:
            # PortAudioError: PortAudio/sounddevice errors
            # RuntimeError: Stream already closed or invalid state
            # AttributeError: Stream object is invalid
            logger.warning(f"Error while closing input stream: {e}")
        logger.debug("Audio capture stopped")
