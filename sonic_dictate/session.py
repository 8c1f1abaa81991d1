"""Hotkey-driven recording state machine.

The controller owns the single ``RecordingSession`` of the process. Hotkey
handlers only flip state under a lock and start or stop the audio engine;
the sealed buffer is handed to the pipeline on a worker so the hotkey path
never waits on transcription or refinement.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

import numpy as np

from sonic_dictate.models import AudioBuffer, HotkeyMode, RecordingSession, SessionState

logger = logging.getLogger(__name__)

PipelineCallable = Callable[[np.ndarray, bool], None]
Dispatch = Callable[[Callable[[], None]], None]


class AudioEngine(Protocol):
    def bind(
        self,
        on_samples: Callable[[np.ndarray], None],
        on_level: Callable[[float], None] | None = None,
    ) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


def _thread_dispatch(work: Callable[[], None]) -> None:
    threading.Thread(target=work, name="dictation-pipeline", daemon=True).start()


class SessionController:
    """Turns hotkey down/up events and audio chunks into sealed utterances."""

    def __init__(
        self,
        engine: AudioEngine,
        pipeline: PipelineCallable,
        mode: HotkeyMode = HotkeyMode.PUSH_TO_TALK,
        hotkey_code: str = "",
        on_state_change: Callable[[SessionState, SessionState], None] | None = None,
        on_rejected: Callable[[str], None] | None = None,
        on_level: Callable[[float], None] | None = None,
        dispatch: Dispatch | None = None,
    ):
        self._engine = engine
        self._pipeline = pipeline
        self._on_state_change = on_state_change
        self._on_rejected = on_rejected
        self._on_level = on_level
        self._dispatch = dispatch or _thread_dispatch

        self._lock = threading.Lock()
        self.session = RecordingSession(mode=mode, hotkey_code=hotkey_code)
        self._buffer: AudioBuffer | None = None
        self._in_flight = False

        engine.bind(self.on_samples, self.on_level)

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def mode(self) -> HotkeyMode:
        return self.session.mode

    @property
    def is_busy(self) -> bool:
        """True while a sealed buffer is still being transcribed or refined."""
        return self._in_flight

    # ------------------------------------------------------------------
    # Hotkey events
    # ------------------------------------------------------------------
    def on_hotkey_down(self, refine: bool = False) -> None:
        with self._lock:
            if self.session.state is SessionState.RECORDING:
                if self.session.mode is HotkeyMode.PUSH_TO_TALK:
                    # Key auto-repeat while held
                    return
                work = self._finish_locked()
                stopping = True
            else:
                stopping = False
                busy = self._in_flight
                started = not busy and self._begin_locked(refine)

        if stopping:
            self._complete(work)
        elif busy:
            logger.info("Previous dictation still processing, recording rejected")
            self._reject("busy")
        elif started:
            self._notify(SessionState.IDLE, SessionState.RECORDING)

    def on_hotkey_up(self) -> None:
        with self._lock:
            if self.session.mode is not HotkeyMode.PUSH_TO_TALK:
                return
            if self.session.state is not SessionState.RECORDING:
                return
            work = self._finish_locked()

        self._complete(work)

    def _complete(self, work: Callable[[], None] | None) -> None:
        self._notify(SessionState.RECORDING, SessionState.IDLE)
        if work is not None:
            self._dispatch(work)

    def set_mode(self, mode: HotkeyMode) -> bool:
        """Change the hotkey mode. Refused while a recording is in progress."""
        with self._lock:
            if self.session.state is SessionState.RECORDING:
                logger.warning("Cannot change hotkey mode while recording")
                return False
            self.session.mode = mode
        logger.info(f"Hotkey mode set to {mode.value}")
        return True

    # ------------------------------------------------------------------
    # Audio engine callbacks
    # ------------------------------------------------------------------
    def on_samples(self, chunk: np.ndarray) -> None:
        buffer = self._buffer
        if buffer is not None and self.session.state is SessionState.RECORDING:
            buffer.append(chunk)

    def on_level(self, level: float) -> None:
        callback = self._on_level
        if callback is None:
            return
        try:
            callback(level)
        except Exception as e:
            logger.debug(f"Level listener failed: {e}")

    # ------------------------------------------------------------------
    # Internals (called with the lock held)
    # ------------------------------------------------------------------
    def _begin_locked(self, refine: bool) -> bool:
        self._buffer = AudioBuffer()
        self.session.begin(refine)
        try:
            self._engine.start()
        except Exception as e:
            # sounddevice raises PortAudioError, drivers raise anything
            logger.error(f"Could not start input device: {e}")
            self.session.reset()
            self._buffer = None
            return False
        logger.info("Recording started")
        return True

    def _finish_locked(self) -> Callable[[], None] | None:
        try:
            self._engine.stop()
        except Exception as e:
            logger.error(f"Error while stopping input device: {e}")

        buffer, self._buffer = self._buffer, None
        refine = self.session.refine
        self.session.reset()

        audio = buffer.seal() if buffer is not None else np.zeros(0, dtype=np.float32)
        if audio.size == 0:
            logger.info("Recording stopped, no audio captured")
            return None

        logger.info(f"Recording stopped, {audio.size} samples captured")
        self._in_flight = True

        def work() -> None:
            try:
                self._pipeline(audio, refine)
            except Exception as e:
                logger.error(f"Dictation pipeline failed: {e}", exc_info=True)
            finally:
                with self._lock:
                    self._in_flight = False

        return work

    def _notify(self, old: SessionState, new: SessionState) -> None:
        callback = self._on_state_change
        if callback is None:
            return
        try:
            callback(old, new)
        except Exception as e:
            logger.error(f"State change listener failed: {e}", exc_info=True)

    def _reject(self, reason: str) -> None:
        callback = self._on_rejected
        if callback is None:
            return
        try:
            callback(reason)
        except Exception as e:
            logger.error(f"Rejection listener failed: {e}", exc_info=True)
