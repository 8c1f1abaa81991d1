"""Wire the dictation components together."""

from __future__ import annotations

import logging
import threading
from typing import Any

from sonic_dictate.audio import SoundDeviceAudioEngine
from sonic_dictate.history import TranscriptionHistory
from sonic_dictate.hotkeys import HotkeyDriver, HotkeyError
from sonic_dictate.injection import ClipboardTextInjector
from sonic_dictate.models import HotkeyMode, SessionState
from sonic_dictate.pipeline import DictationPipeline, TextInjector, Transcriber
from sonic_dictate.refinement import RefinementRouter
from sonic_dictate.session import AudioEngine, SessionController
from sonic_dictate.settings_store import SettingsStore
from sonic_dictate.system_mute import SystemMuter
from sonic_dictate.transcription import WhisperTranscriber
from sonic_dictate.validation import CredentialValidator, ValidationTracker

logger = logging.getLogger(__name__)


class DictationApp:
    """Owns one instance of every component and keeps them in sync with settings."""

    def __init__(
        self,
        settings: SettingsStore,
        hotkeys: HotkeyDriver,
        engine: AudioEngine | None = None,
        transcriber: Transcriber | None = None,
        injector: TextInjector | None = None,
        router: RefinementRouter | None = None,
        history: TranscriptionHistory | None = None,
        muter: SystemMuter | None = None,
    ):
        self.settings = settings
        self.hotkeys = hotkeys
        self.engine = engine or SoundDeviceAudioEngine(device=settings.get("input_device"))
        self.transcriber = transcriber or WhisperTranscriber(
            model_name=settings.get("model"),
            device=settings.get("device"),
            compute_type=settings.get("compute_type"),
            language=settings.get("language"),
        )
        self.injector = injector or ClipboardTextInjector(
            paste_delay=float(settings.get("paste_delay")),
        )
        self.router = router or RefinementRouter(settings)
        self.history = history if history is not None else TranscriptionHistory()
        self.muter = muter or SystemMuter()

        self.pipeline = DictationPipeline(
            self.transcriber,
            self.router,
            self.injector,
            settings,
            history=self.history,
            on_error=self._on_pipeline_error,
        )
        self.session = SessionController(
            self.engine,
            self.pipeline,
            mode=settings.hotkey_mode(),
            hotkey_code=settings.get("hotkey"),
            on_state_change=self._on_state_change,
            on_rejected=self._on_rejected,
        )
        self.validator = CredentialValidator(settings, self.router)
        self.validation = ValidationTracker(self.validator, settings)

        settings.add_listener(self.router.on_setting_changed)
        settings.add_listener(self.validation.on_setting_changed)
        settings.add_listener(self._on_setting_changed)

        self._stop = threading.Event()

    def register_hotkeys(self) -> None:
        """
        Bind the dictation and refinement hotkeys.

        Raises:
            HotkeyError: If a binding is invalid or already taken
        """
        self.hotkeys.register(
            self.settings.get("hotkey"),
            lambda: self.session.on_hotkey_down(refine=False),
            self.session.on_hotkey_up,
        )
        refine_hotkey = self.settings.get("refine_hotkey")
        if refine_hotkey:
            self.hotkeys.register(
                refine_hotkey,
                lambda: self.session.on_hotkey_down(refine=True),
                self.session.on_hotkey_up,
            )

    def _on_setting_changed(self, key: str, old: Any, new: Any) -> None:
        if key == "hotkey_mode":
            self.session.set_mode(self.settings.hotkey_mode())
        elif key in ("hotkey", "refine_hotkey"):
            logger.info(f"Hotkey binding changed: {key} {old} -> {new}")
            self.hotkeys.unregister()
            try:
                self.register_hotkeys()
            except HotkeyError as e:
                logger.error(f"Could not rebind hotkeys: {e}")

    def _on_state_change(self, old: SessionState, new: SessionState) -> None:
        if new is SessionState.RECORDING:
            if self.settings.get("mute_during_recording"):
                self.muter.mute()
            logger.info("[REC] Speak now.")
        else:
            self.muter.restore()
            logger.info("[REC] Stopped. Transcribing...")

    def _on_rejected(self, reason: str) -> None:
        logger.warning(f"Dictation ignored ({reason}): previous dictation still processing")

    def _on_pipeline_error(self, message: str) -> None:
        logger.warning(f"Dictation error: {message}")

    def start(self, preload_local: bool = False) -> None:
        """Load models and register hotkeys."""
        self.transcriber.load()
        if preload_local:
            self.router.preload_local()
        self.register_hotkeys()
        mode = self.session.mode
        hint = "hold" if mode is HotkeyMode.PUSH_TO_TALK else "press"
        logger.info(f"Ready. {hint} {self.settings.get('hotkey')} to dictate ({mode.value}).")

    def run_forever(self) -> None:
        """Block until ``stop`` is called or the process is interrupted."""
        try:
            while not self._stop.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Quitting.")
        finally:
            self.shutdown()

    def stop(self) -> None:
        self._stop.set()

    def shutdown(self) -> None:
        self.hotkeys.unregister()
        self.engine.stop()
        self.muter.restore()
        self.router.unload_local()
