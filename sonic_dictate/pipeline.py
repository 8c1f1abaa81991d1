"""Post-recording processing: transcribe, correct, refine, insert."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

import numpy as np

from sonic_dictate.history import TranscriptionHistory
from sonic_dictate.models import VocabularyMap
from sonic_dictate.providers import ProviderError
from sonic_dictate.refinement import RefinementRouter
from sonic_dictate.transcription import EngineNotReady, TranscriptionError
from sonic_dictate.vocabulary import correct

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    def transcribe(self, buffer: np.ndarray) -> str: ...


class TextInjector(Protocol):
    def insert_text(self, text: str) -> None: ...


class PipelineSettings(Protocol):
    def vocabulary(self) -> VocabularyMap: ...

    def get(self, key: str, default=None): ...


class DictationPipeline:
    """Runs one sealed utterance through every post-processing stage in order."""

    def __init__(
        self,
        transcriber: Transcriber,
        router: RefinementRouter,
        injector: TextInjector,
        settings: PipelineSettings,
        history: TranscriptionHistory | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self._transcriber = transcriber
        self._router = router
        self._injector = injector
        self._settings = settings
        self._history = history
        self._on_error = on_error

    def __call__(self, buffer: np.ndarray, refine: bool = False) -> str | None:
        return self.process(buffer, refine)

    def process(self, buffer: np.ndarray, refine: bool = False) -> str | None:
        """
        Process one utterance and insert the result.

        Returns:
            The inserted text, or None if nothing was inserted
        """
        start_time = time.perf_counter()
        try:
            text = self._transcriber.transcribe(buffer)
        except EngineNotReady as e:
            self._report(f"Transcription engine not ready: {e}")
            return None
        except TranscriptionError as e:
            self._report(str(e))
            return None

        if not text or not text.strip():
            logger.info("Silence or no text, nothing inserted")
            return None

        corrected = correct(text, self._settings.vocabulary())
        final_text, skill_name = self._refine(corrected, refine)

        self._injector.insert_text(final_text)
        logger.info(f"Dictation inserted in {time.perf_counter() - start_time:.3f}s")
        if self._history is not None and self._settings.get("history_enabled", True):
            self._history.add(final_text, skill_name)
        return final_text

    def _refine(self, corrected: str, refine: bool) -> tuple[str, str | None]:
        match = self._router.match_skill(corrected)
        skill_name = None
        try:
            if match is not None:
                skill, remainder = match
                skill_name = skill.name
                refined = self._router.process_skill(skill, remainder)
            elif refine or self._settings.get("auto_refine", False):
                refined = self._router.refine(corrected)
            else:
                return corrected, None
        except ProviderError as e:
            self._report(f"Refinement failed: {e}")
            return corrected, None

        if not refined or not refined.strip():
            logger.warning("Refinement returned empty text, inserting transcription instead")
            return corrected, None
        return refined, skill_name

    def _report(self, message: str) -> None:
        logger.error(message)
        if self._on_error is None:
            return
        try:
            self._on_error(message)
        except Exception as e:
            logger.error(f"Error listener failed: {e}", exc_info=True)
