"""Sonic Dictate - hotkey dictation with vocabulary correction and LLM refinement."""

__version__ = "0.1.0"

__all__ = [
    "audio",
    "config",
    "hotkeys",
    "pipeline",
    "refinement",
    "sanitizer",
    "session",
    "transcription",
    "validation",
    "vocabulary",
]
