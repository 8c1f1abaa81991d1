"""Insert finished text at the current focus target via the clipboard."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import pyperclip

try:
    import pyautogui

    pyautogui.FAILSAFE = False
except Exception:  # pragma: no cover - needs a display
    pyautogui = None  # type: ignore[assignment]

from sonic_dictate.config import CONSECUTIVE_INSERT_WINDOW_S, DEFAULT_PASTE_DELAY

logger = logging.getLogger(__name__)


class ClipboardTextInjector:
    """Copy text to the clipboard and paste it with Ctrl+V.

    Dictations that follow each other within ``consecutive_window`` seconds
    are separated by a single space so sentences do not run together.
    """

    def __init__(
        self,
        paste_delay: float = DEFAULT_PASTE_DELAY,
        auto_paste: bool = True,
        consecutive_window: float = CONSECUTIVE_INSERT_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.paste_delay = paste_delay
        self.auto_paste = auto_paste
        self.consecutive_window = consecutive_window
        self._clock = clock
        self._last_insert: float | None = None
        self._lock = threading.Lock()

    def _with_separator(self, text: str) -> str:
        now = self._clock()
        with self._lock:
            last, self._last_insert = self._last_insert, now
        if last is not None and now - last <= self.consecutive_window and not text[:1].isspace():
            return " " + text
        return text

    def insert_text(self, text: str) -> None:
        """Best-effort insertion; failures are logged, never raised."""
        if not text:
            return
        payload = self._with_separator(text)

        try:
            pyperclip.copy(payload)
        except pyperclip.PyperclipException as e:
            logger.error(f"Clipboard copy failed: {e}")
            return
        logger.debug("Copied text to clipboard")

        if not self.auto_paste:
            return
        if pyautogui is None:
            logger.warning("Auto-paste requested, but pyautogui is not available")
            return

        time.sleep(self.paste_delay)
        try:
            pyautogui.hotkey("ctrl", "v")
            logger.debug("Pasted into active window")
        except Exception as e:  # pragma: no cover - UI automation issues
            logger.error(f"Auto-paste failed: {e}")
