"""Global hotkey drivers.

The session controller only sees a ``HotkeyDriver``: ``register(binding,
on_down, on_up)`` and ``unregister()``. On Windows the driver registers the
bindings with ``RegisterHotKey`` inside a dedicated message-pump thread and
watches for the key release with ``GetAsyncKeyState`` so push-to-talk gets
an explicit up event.
"""

from __future__ import annotations

import ctypes
import ctypes.wintypes
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sonic_dictate.config import HOTKEY_RELEASE_POLL_S

logger = logging.getLogger(__name__)

# Windows hotkey constants
_windll = getattr(ctypes, "windll", None)
if _windll and hasattr(_windll, "user32"):
    user32 = _windll.user32
    _kernel32 = _windll.kernel32
    _native_hotkeys_available = True
else:
    user32 = None
    _kernel32 = None
    _native_hotkeys_available = False
MOD_ALT = 0x0001
MOD_CONTROL = 0x0002
MOD_SHIFT = 0x0004
MOD_WIN = 0x0008
WM_HOTKEY = 0x0312
WM_QUIT = 0x0012

VK = {c: ord(c) for c in "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"}
VK.update({f"F{n}": 0x6F + n for n in range(1, 13)})
VK.update(
    {
        "SPACE": 0x20,
        "INSERT": 0x2D,
        "PAUSE": 0x13,
        "SCROLLLOCK": 0x91,
        "CAPSLOCK": 0x14,
        "LSHIFT": 0xA0,
        "RSHIFT": 0xA1,
        "LCTRL": 0xA2,
        "RCTRL": 0xA3,
        "LALT": 0xA4,
        "RALT": 0xA5,
        "LWIN": 0x5B,
        "RWIN": 0x5C,
    }
)

MODIFIERS = {
    "CTRL": MOD_CONTROL,
    "ALT": MOD_ALT,
    "SHIFT": MOD_SHIFT,
    "WIN": MOD_WIN,
}

Callback = Callable[[], None]


class HotkeyError(Exception):
    """Raised when hotkey registration fails."""


def parse_hotkey_string(s: str) -> tuple[int, int]:
    """
    Parse a hotkey string like 'CTRL+WIN+G' or 'RALT' into modifier flags
    and virtual key code.

    Args:
        s: Hotkey string (e.g., "CTRL+WIN+G", "F9", "RALT")

    Returns:
        Tuple of (modifier_flags, virtual_key_code)

    Raises:
        ValueError: If hotkey string is invalid
    """
    parts = [p.strip().upper() for p in s.split("+") if p.strip()]
    if not parts:
        raise ValueError("Empty hotkey")

    key = parts[-1]
    mods = 0
    for m in parts[:-1]:
        try:
            mods |= MODIFIERS[m]
        except KeyError:
            raise ValueError(f"Unknown modifier: {m}") from None

    try:
        vk = VK[key]
    except KeyError:
        raise ValueError(f"Unsupported key: {key}") from None

    return mods, vk


class HotkeyDriver(Protocol):
    def register(self, binding: str, on_down: Callback, on_up: Callback) -> None: ...

    def unregister(self) -> None: ...


@dataclass
class _Binding:
    hotkey_id: int
    binding: str
    mods: int
    vk: int
    on_down: Callback
    on_up: Callback


class WindowsHotkeyDriver:
    """RegisterHotKey message pump with key-release polling."""

    def __init__(self, release_poll_s: float = HOTKEY_RELEASE_POLL_S):
        self.release_poll_s = release_poll_s
        self._bindings: list[_Binding] = []
        self._lock = threading.Lock()
        self.msg_thread: threading.Thread | None = None
        self._msg_tid: int | None = None
        self._running = False
        self._registration_event: threading.Event | None = None
        self._registration_error: str | None = None
        self._held: set[int] = set()

    def register(self, binding: str, on_down: Callback, on_up: Callback) -> None:
        """
        Register a binding and (re)start the message pump thread.

        Raises:
            HotkeyError: If the binding is invalid or registration fails
        """
        try:
            mods, vk = parse_hotkey_string(binding)
        except ValueError as e:
            raise HotkeyError(f"Invalid hotkey: {e}") from e

        if not _native_hotkeys_available:
            raise HotkeyError("Failed to register hotkey: Windows APIs unavailable on this platform.")

        with self._lock:
            hotkey_id = len(self._bindings) + 1
            self._bindings.append(_Binding(hotkey_id, binding, mods, vk, on_down, on_up))

        self._stop_pump()
        error = self._start_pump()
        if error:
            with self._lock:
                self._bindings.pop()
                remaining = bool(self._bindings)
            # Earlier bindings went down with the failed pump
            if remaining:
                restore_error = self._start_pump()
                if restore_error:
                    logger.error(f"Could not restore previous hotkeys: {restore_error}")
            raise HotkeyError(error)
        logger.info(f"Registered hotkey {binding}")

    def unregister(self) -> None:
        """Unregister all bindings and stop the message pump."""
        self._stop_pump()
        with self._lock:
            self._bindings = []
            self._held.clear()

    def _start_pump(self) -> str | None:
        """Start the pump thread; return an error message if registration failed."""
        self._running = True
        self._registration_event = threading.Event()
        self._registration_error = None
        self.msg_thread = threading.Thread(target=self._message_pump, daemon=True)
        self.msg_thread.start()

        # Wait for the worker thread to report registration status
        if not self._registration_event.wait(timeout=1.0):
            self._stop_pump()
            return "Timed out waiting for hotkey registration"

        if self._registration_error:
            self._running = False
            self.msg_thread.join(timeout=0.5)
            self.msg_thread = None
            self._msg_tid = None
            return self._registration_error
        return None

    def _stop_pump(self) -> None:
        self._running = False
        if self.msg_thread and self.msg_thread.is_alive():
            if self._msg_tid and user32:
                user32.PostThreadMessageW(self._msg_tid, WM_QUIT, 0, 0)
            self.msg_thread.join(timeout=1.0)
        self.msg_thread = None
        self._msg_tid = None

    def _message_pump(self) -> None:
        """Windows message pump for hotkey handling (runs in background thread)."""
        self._msg_tid = _kernel32.GetCurrentThreadId()
        with self._lock:
            bindings = list(self._bindings)

        # Register in THIS thread so WM_HOTKEY arrives here
        registered: list[int] = []
        for b in bindings:
            if not user32.RegisterHotKey(None, b.hotkey_id, b.mods, b.vk):
                for hotkey_id in registered:
                    user32.UnregisterHotKey(None, hotkey_id)
                self._registration_error = (
                    f"Failed to register hotkey {b.binding}. The combination may already be in use."
                )
                self._registration_event.set()
                return
            registered.append(b.hotkey_id)
        self._registration_event.set()

        by_id = {b.hotkey_id: b for b in bindings}
        try:
            msg = ctypes.wintypes.MSG()
            while self._running:
                ret = user32.GetMessageW(ctypes.byref(msg), None, 0, 0)
                if ret == 0 or ret == -1:  # WM_QUIT or error
                    break
                if msg.message == WM_HOTKEY:
                    b = by_id.get(msg.wParam)
                    if b is not None:
                        self._fire_down(b)
                user32.TranslateMessage(ctypes.byref(msg))
                user32.DispatchMessageW(ctypes.byref(msg))
        finally:
            for hotkey_id in registered:
                user32.UnregisterHotKey(None, hotkey_id)

    def _fire_down(self, b: _Binding) -> None:
        # Auto-repeat WM_HOTKEY messages still reach on_down; the session
        # controller ignores them. Only one release watcher per key.
        try:
            b.on_down()
        except Exception as e:
            logger.error(f"Hotkey handler failed for {b.binding}: {e}", exc_info=True)

        with self._lock:
            if b.vk in self._held:
                return
            self._held.add(b.vk)
        threading.Thread(target=self._watch_release, args=(b,), daemon=True).start()

    def _watch_release(self, b: _Binding) -> None:
        try:
            while self._running and user32.GetAsyncKeyState(b.vk) & 0x8000:
                time.sleep(self.release_poll_s)
        finally:
            with self._lock:
                self._held.discard(b.vk)
        try:
            b.on_up()
        except Exception as e:
            logger.error(f"Hotkey release handler failed for {b.binding}: {e}", exc_info=True)
