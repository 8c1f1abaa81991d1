"""Mute system playback while the microphone is open.

Speaker output bleeding into the microphone ends up in the transcript, so
the app can silence the default output device for the length of a recording.
Muting is best effort: every failure is logged and recording goes on.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT_S = 3.0


class MuteError(Exception):
    """Raised when a mute backend command fails."""


def _run(args: list[str]) -> str:
    try:
        completed = subprocess.run(
            args,
            check=True,
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT_S,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        # CalledProcessError: non-zero exit
        # TimeoutExpired: audio service not answering
        # OSError: executable vanished between detection and use
        raise MuteError(f"{args[0]} failed: {e}") from e
    return completed.stdout


class PowerShellBackend:
    """Default render endpoint through the Windows Core Audio COM API."""

    name = "powershell"
    _ENDPOINT = "(New-Object -ComObject MMDeviceEnumerator).GetDefaultAudioEndpoint(0,0).AudioEndpointVolume"

    def is_muted(self) -> bool:
        out = _run(["powershell.exe", "-NoProfile", "-Command", f"{self._ENDPOINT}.Mute"])
        return out.strip().lower() == "true"

    def set_muted(self, muted: bool) -> None:
        value = "$true" if muted else "$false"
        _run(["powershell.exe", "-NoProfile", "-Command", f"{self._ENDPOINT}.Mute = {value}"])


class WpctlBackend:
    name = "wpctl"
    _TARGET = "@DEFAULT_AUDIO_SINK@"

    def is_muted(self) -> bool:
        return "[muted]" in _run(["wpctl", "get-volume", self._TARGET]).lower()

    def set_muted(self, muted: bool) -> None:
        _run(["wpctl", "set-mute", self._TARGET, "1" if muted else "0"])


class PactlBackend:
    name = "pactl"
    _TARGET = "@DEFAULT_SINK@"

    def is_muted(self) -> bool:
        return "yes" in _run(["pactl", "get-sink-mute", self._TARGET]).lower()

    def set_muted(self, muted: bool) -> None:
        _run(["pactl", "set-sink-mute", self._TARGET, "1" if muted else "0"])


def detect_backend():
    """Pick the first mute backend available on this machine, or None."""
    if sys.platform.startswith("win"):
        return PowerShellBackend() if shutil.which("powershell.exe") else None
    if shutil.which("wpctl"):
        return WpctlBackend()
    if shutil.which("pactl"):
        return PactlBackend()
    return None


class SystemMuter:
    """Mute on recording start and put the previous state back afterwards.

    Output that was already muted before recording stays muted.
    """

    def __init__(self, backend=None):
        self._backend = backend if backend is not None else detect_backend()
        self._active = False
        self._was_muted = False
        if self._backend is None:
            logger.info("System mute unavailable: no audio control backend found")

    @property
    def is_active(self) -> bool:
        return self._active

    def mute(self) -> None:
        if self._backend is None or self._active:
            return
        try:
            self._was_muted = self._backend.is_muted()
            if not self._was_muted:
                self._backend.set_muted(True)
        except MuteError as e:
            logger.warning(f"Failed to mute system audio: {e}")
            return
        self._active = True
        logger.debug(f"Muted system audio via {self._backend.name}")

    def restore(self) -> None:
        if self._backend is None or not self._active:
            return
        self._active = False
        if self._was_muted:
            return
        try:
            self._backend.set_muted(False)
            logger.debug(f"Restored system audio via {self._backend.name}")
        except MuteError as e:
            logger.warning(f"Failed to restore system audio: {e}")
