"""Command-line entry point for sonic-dictate."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from sonic_dictate.config import DEFAULT_COMPUTE, DEFAULT_DEVICE, DEFAULT_MODEL
from sonic_dictate.models import HotkeyMode, ProviderKind

MODE_CHOICES = {
    "push-to-talk": HotkeyMode.PUSH_TO_TALK,
    "toggle": HotkeyMode.TOGGLE,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sonic-dictate",
        description="Hotkey dictation with Whisper and optional LLM refinement",
    )
    parser.add_argument("--mode", choices=sorted(MODE_CHOICES), help="Hotkey behaviour")
    parser.add_argument("--hotkey", help="Dictation hotkey (e.g. RALT, F9, CTRL+WIN+G)")
    parser.add_argument("--refine-hotkey", help="Hotkey that dictates and refines with the LLM")
    parser.add_argument(
        "--provider",
        choices=[kind.value for kind in ProviderKind],
        help="Refinement provider",
    )
    parser.add_argument("--model", help=f"Whisper model size (default: {DEFAULT_MODEL})")
    parser.add_argument("--device", choices=["cpu", "cuda"], help=f"Inference device (default: {DEFAULT_DEVICE})")
    parser.add_argument("--compute-type", help=f"CTranslate2 compute_type (default: {DEFAULT_COMPUTE})")
    parser.add_argument("--input-device", default=None, help="Input device index or name substring")
    parser.add_argument(
        "--preload-local",
        action="store_true",
        help="Load the local refinement model at startup instead of on first use",
    )
    parser.add_argument(
        "--mute-during-recording",
        action="store_true",
        help="Mute system audio output while the microphone is open",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose console logging")
    return parser


def apply_overrides(settings, args: argparse.Namespace) -> None:
    """Apply command-line values on top of saved settings for this run."""
    if args.mode:
        settings.set_hotkey_mode(MODE_CHOICES[args.mode])
    if args.hotkey:
        settings.set("hotkey", args.hotkey)
    if args.refine_hotkey:
        settings.set("refine_hotkey", args.refine_hotkey)
    if args.provider:
        settings.set_provider(ProviderKind(args.provider))
    if args.mute_during_recording:
        settings.set("mute_during_recording", True)
    for key in ("model", "device", "compute_type", "input_device"):
        value = getattr(args, key)
        if value is not None:
            settings.set(key, value)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from sonic_dictate.logging_config import quiet_third_party, setup_logging

    logger = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    quiet_third_party()

    # Heavy imports (sounddevice, faster_whisper) after logging is up
    from sonic_dictate.app import DictationApp
    from sonic_dictate.audio import SoundDeviceAudioEngine, resolve_input_device
    from sonic_dictate.hotkeys import HotkeyError, WindowsHotkeyDriver
    from sonic_dictate.local_model import LocalModelUnavailable
    from sonic_dictate.settings_store import SettingsStore
    from sonic_dictate.transcription import TranscriptionError

    settings = SettingsStore()
    apply_overrides(settings, args)

    try:
        device = resolve_input_device(settings.get("input_device"))
    except ValueError as e:
        logger.error(str(e))
        return 2

    app = DictationApp(
        settings,
        WindowsHotkeyDriver(),
        engine=SoundDeviceAudioEngine(device=device),
    )
    try:
        app.start(preload_local=args.preload_local)
    except (TranscriptionError, LocalModelUnavailable, HotkeyError) as e:
        logger.error(str(e))
        app.shutdown()
        return 1

    app.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
