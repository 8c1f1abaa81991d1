"""Tests for clipboard text insertion."""

from unittest.mock import MagicMock, patch

import pyperclip
import pytest

from sonic_dictate.injection import ClipboardTextInjector


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_clipboard():
    with patch("sonic_dictate.injection.pyperclip.copy") as mock_copy:
        yield mock_copy


@pytest.fixture
def mock_pyautogui():
    fake = MagicMock()
    with patch("sonic_dictate.injection.pyautogui", fake):
        with patch("sonic_dictate.injection.time.sleep"):
            yield fake


class TestClipboardTextInjector:
    """Test ClipboardTextInjector."""

    def test_copy_and_paste(self, mock_clipboard, mock_pyautogui, clock):
        """Test that text is copied and Ctrl+V is sent."""
        injector = ClipboardTextInjector(clock=clock)
        injector.insert_text("Hello there.")

        mock_clipboard.assert_called_once_with("Hello there.")
        mock_pyautogui.hotkey.assert_called_once_with("ctrl", "v")

    def test_empty_text_ignored(self, mock_clipboard, mock_pyautogui, clock):
        """Test that nothing happens for empty text."""
        ClipboardTextInjector(clock=clock).insert_text("")
        mock_clipboard.assert_not_called()
        mock_pyautogui.hotkey.assert_not_called()

    def test_consecutive_inserts_spaced(self, mock_clipboard, mock_pyautogui, clock):
        """Test that a quick follow-up dictation gets a leading space."""
        injector = ClipboardTextInjector(consecutive_window=30.0, clock=clock)
        injector.insert_text("First.")
        clock.now += 5
        injector.insert_text("Second.")
        clock.now += 5
        injector.insert_text(" Third.")

        assert [c.args[0] for c in mock_clipboard.call_args_list] == ["First.", " Second.", " Third."]

    def test_insert_after_window_not_spaced(self, mock_clipboard, mock_pyautogui, clock):
        """Test that a dictation after a long pause starts fresh."""
        injector = ClipboardTextInjector(consecutive_window=30.0, clock=clock)
        injector.insert_text("First.")
        clock.now += 31
        injector.insert_text("Later.")

        assert mock_clipboard.call_args_list[-1].args[0] == "Later."

    def test_auto_paste_disabled(self, mock_clipboard, mock_pyautogui, clock):
        """Test clipboard-only mode."""
        ClipboardTextInjector(auto_paste=False, clock=clock).insert_text("Text")
        mock_clipboard.assert_called_once_with("Text")
        mock_pyautogui.hotkey.assert_not_called()

    def test_clipboard_failure_skips_paste(self, mock_clipboard, mock_pyautogui, clock, caplog):
        """Test that a clipboard error is logged and nothing is pasted."""
        mock_clipboard.side_effect = pyperclip.PyperclipException("no clipboard")
        ClipboardTextInjector(clock=clock).insert_text("Text")

        mock_pyautogui.hotkey.assert_not_called()
        assert "Clipboard copy failed" in caplog.text

    def test_pyautogui_unavailable(self, mock_clipboard, clock, caplog):
        """Test that a missing display leaves the text on the clipboard."""
        with patch("sonic_dictate.injection.pyautogui", None):
            ClipboardTextInjector(clock=clock).insert_text("Text")

        mock_clipboard.assert_called_once_with("Text")
        assert "pyautogui is not available" in caplog.text
