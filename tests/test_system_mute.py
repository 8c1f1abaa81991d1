"""Tests for muting system audio around a recording."""

import subprocess
from unittest.mock import patch

import pytest

from sonic_dictate import system_mute
from sonic_dictate.system_mute import MuteError, PactlBackend, SystemMuter, WpctlBackend


class FakeBackend:
    name = "fake"

    def __init__(self, muted=False, fail=False):
        self.muted = muted
        self.fail = fail
        self.set_calls = []

    def is_muted(self):
        if self.fail:
            raise MuteError("audio service down")
        return self.muted

    def set_muted(self, muted):
        if self.fail:
            raise MuteError("audio service down")
        self.set_calls.append(muted)
        self.muted = muted


class TestSystemMuter:
    """Test SystemMuter state handling."""

    def test_mute_and_restore(self):
        backend = FakeBackend()
        muter = SystemMuter(backend)

        muter.mute()
        assert backend.muted is True
        assert muter.is_active

        muter.restore()
        assert backend.muted is False
        assert not muter.is_active

    def test_already_muted_stays_muted(self):
        """Test that output muted by the user is left muted afterwards."""
        backend = FakeBackend(muted=True)
        muter = SystemMuter(backend)

        muter.mute()
        muter.restore()

        assert backend.muted is True
        assert backend.set_calls == []

    def test_repeated_mute_is_ignored(self):
        backend = FakeBackend()
        muter = SystemMuter(backend)

        muter.mute()
        muter.mute()

        assert backend.set_calls == [True]

    def test_restore_without_mute(self):
        backend = FakeBackend()
        SystemMuter(backend).restore()
        assert backend.set_calls == []

    def test_failures_are_logged(self, caplog):
        """Test that backend errors never reach the caller."""
        muter = SystemMuter(FakeBackend(fail=True))

        muter.mute()
        muter.restore()

        assert not muter.is_active
        assert "Failed to mute system audio" in caplog.text

    def test_no_backend(self):
        with patch("sonic_dictate.system_mute.detect_backend", return_value=None):
            muter = SystemMuter()
        muter.mute()
        muter.restore()
        assert not muter.is_active


class TestBackends:
    """Test the command-line backends with subprocess mocked."""

    def test_wpctl_reads_mute_state(self):
        with patch("sonic_dictate.system_mute.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="Volume: 0.40 [MUTED]\n")
            assert WpctlBackend().is_muted() is True

    def test_pactl_sets_mute(self):
        with patch("sonic_dictate.system_mute.subprocess.run") as mock_run:
            PactlBackend().set_muted(False)
        args = mock_run.call_args[0][0]
        assert args == ["pactl", "set-sink-mute", "@DEFAULT_SINK@", "0"]

    def test_command_failure_raises_mute_error(self):
        with patch("sonic_dictate.system_mute.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.CalledProcessError(1, ["wpctl"])
            with pytest.raises(MuteError, match="wpctl failed"):
                WpctlBackend().set_muted(True)

    def test_missing_executable_raises_mute_error(self):
        with patch("sonic_dictate.system_mute.subprocess.run", side_effect=FileNotFoundError("pactl")):
            with pytest.raises(MuteError):
                PactlBackend().is_muted()

    def test_detect_prefers_wpctl(self, monkeypatch):
        monkeypatch.setattr(system_mute.sys, "platform", "linux")
        monkeypatch.setattr(system_mute.shutil, "which", lambda name: f"/usr/bin/{name}")
        assert isinstance(system_mute.detect_backend(), WpctlBackend)

    def test_detect_nothing_available(self, monkeypatch):
        monkeypatch.setattr(system_mute.sys, "platform", "linux")
        monkeypatch.setattr(system_mute.shutil, "which", lambda name: None)
        assert system_mute.detect_backend() is None
