"""
Shared test fixtures for raspberry_config test suite.
"""

import subprocess
import sys

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests/", 1)[0])

from raspberry_config.core.config import PiConfig
from raspberry_config.core.paths import SystemPaths


class FakeSubprocess:
    """Stand-in for subprocess.run that records commands.

    Responses are matched on command prefix, most recently added first.
    Unmatched commands succeed with empty output.
    """

    def __init__(self):
        self.calls = []
        self.kwargs = []
        self._responses = []

    def on(self, *prefix, returncode=0, stdout="", stderr="", raises=None, effect=None):
        """Register a response. ``effect`` is called when the command runs."""
        self._responses.append((list(prefix), returncode, stdout, stderr, raises, effect))
        return self

    def __call__(self, cmd, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        for prefix, returncode, stdout, stderr, raises, effect in reversed(self._responses):
            if cmd[: len(prefix)] == prefix:
                if raises is not None:
                    raise raises
                if effect is not None:
                    effect()
                return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def ran(self, *prefix) -> bool:
        return any(call[: len(prefix)] == list(prefix) for call in self.calls)

    def find(self, *prefix):
        """kwargs of the first call starting with ``prefix``."""
        for call, kwargs in zip(self.calls, self.kwargs):
            if call[: len(prefix)] == list(prefix):
                return kwargs
        return None


@pytest.fixture
def fake_run(monkeypatch):
    """Replace subprocess.run for everything going through run_command."""
    fake = FakeSubprocess()
    monkeypatch.setattr("raspberry_config.core.system.subprocess.run", fake)
    return fake


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def paths(tmp_path):
    """A SystemPaths layout rooted in a temporary directory."""
    return SystemPaths.under(tmp_path / "root")


@pytest.fixture
def pi_config(tmp_path):
    """A non-interactive configuration using a temporary working directory."""
    return PiConfig(
        hostname="testpi",
        pi_password="secret",
        wifi_ssid="TestNet",
        wifi_password="wifipass",
        temp_dir=str(tmp_path / "work"),
        interactive_mode=False,
    )
