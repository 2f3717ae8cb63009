"""
Unit tests for pi_utils module.

Tests behavioral logic: Pi detection from model files, serial status
parsing, raspi-config integration and network helpers.
"""

import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(__file__).rsplit("/tests/", 1)[0])

from raspberry_config.core.paths import SystemPaths
from raspberry_config.core.pi_utils import (
    check_serial_enabled,
    configure_serial_hardware,
    get_invoking_user,
    get_ip_address,
    get_pi_model,
    get_user_home,
    is_raspberry_pi,
    wait_for_network,
    wireless_interface_exists,
)


class TestPiDetection:
    """Test Pi detection with model files."""

    def test_pi_model_file(self, tmp_path):
        model = tmp_path / "model"
        model.write_text("Raspberry Pi 4 Model B Rev 1.4\x00")
        assert is_raspberry_pi(model)
        assert get_pi_model(model) == "Raspberry Pi 4 Model B Rev 1.4"

    def test_other_board(self, tmp_path):
        model = tmp_path / "model"
        model.write_text("Generic x86 PC")
        assert not is_raspberry_pi(model)

    def test_missing_model_file(self, tmp_path):
        assert not is_raspberry_pi(tmp_path / "missing")
        assert get_pi_model(tmp_path / "missing") == "Unknown"


class TestUsers:
    @patch.dict("os.environ", {"SUDO_USER": "alice"})
    def test_sudo_user(self):
        assert get_invoking_user() == "alice"

    def test_unknown_user_home(self):
        assert get_user_home("no-such-user-xyz") == Path("/home/no-such-user-xyz")


class TestSerialStatus:
    def test_enabled(self, tmp_path):
        paths = SystemPaths.under(tmp_path)
        paths.boot_config.parent.mkdir(parents=True)
        paths.boot_config.write_text("dtparam=audio=on\nenable_uart=1\n")
        paths.boot_cmdline.write_text("console=serial0,115200 console=tty1 root=/dev/mmcblk0p2\n")
        assert check_serial_enabled(paths) == (True, True)

    def test_disabled(self, tmp_path):
        paths = SystemPaths.under(tmp_path)
        paths.boot_config.parent.mkdir(parents=True)
        paths.boot_config.write_text("#enable_uart=1\nenable_uart=0\n")
        paths.boot_cmdline.write_text("console=tty1 root=/dev/mmcblk0p2\n")
        assert check_serial_enabled(paths) == (False, False)

    def test_missing_files(self, tmp_path):
        assert check_serial_enabled(SystemPaths.under(tmp_path)) == (False, False)


class TestRaspiConfig:
    @patch("raspberry_config.core.pi_utils.command_exists", return_value=False)
    def test_missing_raspi_config(self, mock_exists, fake_run):
        ok, msg = configure_serial_hardware()
        assert not ok
        assert not fake_run.calls

    @patch("raspberry_config.core.pi_utils.command_exists", return_value=True)
    def test_hardware_on_console_off(self, mock_exists, fake_run):
        ok, _ = configure_serial_hardware()
        assert ok
        assert fake_run.calls == [["raspi-config", "nonint", "do_serial", "2"]]
        assert fake_run.kwargs[0]["timeout"] == 60


class TestNetwork:
    def test_interface_exists(self, fake_run):
        fake_run.on("ip", "link", "show", "wlan0", returncode=1)
        assert not wireless_interface_exists("wlan0")
        assert wireless_interface_exists("eth0")

    def test_ip_from_src(self, fake_run):
        fake_run.on("ip", "route", stdout="1.0.0.0 via 192.168.1.1 dev wlan0 src 192.168.1.50 uid 0\n")
        assert get_ip_address() == "192.168.1.50"

    def test_ip_unavailable(self, fake_run):
        fake_run.on("ip", "route", returncode=2, stderr="Network is unreachable")
        assert get_ip_address() is None

    def test_wait_for_network(self, fake_run, no_sleep):
        assert wait_for_network("8.8.8.8", timeout=3)
        assert len(fake_run.calls) == 1

    def test_wait_gives_up(self, fake_run, no_sleep):
        fake_run.on("ping", returncode=1)
        assert not wait_for_network("8.8.8.8", timeout=3)
        assert len(fake_run.calls) == 3
