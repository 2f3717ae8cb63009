"""
Unit tests for raspberry_config.setup.init_setup

Tests cover WiFi configuration (WEP and WPA), hostname and password
changes, settings prompts and the full initial setup sequence.
"""

import logging
import sys
from unittest.mock import patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests/", 1)[0])

from raspberry_config.core.log import setup_logging
from raspberry_config.core.system import InstallError
from raspberry_config.setup import init_setup
from raspberry_config.setup.init_setup import (
    change_password,
    configure_wifi,
    is_wep_key,
    prompt_for_settings,
    render_wpa_supplicant,
    run_init,
    set_hostname,
)


class TestWepDetection:
    def test_wep_lengths(self):
        assert is_wep_key("0123456789")
        assert is_wep_key("0123456789ABCDEF0123456789")
        assert not is_wep_key("012345678")
        assert not is_wep_key("012345678g")
        assert not is_wep_key("correct horse battery")
        assert not is_wep_key("")


class TestWpaSupplicant:
    def test_render(self):
        text = render_wpa_supplicant("Home", "hunter22", country="GB")
        assert text.startswith("country=GB\n")
        assert "ctrl_interface=DIR=/var/run/wpa_supplicant GROUP=netdev" in text
        assert '    ssid="Home"' in text
        assert '    psk="hunter22"' in text

    def test_quotes_escaped(self):
        text = render_wpa_supplicant('My "Net"', "pa\\ss")
        assert 'ssid="My \\"Net\\""' in text
        assert 'psk="pa\\\\ss"' in text

    def test_open_network(self):
        text = render_wpa_supplicant("Cafe", "")
        assert "key_mgmt=NONE" in text
        assert "psk" not in text


class TestConfigureWifi:
    def test_missing_interface(self, fake_run, paths):
        fake_run.on("ip", "link", "show", returncode=1)
        with pytest.raises(InstallError):
            configure_wifi("Home", "password1", paths)

    def test_wep_uses_iwconfig(self, fake_run, paths):
        result = configure_wifi("Home", "0123456789", paths)
        assert result.success
        assert ["iwconfig", "wlan0", "essid", "Home", "key", "0123456789"] in fake_run.calls
        assert not paths.wpa_supplicant.exists()

    def test_wep_key_kept_out_of_log(self, fake_run, paths, tmp_path):
        log_file = tmp_path / "install.log"
        setup_logging(log_file, verbose=True)
        try:
            configure_wifi("Home", "0123456789", paths)
            for handler in logging.getLogger("raspberry_config").handlers:
                handler.flush()
            text = log_file.read_text()
        finally:
            setup_logging(None)
        assert "Running: iwconfig" in text
        assert "0123456789" not in text

    def test_wpa_writes_config(self, fake_run, paths):
        paths.wpa_supplicant.parent.mkdir(parents=True)
        paths.wpa_supplicant.write_text("old\n")
        result = configure_wifi("Home", "longpassphrase", paths)
        assert result.success
        assert 'psk="longpassphrase"' in paths.wpa_supplicant.read_text()
        assert paths.wpa_supplicant.stat().st_mode & 0o777 == 0o600
        assert list(paths.wpa_supplicant.parent.glob("wpa_supplicant.conf.backup.*"))
        assert fake_run.ran("systemctl", "restart", "wpa_supplicant")
        assert fake_run.ran("wpa_cli", "-i", "wlan0", "reconfigure")

    def test_reconfigure_failure_is_warning(self, fake_run, paths):
        fake_run.on("wpa_cli", returncode=255, stderr="Failed to connect")
        result = configure_wifi("Home", "longpassphrase", paths)
        assert result.success
        assert result.errors


class TestHostnameAndPassword:
    def test_set_hostname(self, fake_run, paths):
        paths.hosts.parent.mkdir(parents=True)
        paths.hosts.write_text("127.0.1.1       raspberrypi\n")
        result = set_hostname("carpi", paths)
        assert result.success
        assert ["hostnamectl", "set-hostname", "carpi"] in fake_run.calls
        assert "127.0.1.1       carpi" in paths.hosts.read_text()

    def test_set_hostname_failure(self, fake_run, paths):
        fake_run.on("hostnamectl", returncode=1, stderr="denied")
        assert not set_hostname("carpi", paths).success

    def test_password_on_stdin(self, fake_run):
        result = change_password("pi", "s3cret")
        assert result.success
        assert fake_run.calls == [["chpasswd"]]
        assert fake_run.kwargs[0]["input"] == "pi:s3cret\n"


class TestPromptForSettings:
    def test_non_interactive_accepts(self, pi_config):
        assert prompt_for_settings(pi_config, interactive=False)

    def test_non_interactive_invalid_hostname(self, pi_config):
        pi_config.hostname = "bad_host"
        with pytest.raises(InstallError):
            prompt_for_settings(pi_config, interactive=False)

    def test_invalid_answer_keeps_previous(self, pi_config):
        answers = {
            "Hostname": "bad host!",
            "WiFi SSID": "NewNet",
        }

        def fake_input(prompt, default="", **kwargs):
            return answers.get(prompt, default)

        with patch.object(init_setup, "get_input", side_effect=fake_input), patch.object(
            init_setup, "get_yes_no", return_value=True
        ):
            assert prompt_for_settings(pi_config, interactive=True)
        assert pi_config.hostname == "testpi"
        assert pi_config.wifi_ssid == "NewNet"

    def test_cancel(self, pi_config):
        with patch.object(init_setup, "get_input", side_effect=lambda p, d="", **k: d), patch.object(
            init_setup, "get_yes_no", return_value=False
        ):
            assert not prompt_for_settings(pi_config, interactive=True)


class TestRunInit:
    def test_full_sequence(self, fake_run, paths, pi_config, no_sleep):
        fake_run.on("ip", "route", stdout="1.0.0.0 via 10.0.0.1 dev wlan0 src 10.0.0.5\n")
        with patch.object(init_setup, "command_exists", return_value=True):
            assert run_init(pi_config, paths, interactive=False)

        assert fake_run.ran("apt", "update")
        assert fake_run.ran("hostnamectl", "set-hostname", "testpi")
        assert fake_run.ran("chpasswd")
        assert fake_run.ran("git", "clone", pi_config.repo_url)
        assert pi_config.init_marker.exists()

    def test_failed_update_is_fatal(self, fake_run, paths, pi_config):
        fake_run.on("apt", "update", returncode=100, stderr="no network")
        with pytest.raises(InstallError):
            run_init(pi_config, paths, interactive=False)
        assert not fake_run.ran("hostnamectl")
        assert not pi_config.init_marker.exists()

    def test_clone_failure_is_fatal(self, fake_run, paths, pi_config, no_sleep):
        fake_run.on("git", "clone", returncode=128, stderr="not found")
        with patch.object(init_setup, "command_exists", return_value=True):
            with pytest.raises(InstallError):
                run_init(pi_config, paths, interactive=False)
        assert not pi_config.init_marker.exists()
