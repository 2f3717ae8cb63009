"""
Unit tests for raspberry_config.setup.essentials
"""

import sys
from unittest.mock import patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests/", 1)[0])

from raspberry_config.core.config import PiConfig
from raspberry_config.core.system import InstallError
from raspberry_config.setup import essentials
from raspberry_config.setup.essentials import (
    ESSENTIAL_PACKAGES,
    create_config_file,
    create_directories,
    run_essentials,
    setup_git_config,
)


class TestCreateConfigFile:
    def test_non_interactive_defaults(self, tmp_path):
        path = tmp_path / "pi-config.conf"
        with patch.object(essentials.socket, "gethostname", return_value="raspberrypi"):
            config = create_config_file(path, interactive=False)
        assert config.hostname == "raspberrypi"
        assert config.interactive_mode is False
        assert PiConfig.load(path, environ={}).hostname == "raspberrypi"

    def test_invalid_system_hostname(self, tmp_path):
        with patch.object(essentials.socket, "gethostname", return_value="host.example.com"):
            config = create_config_file(tmp_path / "pi-config.conf", interactive=False)
        assert config.hostname == "Pi"

    def test_keeps_existing(self, tmp_path):
        path = tmp_path / "pi-config.conf"
        path.write_text('hostname="mine"\n')
        assert create_config_file(path, interactive=False) is None
        assert path.read_text() == 'hostname="mine"\n'

    def test_interactive_prompts(self, tmp_path):
        answers = {"Hostname": "carpi", "WiFi SSID (blank to skip)": "Home", "WiFi password": "pw123456"}

        def fake_input(prompt, default="", **kwargs):
            return answers.get(prompt, default)

        with patch.object(essentials, "get_input", side_effect=fake_input):
            config = create_config_file(tmp_path / "pi-config.conf", interactive=True)
        assert config.hostname == "carpi"
        assert config.wifi_ssid == "Home"
        assert config.wifi_password == "pw123456"


class TestGitConfig:
    def test_sets_missing_identity(self, fake_run):
        fake_run.on("git", "config", "--global", "--get", "user.name", stdout="Alice\n")
        result = setup_git_config()
        assert result.success
        assert ["git", "config", "--global", "--add", "safe.directory", "*"] in fake_run.calls
        assert ["git", "config", "--global", "user.email", "pi@raspberrypi.local"] in fake_run.calls
        assert not fake_run.ran("git", "config", "--global", "user.name")

    def test_failure(self, fake_run):
        fake_run.on("git", "config", "--global", "--add", returncode=1, stderr="no git")
        assert not setup_git_config().success


class TestRunEssentials:
    def test_directories(self, paths, pi_config):
        result = create_directories(pi_config, paths)
        assert result.success
        assert paths.log_dir.is_dir()

    def test_sequence_with_existing_config(self, fake_run, paths, tmp_path):
        config_file = tmp_path / "etc" / "pi-config.conf"
        PiConfig(hostname="carpi", temp_dir=str(tmp_path / "work")).write(config_file)

        config = run_essentials(paths, config_file=config_file, interactive=False)
        assert config.hostname == "carpi"
        assert (tmp_path / "work").is_dir()
        assert paths.log_dir.is_dir()
        assert ["apt", "install", "-y"] + ESSENTIAL_PACKAGES in fake_run.calls
        assert fake_run.ran("git", "config", "--global", "--add", "safe.directory")

    def test_package_failure(self, fake_run, paths, tmp_path):
        fake_run.on("apt", "install", returncode=100, stderr="broken")
        with pytest.raises(InstallError):
            run_essentials(paths, config_file=tmp_path / "pi-config.conf", interactive=False)
