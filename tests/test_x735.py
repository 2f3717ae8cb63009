"""
Unit tests for raspberry_config.setup.x735
"""

import os
import sys

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests/", 1)[0])

from raspberry_config.core.system import InstallError
from raspberry_config.setup.x735 import (
    PWM_OVERLAY,
    REQUIRED_SCRIPTS,
    UTILITY_SCRIPTS,
    add_pwm_overlay,
    create_poweroff_script,
    ensure_overlay,
    install_services,
    install_x735,
    install_xsoft,
    locate_install_files,
    verify_installation,
)


def make_repo(root):
    """A repository clone with the x735 submodule checked out."""
    install_files = root / "x735" / "install_files"
    install_files.mkdir(parents=True)
    for name in REQUIRED_SCRIPTS:
        (install_files / name).write_text("#!/bin/bash\n")
    bin_dir = root / "x735" / "bin"
    bin_dir.mkdir()
    for name in UTILITY_SCRIPTS:
        (bin_dir / name).write_text("#!/bin/sh\n")
    return install_files


class TestOverlay:
    def test_after_first_all(self):
        text, changed = ensure_overlay("[pi4]\narm_boost=1\n[all]\ndtparam=audio=on\n[all]\n")
        assert changed
        assert text.splitlines()[:4] == ["[pi4]", "arm_boost=1", "[all]", PWM_OVERLAY]
        assert text.count(PWM_OVERLAY) == 1

    def test_appends_all_section(self):
        text, changed = ensure_overlay("dtparam=audio=on\n")
        assert changed
        assert text.endswith("[all]\n" + PWM_OVERLAY + "\n")

    def test_idempotent(self):
        original = f"[all]\n{PWM_OVERLAY}\n"
        assert ensure_overlay(original) == (original, False)

    def test_add_pwm_overlay_backs_up(self, paths):
        paths.boot_config.parent.mkdir(parents=True)
        paths.boot_config.write_text("[all]\n")
        result = add_pwm_overlay(paths, interactive=False)
        assert result.requires_reboot
        assert PWM_OVERLAY in paths.boot_config.read_text()
        assert list(paths.boot_config.parent.glob("config.txt.backup.*"))

    def test_missing_config_non_interactive(self, paths):
        with pytest.raises(InstallError):
            add_pwm_overlay(paths, interactive=False)


class TestInstallFiles:
    def test_found(self, tmp_path):
        install_files = make_repo(tmp_path)
        assert locate_install_files(tmp_path) == install_files

    def test_submodule_update(self, fake_run, tmp_path):
        (tmp_path / ".git").mkdir()
        with pytest.raises(InstallError):
            locate_install_files(tmp_path)
        assert fake_run.ran("git", "-C", str(tmp_path), "submodule", "update", "--init", "--recursive")
        assert ["git", "-C", str(tmp_path), "submodule", "update", "--init", "--recursive", "--force"] in fake_run.calls

    def test_not_a_clone(self, fake_run, tmp_path):
        with pytest.raises(InstallError):
            locate_install_files(tmp_path)
        assert not fake_run.calls

    def test_install_services_stop_on_failure(self, fake_run, tmp_path):
        install_files = make_repo(tmp_path)
        fake_run.on("bash", str(install_files / "install-pwr-service.sh"), returncode=1, stderr="gpio busy")
        result = install_services(install_files)
        assert not result.success
        assert result.changes == ["install-fan-service.sh"]
        assert fake_run.find("bash")["cwd"] == str(install_files)


class TestXsoft:
    def test_install(self, paths, tmp_path):
        install_files = make_repo(tmp_path / "repo")
        install_xsoft(install_files, paths)
        create_poweroff_script(paths)

        assert (paths.local_bin / "xSoft").resolve() == (paths.local_bin / "xSoft.sh").resolve()
        assert os.access(paths.local_bin / "x735off", os.X_OK)
        assert "xSoft 0 20" in (paths.local_bin / "x735off").read_text()
        for name in UTILITY_SCRIPTS:
            assert (paths.local_bin / "x735" / name).is_file()

    def test_reinstall_replaces_link(self, paths, tmp_path):
        install_files = make_repo(tmp_path / "repo")
        install_xsoft(install_files, paths)
        install_xsoft(install_files, paths)
        assert (paths.local_bin / "xSoft").is_symlink()


class TestInstallX735:
    def test_requires_pi(self, fake_run, paths, tmp_path):
        with pytest.raises(InstallError):
            install_x735(tmp_path, paths, interactive=False)

    def test_full(self, fake_run, paths, tmp_path):
        paths.device_tree_model.parent.mkdir(parents=True)
        paths.device_tree_model.write_text("Raspberry Pi 4 Model B Rev 1.4")
        paths.boot_config.parent.mkdir(parents=True)
        paths.boot_config.write_text("[all]\n")
        make_repo(tmp_path / "repo")
        fake_run.on("systemctl", "list-unit-files", stdout="x735-fan.service enabled enabled\n")

        result = install_x735(tmp_path / "repo", paths, interactive=False)
        assert result.success
        assert result.message == "X735 installed (5/5 checks passed)"
        assert ["apt", "install", "-y", "gpiod", "python3-rpi.gpio"] in fake_run.calls
        assert all(check for _, check in verify_installation(paths))
