"""
Unit tests for raspberry_config.setup.gps_uninstall

Tests cover state analysis, backup discovery, restoration and the
uninstall sequence options.
"""

import os
import sys
import time
from unittest.mock import patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests/", 1)[0])

from raspberry_config.setup import gps_uninstall
from raspberry_config.setup.gps_install import POST_REBOOT_MARKER
from raspberry_config.setup.gps_uninstall import (
    ConfigBackups,
    GpsInstallState,
    GpsUninstaller,
    GpsUninstallOptions,
)

INSTALLED_CRONTAB = f"0 3 * * * /usr/bin/backup\n@reboot /usr/bin/python3 -m raspberry_config gps post-reboot  # {POST_REBOOT_MARKER}\n"


@pytest.fixture
def gps_paths(paths):
    """A Pi after a GPSBerry install, with the original files backed up."""
    paths.boot_config.parent.mkdir(parents=True)
    paths.boot_config.write_text("[all]\nenable_uart=1\n")
    paths.boot_cmdline.write_text("console=tty1\n")
    (paths.boot_config.parent / "config.txt.backup.20240101_000000").write_text("[all]\n")
    (paths.boot_cmdline.parent / "cmdline.txt.backup.20240101_000000").write_text("console=serial0,115200 console=tty1\n")
    paths.backup_dir.mkdir(parents=True)
    (paths.backup_dir / "crontab.backup.20240101_000000").write_text("0 3 * * * /usr/bin/backup\n")
    return paths


@pytest.fixture
def installed(fake_run):
    fake_run.on("dpkg-query", "-W", "-f=${Version}", "gpsd", stdout="3.22-4")
    fake_run.on("dpkg-query", "-W", "-f=${Status}", "gpsd", stdout="install ok installed")
    fake_run.on("systemctl", "is-active", "gpsd", stdout="active")
    fake_run.on("systemctl", "is-enabled", "gpsd", stdout="enabled")
    fake_run.on("crontab", "-l", stdout=INSTALLED_CRONTAB)
    return fake_run


def uninstaller(paths, **kwargs):
    kwargs.setdefault("interactive", False)
    return GpsUninstaller(paths, GpsUninstallOptions(**kwargs))


class TestDataClasses:
    def test_empty_state(self):
        assert not GpsInstallState().installed

    def test_cron_entry_counts_as_installed(self):
        assert GpsInstallState(cron_entries=["@reboot gps"]).installed

    def test_backup_count(self):
        assert ConfigBackups().count == 0


class TestAnalysis:
    def test_state(self, installed, gps_paths):
        state = uninstaller(gps_paths).analyze_current_state()
        assert state.packages == {"gpsd": "3.22-4"}
        assert state.uart_enabled
        assert not state.console_on_serial
        assert state.gpsd_active and state.gpsd_enabled
        assert len(state.cron_entries) == 1

    def test_backups(self, fake_run, gps_paths):
        old = gps_paths.tmp_dir / "crontab.backup.legacy"
        old.parent.mkdir(parents=True)
        old.write_text("")
        os.utime(old, (1000, 1000))
        backups = uninstaller(gps_paths).find_config_backups()
        assert backups.count == 4
        assert backups.crontab[-1] == old


class TestListChanges:
    def test_no_modifications(self, installed, gps_paths):
        result = uninstaller(gps_paths, list_changes=True).run()
        assert result.success
        assert not installed.ran("systemctl", "stop")
        assert not installed.ran("apt-get")
        assert gps_paths.boot_config.read_text() == "[all]\nenable_uart=1\n"


class TestUninstall:
    def test_full(self, installed, gps_paths):
        result = uninstaller(gps_paths).run()
        assert result.success
        assert result.requires_reboot

        assert installed.ran("systemctl", "stop", "gpsd")
        assert installed.ran("systemctl", "disable", "gpsd")
        assert installed.ran("systemctl", "stop", "gpsd.socket")
        assert ["apt-get", "remove", "--purge", "-y", "gpsd"] in installed.calls
        assert installed.ran("apt-get", "autoremove", "-y")
        # optional tools stay unless forced
        assert not installed.ran("apt-get", "remove", "-y")

        assert gps_paths.boot_config.read_text() == "[all]\n"
        assert gps_paths.boot_cmdline.read_text().startswith("console=serial0")
        assert "Restored crontab" in result.changes

    def test_dry_run(self, installed, gps_paths):
        result = uninstaller(gps_paths, dry_run=True).run()
        assert result.success
        assert not installed.ran("systemctl", "stop")
        assert not installed.ran("apt-get")
        assert not installed.ran("crontab", "-")
        assert gps_paths.boot_config.read_text() == "[all]\nenable_uart=1\n"

    def test_keep_packages_and_configs(self, installed, gps_paths):
        uninstaller(gps_paths, keep_packages=True, keep_configs=True).run()
        assert not installed.ran("apt-get", "remove")
        assert installed.ran("systemctl", "stop", "gpsd")
        assert gps_paths.boot_config.read_text() == "[all]\nenable_uart=1\n"

    def test_restore_only(self, installed, gps_paths):
        result = uninstaller(gps_paths, restore_only=True).run()
        assert result.success
        assert not installed.ran("systemctl", "stop")
        assert not installed.ran("apt-get")
        assert gps_paths.boot_config.read_text() == "[all]\n"

    def test_force_removes_optional(self, installed, gps_paths):
        installed.on("dpkg-query", "-W", "-f=${Status}", "minicom", stdout="install ok installed")
        uninstaller(gps_paths, force=True).run()
        assert ["apt-get", "remove", "-y", "minicom"] in installed.calls

    def test_without_backups_disables_uart(self, installed, paths):
        paths.boot_config.parent.mkdir(parents=True)
        paths.boot_config.write_text("[all]\nenable_uart=1\n")
        result = uninstaller(paths).run()
        assert result.success
        assert "#enable_uart=1" in paths.boot_config.read_text()
        assert "Disabled UART" in result.changes
        assert installed.find("crontab", "-")["input"] == "0 3 * * * /usr/bin/backup\n"

    def test_nothing_installed(self, fake_run, paths):
        result = uninstaller(paths).run()
        assert result.message == "Uninstall cancelled"
        assert not fake_run.ran("apt-get")

    def test_backup_current(self, installed, gps_paths):
        uninstaller(gps_paths, backup_current=True, keep_packages=True, keep_configs=True).run()
        saved = list(gps_paths.backup_dir.glob("gpsberry-uninstall-backup-*"))
        assert len(saved) == 1
        assert (saved[0] / "config.txt").read_text() == "[all]\nenable_uart=1\n"
        assert "gpsd 3.22-4" in (saved[0] / "gps-packages.list").read_text()
        assert "GPSD active: True" in (saved[0] / "service-states.txt").read_text()


class TestCleanup:
    def test_leftovers_removed(self, fake_run, paths):
        paths.tmp_dir.mkdir(parents=True)
        leftover = paths.tmp_dir / "post-reboot-gps.sh"
        leftover.write_text("")
        uninstaller(paths).cleanup_files()
        assert not leftover.exists()

    def test_old_backups(self, fake_run, gps_paths):
        stale = gps_paths.boot_config.parent / "config.txt.backup.20200101_000000"
        stale.write_text("")
        old = time.time() - 40 * 86400
        os.utime(stale, (old, old))
        assert uninstaller(gps_paths).remove_old_backups() == 1
        assert not stale.exists()
        assert (gps_paths.boot_config.parent / "config.txt.backup.20240101_000000").exists()


class TestMaybeReboot:
    def test_non_interactive_recommends(self, fake_run, paths):
        uninstaller(paths).maybe_reboot()
        assert fake_run.calls == []


class TestRestoreAfterCleanup:
    def test_old_backups_still_restored(self, installed, gps_paths):
        old = time.time() - 40 * 86400
        for backup in (
            gps_paths.boot_config.parent / "config.txt.backup.20240101_000000",
            gps_paths.boot_cmdline.parent / "cmdline.txt.backup.20240101_000000",
            gps_paths.backup_dir / "crontab.backup.20240101_000000",
        ):
            os.utime(backup, (old, old))

        with patch.object(gps_uninstall, "get_yes_no", return_value=True):
            result = uninstaller(gps_paths, interactive=True).run()

        assert result.success
        assert gps_paths.boot_config.read_text() == "[all]\n"
        assert gps_paths.boot_cmdline.read_text().startswith("console=serial0")
        assert "Restored crontab" in result.changes
        assert not list(gps_paths.boot_config.parent.glob("config.txt.backup.*"))

    def test_backup_removed_before_restore(self, installed, gps_paths):
        inst = uninstaller(gps_paths)
        inst.find_config_backups()
        (gps_paths.boot_config.parent / "config.txt.backup.20240101_000000").unlink()
        inst.restore_configurations()
        assert "#enable_uart=1" in gps_paths.boot_config.read_text()
        assert "Disabled UART" in inst.actions


class TestHookRemoval:
    def test_no_restore_removes_legacy_hooks(self, fake_run, paths):
        fake_run.on("crontab", "-l", stdout="0 3 * * * /usr/bin/backup\n@reboot /tmp/post-reboot-gps.sh\n")
        inst = uninstaller(paths, restore_backups=False)
        inst.restore_configurations()
        assert fake_run.find("crontab", "-")["input"] == "0 3 * * * /usr/bin/backup\n"
        assert "Removed GPS cron entries" in inst.actions
