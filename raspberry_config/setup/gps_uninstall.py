"""
GPSBerry uninstaller.

Reverses a GPSBerry installation: stops gpsd, removes packages, restores
the boot configuration and crontab from the backups taken at install time,
and cleans up leftovers.
"""

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.cli_utils import (
    console,
    countdown_message,
    get_yes_no,
    print_dry_run,
    print_error,
    print_header,
    print_info,
    print_list,
    print_section,
    print_success,
    print_summary,
    print_warning,
)
from ..core.paths import SystemPaths
from ..core.pi_utils import check_serial_enabled
from ..core.reboot_hooks import read_crontab, remove_reboot_hooks, restore_crontab
from ..core.system import (
    BACKUP_TIMESTAMP_FORMAT,
    StepResult,
    autoremove_packages,
    check_service_status,
    find_backups,
    get_package_version,
    manage_service,
    reboot,
    remove_packages,
    run_command,
)
from .gps_install import POST_REBOOT_MARKER
from .gps_utils import GPS_CORE_PACKAGES

logger = logging.getLogger(__name__)

OPTIONAL_PACKAGES = ["minicom", "screen"]
# Hook names used by earlier shell-based installs
LEGACY_HOOK_MARKER = "post-reboot-gps"
BACKUP_MAX_AGE_DAYS = 30


@dataclass
class GpsUninstallOptions:
    interactive: bool = True
    dry_run: bool = False
    keep_packages: bool = False
    keep_configs: bool = False
    restore_backups: bool = True
    force: bool = False
    list_changes: bool = False
    backup_current: bool = False
    restore_only: bool = False
    reboot: bool = True


@dataclass
class GpsInstallState:
    """What a GPSBerry install left on the system."""

    packages: Dict[str, str] = field(default_factory=dict)
    uart_enabled: bool = False
    console_on_serial: bool = False
    gpsd_active: bool = False
    gpsd_enabled: bool = False
    cron_entries: List[str] = field(default_factory=list)

    @property
    def installed(self) -> bool:
        return bool(self.packages or self.gpsd_active or self.cron_entries or self.uart_enabled)


@dataclass
class ConfigBackups:
    boot_config: List[Path] = field(default_factory=list)
    boot_cmdline: List[Path] = field(default_factory=list)
    crontab: List[Path] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.boot_config) + len(self.boot_cmdline) + len(self.crontab)


class GpsUninstaller:
    """Runs the GPSBerry uninstall sequence."""

    def __init__(self, paths: SystemPaths, options: GpsUninstallOptions):
        self.paths = paths
        self.options = options
        self.actions: List[str] = []
        self.failures: List[str] = []

    def _ask(self, prompt: str, default: bool = False) -> bool:
        return get_yes_no(prompt, default=default, interactive=self.options.interactive)

    def _would(self, description: str) -> bool:
        if self.options.dry_run:
            print_dry_run(description)
            logger.info("DRY RUN: would %s", description)
            return True
        return False

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def analyze_current_state(self) -> GpsInstallState:
        state = GpsInstallState()
        for package in GPS_CORE_PACKAGES + OPTIONAL_PACKAGES:
            version = get_package_version(package)
            if version:
                state.packages[package] = version
        state.uart_enabled, state.console_on_serial = check_serial_enabled(self.paths)
        state.gpsd_active, state.gpsd_enabled = check_service_status("gpsd")
        state.cron_entries = [line for line in read_crontab() if "gps" in line.lower()]

        print_section("Installed GPS Packages")
        if state.packages:
            print_list([f"{name} {version}" for name, version in state.packages.items()])
        else:
            print_info("No GPS packages found")

        print_section("Serial Configuration")
        (print_success if state.uart_enabled else print_info)(
            f"UART {'enabled' if state.uart_enabled else 'not explicitly enabled'}"
        )
        (print_warning if state.console_on_serial else print_success)(
            f"Serial console {'enabled' if state.console_on_serial else 'disabled'}"
        )

        print_section("GPS Services")
        print_info(f"gpsd: {'active' if state.gpsd_active else 'inactive'}, "
                   f"{'enabled' if state.gpsd_enabled else 'disabled'}")

        print_section("Scheduled Tasks")
        if state.cron_entries:
            for line in state.cron_entries:
                console.print(f"  {line}", markup=False)
        else:
            print_info("No GPS-related cron entries")
        return state

    def _collect_backups(self) -> ConfigBackups:
        return ConfigBackups(
            boot_config=find_backups(self.paths.boot_config),
            boot_cmdline=find_backups(self.paths.boot_cmdline),
            crontab=self._crontab_backups(),
        )

    def find_config_backups(self) -> ConfigBackups:
        backups = self._collect_backups()
        print_section("Configuration Backups")
        if not backups.count:
            print_warning("No configuration backups found")
        for label, paths in (
            ("config.txt", backups.boot_config),
            ("cmdline.txt", backups.boot_cmdline),
            ("crontab", backups.crontab),
        ):
            for path in paths:
                stamp = datetime.fromtimestamp(path.stat().st_mtime).strftime("%Y-%m-%d %H:%M:%S")
                print_info(f"{label}: {path} ({stamp})")
        return backups

    def _crontab_backups(self) -> List[Path]:
        found = []
        for directory in (self.paths.backup_dir, self.paths.tmp_dir):
            if directory.is_dir():
                found += [p for p in directory.glob("crontab.backup.*") if p.is_file()]
        return sorted(found, key=lambda p: p.stat().st_mtime, reverse=True)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def backup_current_state(self) -> Optional[Path]:
        if self._would("back up the current configuration"):
            return None
        stamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        target = self.paths.backup_dir / f"gpsberry-uninstall-backup-{stamp}"
        target.mkdir(parents=True, exist_ok=True)

        for path in (self.paths.boot_config, self.paths.boot_cmdline):
            if path.is_file():
                shutil.copy2(path, target / path.name)
        (target / "crontab.backup").write_text("\n".join(read_crontab()) + "\n")

        packages = [f"{name} {get_package_version(name) or ''}".strip() for name in GPS_CORE_PACKAGES + OPTIONAL_PACKAGES]
        (target / "gps-packages.list").write_text("\n".join(packages) + "\n")

        active, enabled = check_service_status("gpsd")
        (target / "service-states.txt").write_text(f"GPSD active: {active}\nGPSD enabled: {enabled}\n")

        print_success(f"Current state backed up to {target}")
        self.actions.append(f"Backed up current state to {target}")
        return target

    def stop_gps_services(self):
        if self._would("stop and disable gpsd"):
            return
        active, enabled = check_service_status("gpsd")
        for needed, action in ((active, "stop"), (enabled, "disable")):
            if not needed:
                continue
            ok, msg = manage_service("gpsd", action)
            (print_success if ok else print_warning)(msg)
            if ok:
                self.actions.append(f"gpsd {action}")
        # socket activation would start gpsd again
        manage_service("gpsd.socket", "stop")
        manage_service("gpsd.socket", "disable")

        ret, _, _ = run_command(["pgrep", "gpsd"])
        if ret == 0:
            run_command(["pkill", "gpsd"])
            print_success("Terminated remaining gpsd processes")

    def remove_gps_packages(self):
        if self.options.keep_packages:
            print_info("Keeping GPS packages (--keep-packages)")
            return
        if self._would(f"purge {' '.join(GPS_CORE_PACKAGES)}"):
            return

        result = remove_packages(GPS_CORE_PACKAGES, purge=True)
        (print_success if result.success else print_error)(result.message)
        if result.success:
            self.actions += result.changes
        else:
            self.failures.append(result.message)

        if self.options.force or self._ask(f"Also remove {' '.join(OPTIONAL_PACKAGES)}?", default=False):
            optional = remove_packages(OPTIONAL_PACKAGES, purge=False)
            (print_success if optional.success else print_warning)(optional.message)
            self.actions += optional.changes

        ok, msg = autoremove_packages()
        (print_success if ok else print_warning)(msg)

    def _disable_uart(self) -> bool:
        config = self.paths.boot_config
        if not config.is_file():
            return False
        lines = config.read_text().splitlines()
        if not any(line.strip() == "enable_uart=1" for line in lines):
            return False
        new_lines = [
            "#enable_uart=1  # disabled by GPSBerry uninstall" if line.strip() == "enable_uart=1" else line
            for line in lines
        ]
        config.write_text("\n".join(new_lines) + "\n")
        return True

    def _remove_gps_hooks(self):
        removed = remove_reboot_hooks(POST_REBOOT_MARKER) + remove_reboot_hooks(LEGACY_HOOK_MARKER)
        if removed:
            print_success(f"Removed {removed} GPS cron entr{'y' if removed == 1 else 'ies'}")
            self.actions.append("Removed GPS cron entries")

    def restore_configurations(self):
        if not self.options.restore_backups:
            print_info("Skipping backup restoration (--no-restore-backups)")
            self._remove_gps_hooks()
            return
        if self._would("restore config.txt, cmdline.txt and crontab from the newest backups"):
            return

        backups = self._collect_backups()

        for target, found in ((self.paths.boot_config, backups.boot_config), (self.paths.boot_cmdline, backups.boot_cmdline)):
            if found:
                shutil.copy2(found[0], target)
                print_success(f"Restored {target} from {found[0].name}")
                self.actions.append(f"Restored {target.name}")
            elif target == self.paths.boot_config:
                print_warning("No config.txt backup found")
                if self._ask("Disable UART in config.txt?", default=True) and self._disable_uart():
                    print_success("UART disabled in config.txt")
                    self.actions.append("Disabled UART")
            else:
                print_warning("No cmdline.txt backup found")
                print_info("Run 'sudo raspi-config nonint do_serial 1' to restore the serial console if needed")

        if backups.crontab:
            ok, msg = restore_crontab(backups.crontab[0])
            (print_success if ok else print_error)(msg)
            if ok:
                self.actions.append("Restored crontab")
            else:
                self.failures.append(msg)

        self._remove_gps_hooks()

    def cleanup_files(self):
        tmp = self.paths.tmp_dir
        leftovers = [tmp / "post-reboot-gps.sh", tmp / "gpsberry-install.log", tmp / "gps-test.log"]
        if self._would(f"remove {', '.join(str(p) for p in leftovers)}"):
            return
        removed = 0
        for path in leftovers:
            if path.is_file():
                path.unlink()
                removed += 1
        if removed:
            print_success(f"Removed {removed} temporary file(s)")

        if self._ask(f"Remove configuration backups older than {BACKUP_MAX_AGE_DAYS} days?", default=False):
            print_info(f"Removed {self.remove_old_backups()} old backup(s)")

    def remove_old_backups(self, max_age_days: int = BACKUP_MAX_AGE_DAYS) -> int:
        cutoff = time.time() - max_age_days * 86400
        candidates = (
            find_backups(self.paths.boot_config)
            + find_backups(self.paths.boot_cmdline)
            + self._crontab_backups()
        )
        removed = 0
        for path in candidates:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        return removed

    def show_summary(self):
        rows = [("Done", action) for action in self.actions] or [("Done", "No changes made")]
        rows += [("Failed", failure) for failure in self.failures]
        print_summary("GPSBerry Uninstall Summary", rows)

    # -------------------------------------------------------------------------
    # Sequence
    # -------------------------------------------------------------------------

    def run(self) -> StepResult:
        title = "GPSBerry Uninstall" + (" (dry run)" if self.options.dry_run else "")
        print_header(title)

        state = self.analyze_current_state()
        self.find_config_backups()
        if self.options.list_changes:
            return StepResult(success=True, message="Listed current GPS state")

        if not state.installed and not self.options.force:
            print_warning("No GPSBerry installation detected")
            if not self._ask("Continue with uninstall anyway?", default=False):
                return StepResult(success=True, message="Uninstall cancelled")

        if self.options.interactive and not self.options.force:
            plan = ["Stop and disable GPS services", "Clean up temporary files and scheduled tasks"]
            if not self.options.keep_packages and not self.options.restore_only:
                plan.insert(0, "Remove GPS packages and dependencies")
            if not self.options.keep_configs:
                plan.append("Restore serial/UART configuration")
            print_list(plan)
            if not self._ask("Proceed with uninstall?", default=False):
                return StepResult(success=True, message="Uninstall cancelled")

        if self.options.backup_current:
            self.backup_current_state()

        if not self.options.restore_only:
            self.stop_gps_services()
            self.remove_gps_packages()

        if not self.options.keep_configs:
            self.restore_configurations()

        if not self.options.restore_only:
            self.cleanup_files()

        self.show_summary()
        return StepResult(
            success=not self.failures,
            message="GPSBerry uninstalled" if not self.failures else "GPSBerry uninstall finished with errors",
            changes=list(self.actions),
            errors=list(self.failures),
            requires_reboot=bool(self.actions),
        )

    def maybe_reboot(self, countdown: Callable[[int], None] = countdown_message):
        if self.options.dry_run or not self.options.interactive or not self.options.reboot:
            print_warning("A reboot is recommended to complete the uninstall")
            return
        if self._ask("Reboot now to complete uninstall?", default=False):
            reboot(5, countdown)
        else:
            print_warning("Manual reboot recommended to complete uninstall")
