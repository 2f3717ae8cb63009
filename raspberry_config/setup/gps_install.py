"""
GPSBerry installer.

Installs gpsd and tools, switches the Pi UART from login console to
hardware serial, and schedules a one-shot post-reboot hook that finishes
gpsd configuration once the serial port is live.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Callable, List

from ..core.cli_utils import (
    countdown_message,
    get_yes_no,
    print_dry_run,
    print_error,
    print_header,
    print_info,
    print_list,
    print_step,
    print_success,
    print_summary,
    print_warning,
)
from ..core.paths import SystemPaths
from ..core.pi_utils import check_serial_enabled, configure_serial_hardware, get_pi_model, is_raspberry_pi
from ..core.reboot_hooks import add_reboot_hook, backup_crontab, remove_reboot_hooks
from ..core.system import InstallError, StepResult, backup_file, install_packages, reboot, system_update
from .gps_utils import (
    GPS_DEFAULT_DEVICE,
    GPSD_DEFAULT_OPTIONS,
    configure_gpsd_daemon,
    read_nmea,
    summarize_sentences,
)

logger = logging.getLogger(__name__)

GPS_INSTALL_PACKAGES = ["gpsd", "gpsd-clients", "python3-gps", "minicom"]
POST_REBOOT_MARKER = "raspberry-config-gps-post-reboot"
TOTAL_STEPS = 7


def post_reboot_command() -> str:
    return f"{sys.executable} -m raspberry_config gps post-reboot"


@dataclass
class GpsInstallOptions:
    interactive: bool = True
    dry_run: bool = False
    skip_update: bool = False
    reboot: bool = True


class GpsInstaller:
    """Runs the GPSBerry install sequence."""

    def __init__(self, paths: SystemPaths, options: GpsInstallOptions):
        self.paths = paths
        self.options = options
        self.changes: List[str] = []
        self.warnings: List[str] = []

    def _ask(self, prompt: str, default: bool = False) -> bool:
        return get_yes_no(prompt, default=default, interactive=self.options.interactive)

    def _would(self, description: str) -> bool:
        """Print a dry-run notice. Returns True if the action must be skipped."""
        if self.options.dry_run:
            print_dry_run(description)
            logger.info("DRY RUN: would %s", description)
            return True
        return False

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def check_hardware(self):
        if is_raspberry_pi(self.paths.device_tree_model):
            print_success(f"Detected {get_pi_model(self.paths.device_tree_model)}")
            return
        print_warning("This does not appear to be a Raspberry Pi")
        if not self._ask("Continue anyway?", default=False):
            raise InstallError("Installation requires a Raspberry Pi")

    def show_serial_status(self):
        uart, console = check_serial_enabled(self.paths)
        (print_success if uart else print_info)(f"UART {'enabled' if uart else 'disabled'} in config.txt")
        (print_warning if console else print_success)(
            f"Serial console {'enabled (will be disabled)' if console else 'disabled'}"
        )

    def update_system(self):
        if self.options.skip_update:
            print_info("Skipping system update")
            return
        if self._would("run apt update and apt upgrade"):
            return
        result = system_update(progress_callback=print_info)
        if result.success:
            print_success(result.message)
            return
        print_error(result.message)
        if not self._ask("System update failed. Continue anyway?", default=False):
            raise InstallError(result.message)
        self.warnings.append(result.message)

    def install_gps_packages(self):
        if self._would(f"install {' '.join(GPS_INSTALL_PACKAGES)}"):
            return
        result = install_packages(GPS_INSTALL_PACKAGES, update=False)
        if not result.success:
            raise InstallError(result.message)
        self.changes += result.changes
        print_success(result.message)

    def configure_serial(self):
        if self._would("back up config.txt and cmdline.txt and enable the hardware UART"):
            return
        for path in (self.paths.boot_config, self.paths.boot_cmdline):
            backup = backup_file(path)
            if backup:
                print_success(f"Backed up {path} to {backup.name}")

        ok, msg = configure_serial_hardware()
        if not ok:
            raise InstallError(msg)
        print_success(msg)

        uart, console = check_serial_enabled(self.paths)
        if not uart or console:
            print_warning("Serial configuration could not be verified until reboot")
            self.warnings.append("Serial configuration unverified")
        self.changes.append("Serial port configured")

    def schedule_post_reboot(self):
        command = post_reboot_command()
        if self._would(f"schedule '{command}' to run once after reboot"):
            return
        backup = backup_crontab(self.paths.backup_dir)
        if backup:
            print_success(f"Crontab backed up to {backup}")
        ok, msg = add_reboot_hook(command, POST_REBOOT_MARKER)
        if not ok:
            print_error(msg)
            if not self._ask("Continue without post-reboot configuration?", default=False):
                raise InstallError(msg)
            self.warnings.append(msg)
            return
        self.changes.append("Post-reboot GPS configuration scheduled")
        print_success(msg)

    def show_summary(self):
        rows = [("Packages", " ".join(GPS_INSTALL_PACKAGES)), ("Serial device", GPS_DEFAULT_DEVICE)]
        rows += [("Change", change) for change in self.changes]
        rows += [("Warning", warning) for warning in self.warnings]
        print_summary("GPSBerry Installation Summary", rows)
        print_list(
            [
                "Reboot to activate the serial port",
                "gpsd is configured automatically after reboot",
                "Run 'pi-config gps test' to check the GPS data stream",
            ],
            numbered=True,
        )

    # -------------------------------------------------------------------------
    # Sequence
    # -------------------------------------------------------------------------

    def run(self) -> StepResult:
        """Run all install steps.

        Raises:
            InstallError: on any fatal step
        """
        title = "GPSBerry Installation" + (" (dry run)" if self.options.dry_run else "")
        print_header(title, "gpsd, serial UART and post-reboot configuration")

        steps: List[tuple] = [
            ("Checking hardware", self.check_hardware),
            ("Checking serial port", self.show_serial_status),
            ("Updating system", self.update_system),
            ("Installing GPS packages", self.install_gps_packages),
            ("Configuring serial port", self.configure_serial),
            ("Scheduling post-reboot configuration", self.schedule_post_reboot),
            ("Summary", self.show_summary),
        ]

        for number, (label, step) in enumerate(steps, 1):
            print_step(number, TOTAL_STEPS, label)
            if number == 3 and not self._ask("Proceed with GPS installation?", default=True):
                return StepResult(success=False, message="Installation cancelled")
            step()

        return StepResult(
            success=True,
            message="GPSBerry installed",
            changes=list(self.changes),
            errors=list(self.warnings),
            requires_reboot=not self.options.dry_run,
        )

    def maybe_reboot(self, countdown: Callable[[int], None] = countdown_message):
        if self.options.dry_run or not self.options.reboot:
            print_info("Reboot required to activate GPS")
            return
        if self._ask("Reboot now?", default=True):
            reboot(5, countdown)
        else:
            print_info("Please reboot manually to activate GPS")


def post_reboot(paths: SystemPaths, device: str = GPS_DEFAULT_DEVICE, options: str = GPSD_DEFAULT_OPTIONS) -> StepResult:
    """Finish GPS setup after the first reboot and remove the hook."""
    logger.info("Running GPS post-reboot configuration")
    result = configure_gpsd_daemon(paths, device, options)
    for error in result.errors:
        logger.error(error)

    removed = remove_reboot_hooks(POST_REBOOT_MARKER)
    if removed:
        result.changes.append("Post-reboot hook removed")

    received, lines = read_nmea(device, timeout=10)
    if received:
        summary = ", ".join(f"{k}={v}" for k, v in sorted(summarize_sentences(lines).items()))
        logger.info("GPS data received: %s", summary or "unrecognised data")
        result.changes.append("GPS data verified")
    else:
        logger.warning("No GPS data received from %s", device)
        result.errors.append(f"No GPS data from {device}")

    (print_success if result.success else print_warning)(result.message)
    return result
