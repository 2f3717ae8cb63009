"""
Full installation.

Clones the configuration repository, runs the initial setup once, then the
selected components (theme, X735, GPS) in order. A failing component is
counted and the rest still run.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .core.cli_utils import (
    countdown_message,
    get_yes_no,
    print_error,
    print_header,
    print_info,
    print_section,
    print_success,
    print_summary,
    print_warning,
)
from .core.config import PiConfig
from .core.paths import SystemPaths
from .core.pi_utils import get_invoking_user
from .core.system import (
    InstallError,
    StepResult,
    clone_or_update_repo,
    command_exists,
    create_directory,
    install_packages,
    reboot,
)
from .setup.gps_install import GpsInstaller, GpsInstallOptions
from .setup.init_setup import run_init
from .setup.theme import install_theme
from .setup.x735 import install_x735

logger = logging.getLogger(__name__)

REBOOT_DELAY = 10


@dataclass
class Component:
    key: str
    title: str
    run: Callable[["Installer"], StepResult]


@dataclass
class InstallSummary:
    installed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _run_theme(installer: "Installer") -> StepResult:
    return install_theme(
        installer.repo_dir, installer.paths, interactive=installer.interactive, user=installer.desktop_user
    )


def _run_x735(installer: "Installer") -> StepResult:
    return install_x735(installer.repo_dir, installer.paths, interactive=installer.interactive)


def _run_gps(installer: "Installer") -> StepResult:
    gps = GpsInstaller(installer.paths, GpsInstallOptions(interactive=installer.interactive, reboot=False))
    return gps.run()


COMPONENTS = [
    Component("install_theme", "Theme (wallpaper and startup video)", _run_theme),
    Component("install_x735", "X735 power management board", _run_x735),
    Component("install_gps", "GPSBerry GPS support", _run_gps),
]


class Installer:
    """Runs the complete Raspberry Pi configuration."""

    def __init__(
        self,
        config: PiConfig,
        paths: SystemPaths,
        log_file: Optional[Path] = None,
        desktop_user: Optional[str] = None,
    ):
        self.config = config
        self.paths = paths
        self.log_file = log_file
        self.desktop_user = desktop_user or get_invoking_user()
        self.summary = InstallSummary()

    @property
    def interactive(self) -> bool:
        return self.config.interactive_mode

    @property
    def repo_dir(self) -> Path:
        return Path(self.config.temp_dir)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def prepare_repository(self):
        """Ensure git, then clone or update the configuration repository."""
        if not command_exists("git"):
            print_info("Installing git...")
            result = install_packages(["git"])
            if not result.success:
                raise InstallError(result.message)

        ok, msg = create_directory(self.repo_dir)
        if not ok:
            raise InstallError(msg)

        result = clone_or_update_repo(self.config.repo_url, self.repo_dir, progress_callback=print_info)
        if not result.success:
            raise InstallError(result.message)
        print_success(result.message)

    def run_initial_setup(self) -> bool:
        """Run init once per temp directory. Returns False if cancelled."""
        if self.config.init_marker.exists():
            print_info("Initial setup already completed, skipping")
            return True
        return run_init(self.config, self.paths, interactive=self.interactive)

    def select_components(self) -> List[Component]:
        print_section("Component Selection")
        selected = []
        for component in COMPONENTS:
            wanted = getattr(self.config, component.key)
            if wanted and self.interactive:
                wanted = get_yes_no(f"Install {component.title}?", default=True)
            if wanted:
                selected.append(component)
            else:
                self.summary.skipped.append(component.title)

        rows = [(c.title, "install") for c in selected] + [(t, "skip") for t in self.summary.skipped]
        print_summary("Installation Plan", rows)
        return selected

    def run_components(self, components: List[Component]) -> Dict[str, StepResult]:
        results = {}
        for component in components:
            logger.info("Installing component: %s", component.title)
            try:
                result = component.run(self)
            except InstallError as e:
                logger.error("%s failed: %s", component.title, e)
                print_error(f"{component.title} failed: {e}")
                result = StepResult(success=False, message=str(e))

            results[component.key] = result
            if result.success:
                self.summary.installed.append(component.title)
                print_success(f"{component.title}: {result.message}")
            else:
                self.summary.failed.append(component.title)
                print_warning(f"{component.title}: {result.message}")
        return results

    def show_summary(self):
        rows = [("Installed", title) for title in self.summary.installed]
        rows += [("Failed", title) for title in self.summary.failed]
        rows += [("Skipped", title) for title in self.summary.skipped]
        if self.log_file:
            rows.append(("Log file", str(self.log_file)))
        print_summary(
            f"Installation Summary ({len(self.summary.installed)} installed, {len(self.summary.failed)} failed)", rows
        )

    def cleanup(self):
        if not self.config.cleanup_temp or not self.repo_dir.exists():
            return
        if not get_yes_no(f"Remove temporary files in {self.repo_dir}?", default=True, interactive=self.interactive):
            print_info(f"Keeping {self.repo_dir}")
            return
        shutil.rmtree(self.repo_dir)
        print_success(f"Removed {self.repo_dir}")

    def finish(self, countdown: Callable[[int], None] = countdown_message):
        if self.config.auto_reboot:
            print_info(f"Rebooting in {REBOOT_DELAY} seconds to apply changes")
            reboot(REBOOT_DELAY, countdown)
        else:
            print_warning("Reboot needed to apply all changes: sudo reboot")

    # -------------------------------------------------------------------------
    # Sequence
    # -------------------------------------------------------------------------

    def run(self) -> bool:
        """Run the full installation.

        Returns:
            True if every selected component installed

        Raises:
            InstallError: if the repository or initial setup fails
        """
        print_header("Raspberry Pi Configuration", f"Repository: {self.config.repo_url}")

        self.prepare_repository()
        if not self.run_initial_setup():
            print_info("Installation cancelled")
            return False

        components = self.select_components()
        if not components:
            print_info("No components selected")
        elif not get_yes_no("Start installation?", default=True, interactive=self.interactive):
            print_info("Installation cancelled")
            return False

        self.run_components(components)
        self.show_summary()
        self.cleanup()
        return not self.summary.failed
