"""
GeekWorm X735 power management board.

Installs the PWM fan overlay, the vendor fan/power/safe-shutdown services
from the x735 submodule, the xSoft utility and an ``x735off`` command.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from ..core.cli_utils import (
    get_yes_no,
    print_checks,
    print_header,
    print_list,
    print_step,
    print_success,
    print_warning,
)
from ..core.paths import SystemPaths
from ..core.pi_utils import is_raspberry_pi
from ..core.system import (
    InstallError,
    StepResult,
    backup_file,
    install_packages,
    run_command,
    service_unit_exists,
    write_file,
)

logger = logging.getLogger(__name__)

PWM_OVERLAY = "dtoverlay=pwm-2chan,pin2=13,func2=4"
X735_PACKAGES = ["gpiod", "python3-rpi.gpio"]
SERVICE_SCRIPTS = ["install-fan-service.sh", "install-pwr-service.sh", "install-sss.sh"]
REQUIRED_SCRIPTS = ["install-fan-service.sh", "install-pwr-service.sh", "xSoft.sh", "install-sss.sh"]
UTILITY_SCRIPTS = ["pwm_fan_control.py", "read_fan_speed.py", "uninstall.sh"]

X735OFF_SCRIPT = """#!/bin/bash
# X735 Power Board Safe Shutdown Script
# Safely powers down the X735 board and Raspberry Pi
xSoft 0 20
"""

TOTAL_STEPS = 7


# =============================================================================
# config.txt overlay
# =============================================================================


def ensure_overlay(config_text: str, overlay: str = PWM_OVERLAY) -> Tuple[str, bool]:
    """Add ``overlay`` under the first ``[all]`` section.

    Returns:
        Tuple of (new_text, changed)
    """
    lines = config_text.splitlines()
    if any(line.strip() == overlay for line in lines):
        return config_text, False

    try:
        index = next(i for i, line in enumerate(lines) if line.strip() == "[all]")
    except StopIteration:
        lines.append("[all]")
        index = len(lines) - 1

    lines.insert(index + 1, overlay)
    return "\n".join(lines) + "\n", True


def add_pwm_overlay(paths: SystemPaths, interactive: bool = True) -> StepResult:
    config_path = paths.boot_config
    if not config_path.exists():
        message = f"{config_path} not found"
        if not get_yes_no(f"{message}. Continue without the PWM overlay?", default=False, interactive=interactive):
            raise InstallError(message)
        return StepResult(success=True, message=f"{message}, overlay skipped")

    backup_file(config_path)
    text, changed = ensure_overlay(config_path.read_text())
    if not changed:
        return StepResult(success=True, message="PWM overlay already present")
    config_path.write_text(text)
    return StepResult(success=True, message="PWM overlay added", changes=[PWM_OVERLAY], requires_reboot=True)


# =============================================================================
# Vendor scripts
# =============================================================================


def _has_required_scripts(install_files: Path) -> bool:
    return install_files.is_dir() and all((install_files / name).is_file() for name in REQUIRED_SCRIPTS)


def locate_install_files(repo_dir: Path) -> Path:
    """Find the x735 ``install_files`` directory, initialising submodules if needed.

    Raises:
        InstallError: if the vendor scripts cannot be found
    """
    repo_dir = Path(repo_dir)
    install_files = repo_dir / "x735" / "install_files"
    if _has_required_scripts(install_files):
        return install_files

    if (repo_dir / ".git").exists():
        for extra in ([], ["--force"]):
            logger.info("Updating git submodules in %s %s", repo_dir, " ".join(extra))
            ret, _, stderr = run_command(
                ["git", "-C", str(repo_dir), "submodule", "update", "--init", "--recursive"] + extra
            )
            if ret != 0:
                logger.warning("Submodule update failed: %s", stderr[:80])
                continue
            if _has_required_scripts(install_files):
                return install_files

    raise InstallError(
        f"X735 install files not found in {install_files}. Make sure the x735 submodule is initialised."
    )


def install_services(install_files: Path) -> StepResult:
    result = StepResult(success=True, message="X735 services installed")
    for script in SERVICE_SCRIPTS:
        ret, _, stderr = run_command(["bash", str(install_files / script)], cwd=install_files)
        if ret != 0:
            return StepResult(success=False, message=f"{script} failed: {stderr[:80]}", changes=result.changes)
        result.changes.append(script)
    return result


def _make_executable(path: Path):
    os.chmod(path, path.stat().st_mode | 0o111)


def install_xsoft(install_files: Path, paths: SystemPaths) -> StepResult:
    """Install xSoft.sh with an ``xSoft`` symlink and the utility scripts."""
    local_bin = paths.local_bin
    local_bin.mkdir(parents=True, exist_ok=True)

    target = local_bin / "xSoft.sh"
    shutil.copy2(install_files / "xSoft.sh", target)
    _make_executable(target)

    link = local_bin / "xSoft"
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(target)

    result = StepResult(success=True, message="xSoft installed", changes=[str(target), str(link)])

    bin_dir = install_files.parent / "bin"
    if bin_dir.is_dir():
        utility_dir = local_bin / "x735"
        utility_dir.mkdir(parents=True, exist_ok=True)
        for source in bin_dir.iterdir():
            if not source.is_file():
                continue
            dest = utility_dir / source.name
            shutil.copy2(source, dest)
            if dest.suffix in (".py", ".sh"):
                _make_executable(dest)
        result.changes.append(str(utility_dir))
    else:
        print_warning(f"No utility scripts found in {bin_dir}")

    return result


def create_poweroff_script(paths: SystemPaths) -> Path:
    script = paths.local_bin / "x735off"
    write_file(script, X735OFF_SCRIPT, mode=0o755)
    return script


def verify_installation(paths: SystemPaths) -> List[Tuple[str, bool]]:
    """Pass/fail checks for a completed installation."""
    config_text = paths.boot_config.read_text() if paths.boot_config.exists() else ""
    local_bin = paths.local_bin
    xsoft = local_bin / "xSoft.sh"
    x735off = local_bin / "x735off"
    utility_dir = local_bin / "x735"

    return [
        ("PWM overlay in config.txt", PWM_OVERLAY in config_text),
        ("xSoft utility installed", os.access(xsoft, os.X_OK) and (local_bin / "xSoft").is_symlink()),
        ("x735off power-down script", os.access(x735off, os.X_OK)),
        ("X735 utility scripts", all((utility_dir / name).is_file() for name in UTILITY_SCRIPTS)),
        ("X735 systemd services", service_unit_exists("x735")),
    ]


# =============================================================================
# Install sequence
# =============================================================================


def install_x735(
    repo_dir: Path,
    paths: SystemPaths,
    interactive: bool = True,
    require_pi: bool = True,
) -> StepResult:
    """Install all X735 components.

    Raises:
        InstallError: on any fatal step
    """
    print_header("GeekWorm X735 Installation", "Fan control and safe shutdown")

    print_step(1, TOTAL_STEPS, "Checking hardware")
    if require_pi and not is_raspberry_pi(paths.device_tree_model):
        raise InstallError("This installer must run on a Raspberry Pi")
    print_success("Raspberry Pi detected")

    print_step(2, TOTAL_STEPS, "Adding PWM fan overlay")
    overlay = add_pwm_overlay(paths, interactive=interactive)
    print_success(overlay.message)

    print_step(3, TOTAL_STEPS, "Installing dependencies")
    packages = install_packages(X735_PACKAGES)
    if not packages.success:
        raise InstallError(packages.message)
    print_success(packages.message)

    print_step(4, TOTAL_STEPS, "Locating X735 scripts")
    install_files = locate_install_files(repo_dir)
    print_success(f"Using {install_files}")

    print_step(5, TOTAL_STEPS, "Installing fan, power and safe-shutdown services")
    services = install_services(install_files)
    if not services.success:
        raise InstallError(services.message)
    print_success(services.message)

    print_step(6, TOTAL_STEPS, "Installing xSoft and x735off")
    xsoft = install_xsoft(install_files, paths)
    print_success(xsoft.message)
    script = create_poweroff_script(paths)
    print_success(f"Power-down script created at {script}")

    print_step(7, TOTAL_STEPS, "Verifying installation")
    checks = verify_installation(paths)
    print_checks("Verification", checks)
    passed = sum(1 for _, ok in checks if ok)

    print_list(
        [
            "x735off: safe shutdown of the board and Pi",
            "xSoft: low-level X735 power control",
            f"Utility scripts: {paths.local_bin / 'x735'}",
        ]
    )

    changes = overlay.changes + services.changes + xsoft.changes + [str(script)]
    return StepResult(
        success=True,
        message=f"X735 installed ({passed}/{len(checks)} checks passed)",
        changes=changes,
        requires_reboot=True,
    )
