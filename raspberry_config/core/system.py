"""
System primitives shared by every installer.

Provides:
- Command execution (never raises, returns exit code and output)
- apt package installation and removal
- Git clone/update of the configuration repository
- Backup-before-modify helpers for configuration files
- systemd service management
- Hostname resolution and reboot
"""

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class InstallError(Exception):
    """A fatal installer step failed."""


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StepResult:
    """Result of an installer step."""

    success: bool
    message: str
    changes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    requires_reboot: bool = False


# =============================================================================
# Command Execution
# =============================================================================


def run_command(
    cmd: List[str],
    timeout: Optional[int] = 600,
    capture: bool = True,
    sudo: bool = False,
    cwd: Optional[Path] = None,
    input_text: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> Tuple[int, str, str]:
    """Run a command with optional sudo.

    Args:
        cmd: Command and arguments as list
        timeout: Timeout in seconds (default 10 minutes, None waits forever)
        capture: Whether to capture output
        sudo: Whether to prepend sudo
        cwd: Working directory
        input_text: Text fed to the command's stdin
        env: Extra environment variables merged over os.environ

    Returns:
        Tuple of (return_code, stdout, stderr)
    """
    if sudo:
        cmd = ["sudo"] + cmd

    run_env = None
    if env:
        run_env = dict(os.environ)
        run_env.update(env)

    logger.debug("Running: %s", cmd[0])
    try:
        result = subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            cwd=str(cwd) if cwd else None,
            input=input_text,
            env=run_env,
        )
        stdout = result.stdout if capture else ""
        stderr = result.stderr if capture else ""
        return result.returncode, stdout or "", stderr or ""
    except subprocess.TimeoutExpired:
        return -1, "", "Command timed out"
    except FileNotFoundError:
        return -1, "", f"Command not found: {cmd[0]}"
    except subprocess.SubprocessError as e:
        return -1, "", str(e)


def command_exists(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(name) is not None


# =============================================================================
# apt Packages
# =============================================================================


def system_update(upgrade: bool = True, progress_callback: Optional[Callable[[str], None]] = None) -> StepResult:
    """Run apt update and optionally upgrade.

    Args:
        upgrade: Whether to also run apt upgrade
        progress_callback: Optional callback for progress messages

    Returns:
        StepResult with success status and messages
    """

    def report(msg: str):
        logger.info(msg)
        if progress_callback:
            progress_callback(msg)

    result = StepResult(success=True, message="")

    report("Updating package lists...")
    ret, _, stderr = run_command(["apt", "update"])
    if ret != 0:
        result.errors.append(f"apt update failed: {stderr[:100]}")
        result.success = False
        result.message = "Failed to update package lists"
        return result
    result.changes.append("Updated package lists")

    if upgrade:
        report("Upgrading packages...")
        ret, stdout, stderr = run_command(["apt", "upgrade", "-y"])
        if ret != 0:
            result.errors.append(f"apt upgrade failed: {stderr[:100]}")
            result.success = False
            result.message = "Failed to upgrade packages"
            return result
        if "upgraded" in stdout:
            result.changes.append("Upgraded system packages")

    result.message = "System updated"
    return result


def is_package_installed(package: str) -> bool:
    """Check dpkg status for a package."""
    ret, stdout, _ = run_command(["dpkg-query", "-W", "-f=${Status}", package])
    return ret == 0 and "install ok installed" in stdout


def get_package_version(package: str) -> Optional[str]:
    """Installed version of a package, or None."""
    ret, stdout, _ = run_command(["dpkg-query", "-W", "-f=${Version}", package])
    if ret == 0 and stdout.strip():
        return stdout.strip()
    return None


def install_packages(
    packages: List[str], update: bool = True, progress_callback: Optional[Callable[[str], None]] = None
) -> StepResult:
    """Install apt packages that are not installed yet.

    Args:
        packages: Package names
        update: Whether to refresh package lists first
        progress_callback: Optional callback for progress messages

    Returns:
        StepResult listing the packages installed
    """

    def report(msg: str):
        logger.info(msg)
        if progress_callback:
            progress_callback(msg)

    missing = [pkg for pkg in packages if not is_package_installed(pkg)]
    if not missing:
        return StepResult(success=True, message="All packages already installed")

    if update:
        report("Updating package lists...")
        ret, _, stderr = run_command(["apt", "update"])
        if ret != 0:
            return StepResult(
                success=False, message="Failed to update package lists", errors=[stderr[:100]]
            )

    report(f"Installing: {' '.join(missing)}")
    ret, _, stderr = run_command(["apt", "install", "-y"] + missing)
    if ret != 0:
        return StepResult(
            success=False,
            message=f"Failed to install {' '.join(missing)}",
            errors=[stderr[:200]],
        )
    return StepResult(success=True, message=f"Installed {' '.join(missing)}", changes=[f"Installed {p}" for p in missing])


def remove_packages(packages: List[str], purge: bool = True) -> StepResult:
    """Remove the installed subset of ``packages``."""
    installed = [pkg for pkg in packages if is_package_installed(pkg)]
    if not installed:
        return StepResult(success=True, message="No packages to remove")

    cmd = ["apt-get", "remove"]
    if purge:
        cmd.append("--purge")
    cmd += ["-y"] + installed

    ret, _, stderr = run_command(cmd)
    if ret != 0:
        return StepResult(
            success=False, message=f"Failed to remove {' '.join(installed)}", errors=[stderr[:200]]
        )
    return StepResult(success=True, message=f"Removed {' '.join(installed)}", changes=[f"Removed {p}" for p in installed])


def autoremove_packages() -> Tuple[bool, str]:
    """apt-get autoremove followed by autoclean."""
    ret, _, stderr = run_command(["apt-get", "autoremove", "-y"])
    if ret != 0:
        return False, f"autoremove failed: {stderr[:100]}"
    run_command(["apt-get", "autoclean"])
    return True, "Removed unused dependencies"


# =============================================================================
# Git
# =============================================================================


def make_scripts_executable(directory: Path) -> int:
    """chmod +x every *.sh below ``directory``. Returns the number touched."""
    count = 0
    for script in Path(directory).rglob("*.sh"):
        if ".git" in script.parts:
            continue
        mode = script.stat().st_mode
        script.chmod(mode | 0o111)
        count += 1
    return count


def clone_or_update_repo(
    repo_url: str,
    target: Path,
    force_fresh: bool = False,
    progress_callback: Optional[Callable[[str], None]] = None,
) -> StepResult:
    """Clone ``repo_url`` into ``target`` or pull if it is already a clone.

    Args:
        repo_url: Repository URL
        target: Destination directory
        force_fresh: Remove any existing directory and clone again
        progress_callback: Optional callback for progress messages

    Returns:
        StepResult with details
    """

    def report(msg: str):
        logger.info(msg)
        if progress_callback:
            progress_callback(msg)

    target = Path(target)
    if force_fresh and target.exists():
        report(f"Removing existing directory {target}")
        shutil.rmtree(target)

    if (target / ".git").is_dir():
        report(f"Updating repository in {target}...")
        ret, stdout, stderr = run_command(["git", "pull"], cwd=target)
        if ret != 0:
            return StepResult(success=False, message=f"Pull failed: {stderr[:100]}", errors=[stderr])
        message = "Already up to date" if "Already up to date" in stdout else f"Updated {target}"
        result = StepResult(success=True, message=message)
    else:
        if target.exists() and any(target.iterdir()):
            return StepResult(
                success=False,
                message=f"Directory exists but is not a git repository: {target}",
                errors=["Path exists but is not a clone"],
            )
        target.parent.mkdir(parents=True, exist_ok=True)
        report(f"Cloning {repo_url} to {target}...")
        ret, _, stderr = run_command(["git", "clone", repo_url, str(target)])
        if ret != 0:
            return StepResult(success=False, message=f"Clone failed: {stderr[:100]}", errors=[stderr])
        result = StepResult(success=True, message=f"Cloned repository to {target}", changes=["Repository cloned"])

    if target.is_dir():
        make_scripts_executable(target)
    return result


# =============================================================================
# Files and Backups
# =============================================================================


def backup_file(path: Path, suffix: Optional[str] = None) -> Optional[Path]:
    """Copy ``path`` to ``<path>.backup.<timestamp>`` before modifying it.

    Returns:
        Path of the backup, or None when there was nothing to back up
    """
    path = Path(path)
    if not path.is_file():
        logger.warning("Cannot back up missing file %s", path)
        return None

    if suffix is None:
        suffix = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
    backup = path.with_name(f"{path.name}.backup.{suffix}")
    shutil.copy2(path, backup)
    logger.info("Backed up %s to %s", path, backup)
    return backup


def find_backups(path: Path) -> List[Path]:
    """Backups made by ``backup_file`` for ``path``, newest first."""
    path = Path(path)
    if not path.parent.is_dir():
        return []
    backups = [p for p in path.parent.glob(f"{path.name}.backup.*") if p.is_file()]
    return sorted(backups, key=lambda p: p.stat().st_mtime, reverse=True)


def restore_latest_backup(path: Path) -> Tuple[bool, str]:
    """Restore ``path`` from its newest backup."""
    backups = find_backups(path)
    if not backups:
        return False, f"No backup found for {path}"
    shutil.copy2(backups[0], path)
    logger.info("Restored %s from %s", path, backups[0])
    return True, f"Restored {path} from {backups[0].name}"


def write_file(path: Path, content: str, mode: int = 0o644) -> None:
    """Write ``content`` to ``path``, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    os.chmod(path, mode)
    logger.info("Wrote %s", path)


def create_directory(path: Path, mode: int = 0o755, owner: Optional[str] = None) -> Tuple[bool, str]:
    """Create a directory with permissions and optional owner."""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
        os.chmod(path, mode)
        if owner:
            shutil.chown(path, user=owner, group=owner)
    except (OSError, LookupError) as e:
        return False, f"Failed to create {path}: {e}"
    return True, f"Created {path}"


def fix_hostname_resolution(hosts_path: Path, hostname: str) -> Tuple[bool, str]:
    """Point the 127.0.1.1 entry in /etc/hosts at ``hostname``."""
    hosts_path = Path(hosts_path)
    entry = f"127.0.1.1       {hostname}"
    try:
        lines = hosts_path.read_text().splitlines() if hosts_path.exists() else []
    except OSError as e:
        return False, f"Cannot read {hosts_path}: {e}"

    new_lines = []
    replaced = False
    for line in lines:
        if line.split() and line.split()[0] == "127.0.1.1":
            if not replaced:
                new_lines.append(entry)
                replaced = True
            continue
        new_lines.append(line)
    if not replaced:
        new_lines.append(entry)

    try:
        hosts_path.write_text("\n".join(new_lines) + "\n")
    except OSError as e:
        return False, f"Cannot write {hosts_path}: {e}"
    return True, f"Hostname resolution set for {hostname}"


# =============================================================================
# Systemd Service Management
# =============================================================================


def manage_service(name: str, action: str) -> Tuple[bool, str]:
    """Manage a systemd service.

    Args:
        name: Service name
        action: One of "start", "stop", "restart", "enable", "disable"

    Returns:
        Tuple of (success, message)
    """
    valid_actions = ["start", "stop", "restart", "enable", "disable"]
    if action not in valid_actions:
        return False, f"Invalid action. Use: {', '.join(valid_actions)}"

    ret, _, stderr = run_command(["systemctl", action, name])
    if ret == 0:
        return True, f"Service {name} {action} succeeded"
    return False, f"Failed to {action} {name}: {stderr[:80]}"


def check_service_status(name: str) -> Tuple[bool, bool]:
    """Return (is_active, is_enabled) for a systemd unit."""
    _, active, _ = run_command(["systemctl", "is-active", name])
    _, enabled, _ = run_command(["systemctl", "is-enabled", name])
    return active.strip() == "active", enabled.strip() == "enabled"


def daemon_reload() -> Tuple[bool, str]:
    ret, _, stderr = run_command(["systemctl", "daemon-reload"])
    if ret != 0:
        return False, f"Failed to reload systemd: {stderr[:80]}"
    return True, "systemd reloaded"


def service_unit_exists(pattern: str) -> bool:
    """True if any installed unit file name contains ``pattern``."""
    ret, stdout, _ = run_command(["systemctl", "list-unit-files", "--no-legend"])
    if ret != 0:
        return False
    return any(pattern in line.split()[0] for line in stdout.splitlines() if line.split())


# =============================================================================
# Reboot
# =============================================================================


def reboot(delay: int = 10, countdown: Optional[Callable[[int], None]] = None) -> None:
    """Reboot after ``delay`` seconds, calling ``countdown`` once per second."""
    for remaining in range(delay, 0, -1):
        if countdown:
            countdown(remaining)
        time.sleep(1)
    logger.info("Rebooting system")
    ret, _, stderr = run_command(["reboot"])
    if ret != 0:
        raise InstallError(f"Reboot failed: {stderr[:80]}")
