"""
Essential packages, git defaults and the shared pi-config.conf.
"""

import logging
import socket
from pathlib import Path
from typing import Optional

from ..core.cli_utils import (
    get_input,
    get_yes_no,
    print_header,
    print_info,
    print_step,
    print_success,
    print_summary,
    print_warning,
)
from ..core.config import PiConfig, validate_hostname, validate_wifi_ssid
from ..core.paths import SystemPaths
from ..core.system import InstallError, StepResult, create_directory, install_packages, run_command

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("/etc/pi-config.conf")
ESSENTIAL_PACKAGES = ["git", "curl", "wget", "nano", "vim", "htop"]

GIT_DEFAULT_NAME = "Raspberry Pi User"
GIT_DEFAULT_EMAIL = "pi@raspberrypi.local"


def create_config_file(path: Path = DEFAULT_CONFIG_FILE, interactive: bool = True) -> Optional[PiConfig]:
    """Create pi-config.conf from prompts or defaults.

    Returns:
        The written configuration, or None if an existing file was kept
    """
    path = Path(path)
    if path.exists():
        if not get_yes_no(f"{path} already exists. Recreate it?", default=False, interactive=interactive):
            print_info(f"Keeping existing configuration {path}")
            return None

    config = PiConfig(hostname=socket.gethostname() or "Pi")

    if interactive:
        config.hostname = get_input(
            "Hostname", config.hostname, validator=validate_hostname, error_message="Letters, digits and hyphens only"
        )
        config.pi_password = get_input("Password for pi", config.pi_password, password=True)
        config.wifi_ssid = get_input(
            "WiFi SSID (blank to skip)",
            "",
            validator=lambda s: s == "" or validate_wifi_ssid(s),
            error_message="SSID must be 1-32 characters",
        )
        if config.wifi_ssid:
            config.wifi_password = get_input("WiFi password", "", password=True)
        config.temp_dir = get_input("Temporary directory", config.temp_dir)
        config.repo_url = get_input("Repository URL", config.repo_url)
    elif not validate_hostname(config.hostname):
        config.hostname = "Pi"

    config.interactive_mode = interactive
    config.write(path)
    print_success(f"Configuration written to {path}")
    print_summary("Configuration", config.summary_rows())
    return config


def _git_config_value(key: str) -> str:
    _, stdout, _ = run_command(["git", "config", "--global", "--get", key])
    return stdout.strip()


def setup_git_config() -> StepResult:
    """Trust every directory and give git an identity if it has none."""
    result = StepResult(success=True, message="Git configured")

    ret, _, stderr = run_command(["git", "config", "--global", "--add", "safe.directory", "*"])
    if ret != 0:
        return StepResult(success=False, message=f"Failed to configure git: {stderr[:80]}")
    result.changes.append("safe.directory *")

    for key, default in (("user.name", GIT_DEFAULT_NAME), ("user.email", GIT_DEFAULT_EMAIL)):
        if _git_config_value(key):
            continue
        ret, _, stderr = run_command(["git", "config", "--global", key, default])
        if ret != 0:
            result.errors.append(f"Failed to set {key}: {stderr[:80]}")
        else:
            result.changes.append(f"{key}={default}")
    return result


def install_essentials() -> StepResult:
    """Install the base tool set (git, curl, editors, htop)."""
    return install_packages(ESSENTIAL_PACKAGES)


def create_directories(config: PiConfig, paths: SystemPaths) -> StepResult:
    result = StepResult(success=True, message="Directories ready")
    for directory in (Path(config.temp_dir), paths.log_dir):
        ok, msg = create_directory(directory)
        if ok:
            result.changes.append(str(directory))
        else:
            result.success = False
            result.errors.append(msg)
    return result


def run_essentials(
    paths: SystemPaths,
    config_file: Path = DEFAULT_CONFIG_FILE,
    interactive: bool = True,
) -> PiConfig:
    """Install essentials and write the shared configuration.

    Raises:
        InstallError: if packages or directories cannot be set up
    """
    print_header("Raspberry Pi Essentials")

    print_step(1, 4, "Creating configuration file")
    written = create_config_file(config_file, interactive=interactive)
    config = written or PiConfig.load(config_file, search=False)

    print_step(2, 4, "Installing essential packages")
    result = install_essentials()
    if not result.success:
        raise InstallError(result.message)
    print_success(result.message)

    print_step(3, 4, "Configuring git")
    result = setup_git_config()
    if result.success:
        print_success(result.message)
    else:
        print_warning(result.message)
    for error in result.errors:
        print_warning(error)

    print_step(4, 4, "Creating directories")
    result = create_directories(config, paths)
    if not result.success:
        raise InstallError("; ".join(result.errors))
    print_success(result.message)

    return config
