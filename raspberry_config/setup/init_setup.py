"""
Initial system setup.

First-boot configuration of a fresh Raspberry Pi OS image: system update,
hostname, user password, WiFi, and a clone of the configuration repository.
"""

import logging
import re
from pathlib import Path
from typing import Callable, Optional

from ..core.cli_utils import (
    get_input,
    get_yes_no,
    print_error,
    print_header,
    print_info,
    print_list,
    print_step,
    print_success,
    print_summary,
    print_warning,
)
from ..core.config import PiConfig, validate_hostname, validate_wifi_ssid
from ..core.paths import SystemPaths
from ..core.pi_utils import get_ip_address, wait_for_network, wireless_interface_exists
from ..core.system import (
    InstallError,
    StepResult,
    backup_file,
    clone_or_update_repo,
    command_exists,
    create_directory,
    fix_hostname_resolution,
    install_packages,
    manage_service,
    run_command,
    system_update,
    write_file,
)

logger = logging.getLogger(__name__)

WIFI_INTERFACE = "wlan0"
NETWORK_CHECK_HOST = "8.8.8.8"
NETWORK_TIMEOUT = 30
TOTAL_STEPS = 6

_WEP_KEY = re.compile(r"^(?:[0-9A-Fa-f]{10}|[0-9A-Fa-f]{26})$")


# =============================================================================
# WiFi
# =============================================================================


def is_wep_key(key: str) -> bool:
    """WEP keys are 10 or 26 hexadecimal digits."""
    return bool(_WEP_KEY.match(key or ""))


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def render_wpa_supplicant(ssid: str, psk: str, country: str = "US") -> str:
    """Contents of wpa_supplicant.conf for a single network."""
    network = [f"    ssid={_quote(ssid)}"]
    if psk:
        network.append(f"    psk={_quote(psk)}")
    else:
        network.append("    key_mgmt=NONE")

    return (
        f"country={country}\n"
        "ctrl_interface=DIR=/var/run/wpa_supplicant GROUP=netdev\n"
        "update_config=1\n"
        "\n"
        "network={\n" + "\n".join(network) + "\n}\n"
    )


def configure_wifi(
    ssid: str,
    password: str,
    paths: SystemPaths,
    country: str = "US",
    interface: str = WIFI_INTERFACE,
) -> StepResult:
    """Join ``ssid`` using WEP or WPA depending on the key format.

    Raises:
        InstallError: if the wireless interface does not exist
    """
    if not wireless_interface_exists(interface):
        raise InstallError(f"Wireless interface {interface} not found")

    if is_wep_key(password):
        logger.info("Configuring WEP network %s", ssid)
        ret, _, stderr = run_command(["iwconfig", interface, "essid", ssid, "key", password])
        if ret != 0:
            return StepResult(success=False, message=f"Failed to configure WEP: {stderr[:80]}")
        return StepResult(success=True, message=f"WEP network {ssid} configured", changes=["WiFi (WEP)"])

    logger.info("Configuring WPA network %s", ssid)
    backup_file(paths.wpa_supplicant)
    write_file(paths.wpa_supplicant, render_wpa_supplicant(ssid, password, country), mode=0o600)

    result = StepResult(success=True, message=f"WPA network {ssid} configured", changes=["WiFi (WPA)"])
    ok, msg = manage_service("wpa_supplicant", "restart")
    if not ok:
        result.errors.append(msg)
    ret, _, stderr = run_command(["wpa_cli", "-i", interface, "reconfigure"])
    if ret != 0:
        result.errors.append(f"wpa_cli reconfigure failed: {stderr[:80]}")
    return result


# =============================================================================
# Hostname and password
# =============================================================================


def set_hostname(hostname: str, paths: SystemPaths) -> StepResult:
    ret, _, stderr = run_command(["hostnamectl", "set-hostname", hostname])
    if ret != 0:
        return StepResult(success=False, message=f"Failed to set hostname: {stderr[:80]}")
    ok, msg = fix_hostname_resolution(paths.hosts, hostname)
    result = StepResult(success=True, message=f"Hostname set to {hostname}", changes=["hostname"])
    if not ok:
        result.errors.append(msg)
    return result


def change_password(user: str, password: str) -> StepResult:
    """Set ``user``'s password through chpasswd (password never on argv)."""
    ret, _, stderr = run_command(["chpasswd"], input_text=f"{user}:{password}\n")
    if ret != 0:
        return StepResult(success=False, message=f"Failed to change password for {user}: {stderr[:80]}")
    return StepResult(success=True, message=f"Password changed for {user}", changes=["password"])


# =============================================================================
# Interactive settings
# =============================================================================


def prompt_for_settings(config: PiConfig, interactive: bool = True) -> bool:
    """Collect settings and ask for confirmation.

    Returns:
        False if the user cancelled
    """
    if interactive:
        print_info("Press Enter to keep the value shown in brackets")

        hostname = get_input("Hostname", config.hostname)
        if validate_hostname(hostname):
            config.hostname = hostname
        else:
            print_warning(f"Invalid hostname '{hostname}', keeping {config.hostname}")

        config.pi_password = get_input(f"Password for {config.pi_user}", config.pi_password, password=True)

        ssid = get_input("WiFi SSID", config.wifi_ssid)
        if validate_wifi_ssid(ssid):
            config.wifi_ssid = ssid
        else:
            print_warning(f"Invalid SSID '{ssid}', keeping {config.wifi_ssid}")

        config.wifi_password = get_input("WiFi password", config.wifi_password, password=True)
        config.repo_url = get_input("Repository URL", config.repo_url)
        config.temp_dir = get_input("Temporary directory", config.temp_dir)

    if not validate_hostname(config.hostname):
        raise InstallError(f"Invalid hostname: {config.hostname}")
    if not validate_wifi_ssid(config.wifi_ssid):
        raise InstallError(f"Invalid WiFi SSID: {config.wifi_ssid}")

    print_summary("Configuration Summary", config.summary_rows())
    return get_yes_no("Proceed with this configuration?", default=True, interactive=interactive)


# =============================================================================
# Setup sequence
# =============================================================================


def run_init(
    config: PiConfig,
    paths: SystemPaths,
    interactive: bool = True,
    progress_callback: Optional[Callable[[str], None]] = None,
) -> bool:
    """Run the whole initial setup.

    Returns:
        False if the user cancelled, True on completion

    Raises:
        InstallError: on any fatal step
    """
    print_header("Raspberry Pi Initial Setup", "Hostname, password, WiFi and repository")

    if not prompt_for_settings(config, interactive):
        print_info("Setup cancelled")
        return False

    print_step(1, TOTAL_STEPS, "Updating system packages")
    result = system_update(progress_callback=progress_callback)
    if not result.success:
        raise InstallError(result.message)
    print_success(result.message)

    print_step(2, TOTAL_STEPS, f"Setting hostname to {config.hostname}")
    result = set_hostname(config.hostname, paths)
    if not result.success:
        raise InstallError(result.message)
    for error in result.errors:
        print_warning(error)
    print_success(result.message)

    print_step(3, TOTAL_STEPS, f"Changing password for {config.pi_user}")
    result = change_password(config.pi_user, config.pi_password)
    if not result.success:
        raise InstallError(result.message)
    print_success(result.message)

    print_step(4, TOTAL_STEPS, f"Configuring WiFi for {config.wifi_ssid}")
    result = configure_wifi(config.wifi_ssid, config.wifi_password, paths, country=config.wifi_country)
    if not result.success:
        raise InstallError(result.message)
    for error in result.errors:
        print_warning(error)
    print_success(result.message)

    print_step(5, TOTAL_STEPS, "Waiting for network connectivity")
    if wait_for_network(NETWORK_CHECK_HOST, NETWORK_TIMEOUT):
        print_success(f"Network connected, IP address: {get_ip_address() or 'unknown'}")
    else:
        print_warning("Network not reachable yet, continuing")

    print_step(6, TOTAL_STEPS, "Cloning configuration repository")
    if not command_exists("git"):
        result = install_packages(["git"], update=False)
        if not result.success:
            raise InstallError(result.message)
    ok, msg = create_directory(Path(config.temp_dir))
    if not ok:
        raise InstallError(msg)
    result = clone_or_update_repo(config.repo_url, Path(config.temp_dir), progress_callback=progress_callback)
    if not result.success:
        print_error(result.message)
        raise InstallError(result.message)
    print_success(result.message)

    mark_init_completed(config)

    print_header("Initial Setup Complete")
    print_list(
        [
            f"Configuration repository: {config.temp_dir}",
            "Run 'sudo pi-config install' to install the remaining components",
            "Reboot to apply the new hostname",
        ],
        numbered=True,
    )
    return True


def mark_init_completed(config: PiConfig) -> Path:
    marker = config.init_marker
    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.touch()
    logger.info("Initial setup marked complete at %s", marker)
    return marker
