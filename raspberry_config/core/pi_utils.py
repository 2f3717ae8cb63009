"""
Raspberry Pi utilities.

Provides:
- Pi detection and model identification
- Serial port (UART) status and raspi-config integration
- Network helpers (wireless interface, IP address, connectivity wait)
- Invoking user detection when running under sudo
"""

import getpass
import logging
import os
import pwd
import time
from pathlib import Path
from typing import Optional, Tuple

from .paths import SystemPaths
from .system import command_exists, run_command

logger = logging.getLogger(__name__)

CPUINFO_PATH = Path("/proc/cpuinfo")
DEVICE_TREE_MODEL = Path("/sys/firmware/devicetree/base/model")

# =============================================================================
# Pi Detection
# =============================================================================


def is_raspberry_pi(model_path: Optional[Path] = None) -> bool:
    """Detect if running on a Raspberry Pi."""
    candidates = [model_path] if model_path else [DEVICE_TREE_MODEL, Path("/proc/device-tree/model")]
    for path in candidates:
        try:
            if "Raspberry Pi" in path.read_text(errors="ignore"):
                return True
        except (FileNotFoundError, PermissionError, IOError):
            continue

    if model_path is None:
        try:
            if "Raspberry Pi" in CPUINFO_PATH.read_text(errors="ignore"):
                return True
        except (FileNotFoundError, PermissionError, IOError):
            pass

    return False


def get_pi_model(model_path: Path = DEVICE_TREE_MODEL) -> str:
    """Get Raspberry Pi model information."""
    try:
        return model_path.read_text(errors="ignore").strip().rstrip("\x00")
    except (FileNotFoundError, PermissionError, IOError):
        return "Unknown"


def is_root() -> bool:
    return os.geteuid() == 0


def get_invoking_user() -> str:
    """The human behind sudo, falling back to the login name."""
    return os.environ.get("SUDO_USER") or getpass.getuser()


def get_user_home(user: str) -> Path:
    try:
        return Path(pwd.getpwnam(user).pw_dir)
    except KeyError:
        return Path("/home") / user


# =============================================================================
# Serial Port
# =============================================================================


def check_serial_enabled(paths: SystemPaths) -> Tuple[bool, bool]:
    """Check if serial port is enabled in config.txt.

    Returns:
        Tuple of (uart_enabled, console_on_serial)
    """
    uart_enabled = False
    console_enabled = False
    try:
        if paths.boot_config.exists():
            uart_enabled = any(
                line.strip() == "enable_uart=1" for line in paths.boot_config.read_text().splitlines()
            )
        if paths.boot_cmdline.exists():
            cmdline = paths.boot_cmdline.read_text()
            console_enabled = "console=serial" in cmdline or "console=ttyAMA" in cmdline
    except (PermissionError, IOError):
        return False, False
    return uart_enabled, console_enabled


def configure_serial_hardware() -> Tuple[bool, str]:
    """Enable the UART and disable the login console on it.

    ``do_serial 2`` is raspi-config's "hardware on, console off" mode.
    """
    if not command_exists("raspi-config"):
        return False, "raspi-config not found"

    ret, _, stderr = run_command(["raspi-config", "nonint", "do_serial", "2"], timeout=60)
    if ret != 0:
        return False, f"raspi-config failed: {stderr[:80]}"
    return True, "Serial hardware enabled, console disabled. Reboot required."


# =============================================================================
# Network
# =============================================================================


def wireless_interface_exists(interface: str = "wlan0") -> bool:
    ret, _, _ = run_command(["ip", "link", "show", interface])
    return ret == 0


def get_ip_address() -> Optional[str]:
    """Source address of the default route."""
    ret, stdout, _ = run_command(["ip", "route", "get", "1"])
    if ret != 0:
        return None
    fields = stdout.split()
    if "src" in fields:
        index = fields.index("src") + 1
        if index < len(fields):
            return fields[index]
    if len(fields) > 6:
        return fields[6]
    return None


def wait_for_network(host: str = "8.8.8.8", timeout: int = 30) -> bool:
    """Ping ``host`` once per second until it answers or ``timeout`` expires."""
    for attempt in range(timeout):
        ret, _, _ = run_command(["ping", "-c", "1", "-W", "1", host], timeout=5)
        if ret == 0:
            logger.info("Network reachable after %d attempt(s)", attempt + 1)
            return True
        time.sleep(1)
    logger.warning("Network not reachable after %ds", timeout)
    return False
