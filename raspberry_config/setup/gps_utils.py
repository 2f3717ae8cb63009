"""
GPS utilities shared by the GPSBerry install, test and uninstall tools.

Provides:
- gpsberry.conf settings
- Serial GPS device checks and NMEA stream capture
- gpsd daemon configuration and status
- GPS log rotation
- Diagnostics report
"""

import logging
import os
import socket
from collections import Counter
from dataclasses import dataclass
from functools import reduce
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..core.cli_utils import console, print_info, print_section, print_success, print_warning
from ..core.config import ConfigError, str_to_bool, parse_key_value_file
from ..core.paths import SystemPaths
from ..core.system import (
    StepResult,
    check_service_status,
    create_directory,
    get_package_version,
    install_packages,
    is_package_installed,
    manage_service,
    run_command,
    write_file,
)

logger = logging.getLogger(__name__)

GPS_DEFAULT_DEVICE = "/dev/serial0"
GPS_DEFAULT_BAUDRATE = 9600
GPS_DEFAULT_TIMEOUT = 10
GPSD_PORT = 2947
GPSD_DEFAULT_OPTIONS = "-n"
DEFAULT_GPS_CONFIG = Path("/etc/gpsberry.conf")

GPS_CORE_PACKAGES = ["gpsd", "gpsd-clients", "python3-gps"]
GPS_TOOL_PACKAGES = ["gpsd", "gpsd-clients", "minicom", "screen"]

# =============================================================================
# Configuration
# =============================================================================


@dataclass
class GpsConfig:
    """gpsberry.conf settings."""

    device: str = GPS_DEFAULT_DEVICE
    baudrate: int = GPS_DEFAULT_BAUDRATE
    timeout: int = GPS_DEFAULT_TIMEOUT
    gpsd_enabled: bool = True
    gpsd_options: str = GPSD_DEFAULT_OPTIONS
    gpsd_port: int = GPSD_PORT
    log_dir: str = "/var/log/gps"
    log_file: str = "/var/log/gps/gpsberry.log"
    log_level: str = "INFO"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "GpsConfig":
        """Load from ``path`` (defaults apply for missing keys or file).

        Raises:
            ConfigError: if a numeric value is invalid
        """
        path = Path(path) if path else DEFAULT_GPS_CONFIG
        if not path.is_file():
            return cls()

        data = parse_key_value_file(path)
        config = cls()
        try:
            config.device = data.get("gps_device", config.device)
            config.baudrate = int(data.get("gps_baudrate", config.baudrate))
            config.timeout = int(data.get("gps_timeout", config.timeout))
            config.gpsd_enabled = str_to_bool(data.get("gpsd_enabled", config.gpsd_enabled))
            config.gpsd_options = data.get("gpsd_options", config.gpsd_options)
            config.gpsd_port = int(data.get("gpsd_port", config.gpsd_port))
        except ValueError as e:
            raise ConfigError(f"Invalid value in {path}: {e}") from e
        config.log_dir = data.get("log_dir", config.log_dir)
        config.log_file = data.get("log_file", config.log_file)
        config.log_level = data.get("log_level", config.log_level).upper()
        return config

    def rows(self) -> List[Tuple[str, str]]:
        return [
            ("GPS Device", self.device),
            ("Baud Rate", str(self.baudrate)),
            ("Timeout", f"{self.timeout}s"),
            ("GPSD Enabled", str(self.gpsd_enabled).lower()),
            ("GPSD Options", self.gpsd_options),
            ("GPSD Port", str(self.gpsd_port)),
            ("Log File", self.log_file),
            ("Log Level", self.log_level),
        ]


# =============================================================================
# Device and NMEA
# =============================================================================


def check_gps_device(device: str = GPS_DEFAULT_DEVICE) -> Tuple[bool, str]:
    path = Path(device)
    if not path.exists():
        return False, f"GPS device {device} not found"
    if not os.access(path, os.R_OK):
        return False, f"GPS device {device} is not readable"
    if path.is_symlink():
        return True, f"GPS device {device} -> {os.path.realpath(device)}"
    return True, f"GPS device {device} available"


def nmea_checksum_ok(sentence: str) -> bool:
    """Validate the XOR checksum of ``$...*hh``."""
    sentence = sentence.strip()
    if not sentence.startswith("$") or "*" not in sentence:
        return False
    body, _, checksum = sentence[1:].partition("*")
    try:
        expected = int(checksum[:2], 16)
    except ValueError:
        return False
    return reduce(lambda acc, ch: acc ^ ord(ch), body, 0) == expected


def is_nmea_sentence(line: str) -> bool:
    line = line.strip()
    return line.startswith("$") and len(line) > 6 and line[1:6].isalnum()


def summarize_sentences(lines: List[str]) -> Dict[str, int]:
    """Count NMEA sentence types (``GPGGA``, ``GPRMC``...)."""
    counts = Counter(line.strip()[1:6] for line in lines if is_nmea_sentence(line))
    return dict(counts)


def read_nmea(device: str = GPS_DEFAULT_DEVICE, timeout: int = 5, max_lines: int = 10) -> Tuple[bool, List[str]]:
    """Capture lines from the GPS device for up to ``timeout`` seconds.

    Returns:
        Tuple of (received_data, first ``max_lines`` lines)
    """
    ret, stdout, stderr = run_command(["timeout", str(timeout), "cat", device], timeout=timeout + 5)
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if ret not in (0, 124) and not lines:
        logger.warning("Reading %s failed: %s", device, stderr[:80])
        return False, []
    return bool(lines), lines[:max_lines]


def show_gps_stream(device: str = GPS_DEFAULT_DEVICE, timeout: int = 5) -> bool:
    print_info(f"Reading {device} for {timeout} seconds...")
    received, lines = read_nmea(device, timeout)
    if not received:
        print_warning("No GPS data received")
        return False
    for line in lines:
        console.print(f"  {line}", markup=False)
    valid = sum(1 for line in lines if nmea_checksum_ok(line))
    print_success(f"GPS data received ({valid}/{len(lines)} valid NMEA sentences)")
    return True


# =============================================================================
# gpsd
# =============================================================================


@dataclass
class GpsdStatus:
    installed: bool = False
    version: Optional[str] = None
    active: bool = False
    enabled: bool = False
    listening: bool = False


def gpsd_listening(port: int = GPSD_PORT, host: str = "127.0.0.1") -> bool:
    try:
        with socket.create_connection((host, port), timeout=2):
            return True
    except OSError:
        return False


def check_gpsd_status(port: int = GPSD_PORT) -> GpsdStatus:
    status = GpsdStatus(installed=is_package_installed("gpsd"))
    if not status.installed:
        return status
    status.version = get_package_version("gpsd")
    status.active, status.enabled = check_service_status("gpsd")
    status.listening = gpsd_listening(port)
    return status


def print_gpsd_status(status: GpsdStatus, port: int = GPSD_PORT):
    if not status.installed:
        print_warning("GPSD is not installed")
        return
    print_success(f"GPSD installed (version {status.version or 'unknown'})")
    (print_success if status.active else print_warning)(f"GPSD service is {'active' if status.active else 'inactive'}")
    (print_success if status.enabled else print_warning)(
        f"GPSD service is {'enabled' if status.enabled else 'not enabled'} at boot"
    )
    (print_success if status.listening else print_warning)(
        f"GPSD is {'listening' if status.listening else 'not listening'} on port {port}"
    )


def render_gpsd_defaults(device: str = GPS_DEFAULT_DEVICE, options: str = GPSD_DEFAULT_OPTIONS) -> str:
    return f"""# Default settings for the gpsd init script and the hotplug wrapper.

# Start the gpsd daemon automatically at boot time
START_DAEMON="true"

# Use USB hotplugging to add new USB devices automatically to the daemon
USBAUTO="true"

# Devices gpsd should collect to at boot time.
# They need to be read/writeable, either by user gpsd or the group dialout.
DEVICES="{device}"

# Other options you want to pass to gpsd
GPSD_OPTIONS="{options}"
"""


def configure_gpsd_daemon(
    paths: SystemPaths, device: str = GPS_DEFAULT_DEVICE, options: str = GPSD_DEFAULT_OPTIONS
) -> StepResult:
    """Write /etc/default/gpsd then restart and enable gpsd."""
    write_file(paths.gpsd_defaults, render_gpsd_defaults(device, options))
    result = StepResult(success=True, message=f"GPSD configured for {device}", changes=[str(paths.gpsd_defaults)])
    for action in ("restart", "enable"):
        ok, msg = manage_service("gpsd", action)
        if not ok:
            result.success = False
            result.errors.append(msg)
    if not result.success:
        result.message = "GPSD configured but the service could not be started"
    return result


# =============================================================================
# Tools and logging
# =============================================================================


def install_gps_tools() -> StepResult:
    """Install gpsd and the serial terminal tools used for testing."""
    return install_packages(GPS_TOOL_PACKAGES)


def render_logrotate(log_dir: str) -> str:
    return f"""{log_dir}/*.log {{
    daily
    missingok
    rotate 30
    compress
    delaycompress
    notifempty
    sharedscripts
}}
"""


def setup_gps_logging(paths: SystemPaths, log_dir: Optional[Path] = None) -> StepResult:
    log_dir = Path(log_dir) if log_dir else paths.gps_log_dir
    ok, msg = create_directory(log_dir)
    if not ok:
        return StepResult(success=False, message=msg)
    target = paths.logrotate_dir / "gps"
    write_file(target, render_logrotate(str(log_dir)))
    return StepResult(success=True, message=f"GPS logging configured in {log_dir}", changes=[str(log_dir), str(target)])


# =============================================================================
# Diagnostics
# =============================================================================


def run_diagnostics(paths: SystemPaths, config: Optional[GpsConfig] = None) -> bool:
    """Print a full diagnostics report. Returns True if GPS data was seen."""
    config = config or GpsConfig()

    print_section("1. Hardware")
    ok, msg = check_gps_device(config.device)
    (print_success if ok else print_warning)(msg)

    print_section("2. Software")
    print_gpsd_status(check_gpsd_status(config.gpsd_port), config.gpsd_port)

    print_section("3. Serial Port")
    serial = Path(GPS_DEFAULT_DEVICE)
    if serial.is_symlink():
        print_success(f"{serial} -> {os.path.realpath(serial)}")
    else:
        print_warning(f"{serial} symlink not found")

    print_section("4. Configuration")
    if paths.gpsd_defaults.is_file():
        print_success(f"GPSD config exists: {paths.gpsd_defaults}")
        for line in paths.gpsd_defaults.read_text().splitlines():
            if line.startswith(("START_DAEMON", "DEVICES", "GPSD_OPTIONS")):
                console.print(f"  {line}", markup=False)
    else:
        print_warning(f"GPSD config not found: {paths.gpsd_defaults}")

    print_section("5. Processes")
    ret, stdout, _ = run_command(["pgrep", "-a", "gpsd"])
    if ret == 0 and stdout.strip():
        print_success("GPSD process is running:")
        for line in stdout.splitlines():
            console.print(f"  {line}", markup=False)
    else:
        print_warning("GPSD process not found")

    print_section("6. Quick Data Test (5 seconds)")
    return show_gps_stream(config.device, 5)
