"""
Well-known filesystem locations touched by the installers.

Everything is collected in one dataclass so a procedure can be pointed at a
scratch root (tests, chroots) with ``SystemPaths.under(root)``.
"""

from dataclasses import dataclass, fields
from pathlib import Path


def _boot_dir() -> Path:
    """Bookworm and newer use /boot/firmware, legacy uses /boot."""
    firmware = Path("/boot/firmware")
    if (firmware / "config.txt").exists():
        return firmware
    if Path("/boot/config.txt").exists():
        return Path("/boot")
    return firmware


@dataclass
class SystemPaths:
    """Filesystem layout of the target system."""

    boot_config: Path = Path("/boot/config.txt")
    boot_cmdline: Path = Path("/boot/cmdline.txt")
    device_tree_model: Path = Path("/proc/device-tree/model")
    hosts: Path = Path("/etc/hosts")
    wpa_supplicant: Path = Path("/etc/wpa_supplicant/wpa_supplicant.conf")
    gpsd_defaults: Path = Path("/etc/default/gpsd")
    logrotate_dir: Path = Path("/etc/logrotate.d")
    systemd_dir: Path = Path("/etc/systemd/system")
    local_bin: Path = Path("/usr/local/bin")
    apt_lists: Path = Path("/var/lib/apt/lists")
    backup_dir: Path = Path("/var/backups/raspberry-config")
    log_dir: Path = Path("/var/log/raspberry-config")
    gps_log_dir: Path = Path("/var/log/gps")
    tmp_dir: Path = Path("/tmp")

    @classmethod
    def detect(cls) -> "SystemPaths":
        """Layout of the running system."""
        boot = _boot_dir()
        return cls(boot_config=boot / "config.txt", boot_cmdline=boot / "cmdline.txt")

    @classmethod
    def under(cls, root: Path) -> "SystemPaths":
        """Same layout re-rooted below ``root``."""
        root = Path(root)
        values = {}
        for f in fields(cls):
            default = f.default
            values[f.name] = root / str(default).lstrip("/")
        return cls(**values)

    @property
    def log_file(self) -> Path:
        return self.log_dir / "install.log"
