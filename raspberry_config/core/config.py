"""
Configuration management for Raspberry Config.
Handles loading and saving pi-config.conf.

The file is plain ``key=value`` lines with ``#`` comments. Values may be
quoted. Keys are case-insensitive.
"""

import configparser
import logging
import os
import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TEMP_DIR = "/var/tmp/raspberry-config"
DEFAULT_REPO_URL = "https://github.com/mnichols08/raspberry-config.git"

HOSTNAME_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,63}$")

# Environment variables honoured below the config file
ENV_KEYS = {
    "PI_HOSTNAME": "hostname",
    "PI_PASSWORD": "pi_password",
    "WIFI_SSID": "wifi_ssid",
    "WIFI_PASSWORD": "wifi_password",
    "REPO_URL": "repo_url",
    "TEMP_DIR": "temp_dir",
}

KEY_ALIASES = {"git_url": "repo_url"}

SECRET_KEYS = ("pi_password", "wifi_password")


class ConfigError(Exception):
    """Configuration file could not be parsed."""


def str_to_bool(value: Any) -> bool:
    """Convert string to boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on", "y")
    return bool(value)


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_key_value_file(path: Path) -> Dict[str, str]:
    """Read a shell-style ``key=value`` file.

    Comments and blank lines are skipped, whitespace and surrounding quotes
    are stripped and keys are lower-cased.

    Raises:
        ConfigError: if the file cannot be read or parsed
    """
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    # indented lines would otherwise be read as value continuations
    text = "\n".join(line.strip() for line in text.splitlines())

    parser = configparser.ConfigParser(
        interpolation=None,
        strict=False,
        allow_no_value=True,
        delimiters=("=",),
        comment_prefixes=("#",),
    )
    try:
        parser.read_string("[config]\n" + text, source=str(path))
    except configparser.Error as e:
        raise ConfigError(f"Invalid configuration file {path}: {e}") from e

    values = {}
    for key, value in parser.items("config"):
        if value is None:
            continue
        values[key.strip().lower()] = _strip_quotes(value)
    return values


# =============================================================================
# Validation
# =============================================================================


def validate_hostname(hostname: str) -> bool:
    """Letters, digits and hyphens, 1 to 63 characters."""
    return bool(HOSTNAME_PATTERN.match(hostname or ""))


def validate_wifi_ssid(ssid: str) -> bool:
    """SSIDs are 1 to 32 characters."""
    return 1 <= len(ssid or "") <= 32


# =============================================================================
# pi-config.conf
# =============================================================================


@dataclass
class PiConfig:
    """Settings shared by every installer."""

    hostname: str = "Pi"
    pi_user: str = "pi"
    pi_password: str = "raspberry"
    wifi_ssid: str = "HomeNetwork"
    wifi_password: str = ""
    wifi_country: str = "US"
    temp_dir: str = DEFAULT_TEMP_DIR
    repo_url: str = DEFAULT_REPO_URL
    install_theme: bool = True
    install_x735: bool = True
    install_gps: bool = True
    interactive_mode: bool = True
    auto_reboot: bool = True
    cleanup_temp: bool = True
    source: Optional[Path] = field(default=None, compare=False)

    DEFAULT_CONFIG_PATHS = [
        Path("init/pi-config.conf"),
        Path("/etc/pi-config.conf"),
        Path(DEFAULT_TEMP_DIR) / "init" / "pi-config.conf",
    ]

    @classmethod
    def find_config_file(cls, candidates: Optional[List[Path]] = None) -> Optional[Path]:
        """First existing configuration file in search order."""
        for path in candidates if candidates is not None else cls.DEFAULT_CONFIG_PATHS:
            if Path(path).is_file():
                return Path(path)
        return None

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        search: bool = True,
    ) -> "PiConfig":
        """Build a configuration from defaults, environment and file.

        Args:
            path: Explicit configuration file. Must exist when given.
            environ: Environment mapping (defaults to os.environ)
            search: Look through DEFAULT_CONFIG_PATHS when no path is given

        Returns:
            PiConfig with file values taking precedence over the environment
        """
        config = cls()
        environ = os.environ if environ is None else environ

        for env_key, attr in ENV_KEYS.items():
            if environ.get(env_key):
                config._set(attr, environ[env_key])

        if path is None and search:
            path = cls.find_config_file()
        elif path is not None and not Path(path).is_file():
            raise ConfigError(f"Configuration file not found: {path}")

        if path is not None:
            logger.info("Loading configuration from %s", path)
            for key, value in parse_key_value_file(path).items():
                key = KEY_ALIASES.get(key, key)
                if not config._set(key, value):
                    logger.debug("Ignoring unknown configuration key %s", key)
            config.source = Path(path)

        return config

    def _set(self, key: str, value: Any) -> bool:
        known = {f.name: f for f in fields(self) if f.name != "source"}
        if key not in known:
            return False
        if known[key].type in (bool, "bool"):
            value = str_to_bool(value)
        else:
            value = str(value)
        setattr(self, key, value)
        return True

    def apply_overrides(self, **overrides: Any) -> "PiConfig":
        """Apply command-line values. ``None`` means "not given"."""
        for key, value in overrides.items():
            if value is None:
                continue
            if not self._set(key, value):
                raise ValueError(f"Unknown configuration key: {key}")
        return self

    @property
    def init_marker(self) -> Path:
        return Path(self.temp_dir) / "init" / ".init_completed"

    def summary_rows(self) -> List[Tuple[str, str]]:
        """Rows for a configuration summary with secrets hidden."""
        return [
            ("Hostname", self.hostname),
            ("User", self.pi_user),
            ("Password", "[hidden]" if self.pi_password else "[not configured]"),
            ("WiFi SSID", self.wifi_ssid or "[not configured]"),
            ("WiFi Password", "[configured]" if self.wifi_password else "[not configured]"),
            ("Temp Directory", self.temp_dir),
            ("Repository", self.repo_url),
        ]

    def to_text(self) -> str:
        """Render as a pi-config.conf file."""
        generated = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        def line(key: str) -> str:
            value = getattr(self, key)
            if isinstance(value, bool):
                value = "true" if value else "false"
            return f'{key}="{value}"'

        out = [
            "# Raspberry Pi Configuration File",
            f"# Generated on {generated}",
            "# Read by pi-config for automated installation",
            "",
            "# System",
            line("hostname"),
            line("pi_user"),
            line("pi_password"),
            "",
            "# Network",
        ]
        if self.wifi_ssid:
            out.append(line("wifi_ssid"))
            if self.wifi_password:
                out.append(line("wifi_password"))
            out.append(line("wifi_country"))
        out += [
            "",
            "# Installation",
            line("temp_dir"),
            line("repo_url"),
            "",
            "# Components",
            line("install_theme"),
            line("install_x735"),
            line("install_gps"),
            "",
            "# Behaviour",
            line("interactive_mode"),
            line("auto_reboot"),
            line("cleanup_temp"),
        ]
        return "\n".join(out) + "\n"

    def write(self, path: Path) -> Path:
        """Save to ``path`` readable by root only."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_text())
        os.chmod(path, 0o600)
        logger.info("Configuration written to %s", path)
        return path
