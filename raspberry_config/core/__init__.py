"""
Core modules for Raspberry Config.
Shared by every installer component.

Modules:
- system: command execution, apt, git, backups, systemd
- reboot_hooks: one-shot @reboot crontab hooks
- pi_utils: Pi detection, serial status, network helpers
- config: pi-config.conf loading and writing
- paths: filesystem layout of the target system
- cli_utils: rich console output and prompts
- log: install log setup
"""

from .config import ConfigError, PiConfig, parse_key_value_file, validate_hostname, validate_wifi_ssid
from .paths import SystemPaths
from .system import InstallError, StepResult, run_command

__all__ = [
    "ConfigError",
    "InstallError",
    "PiConfig",
    "StepResult",
    "SystemPaths",
    "parse_key_value_file",
    "run_command",
    "validate_hostname",
    "validate_wifi_ssid",
]
