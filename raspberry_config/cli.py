"""
pi-config command line.

Usage:
    sudo pi-config install                  # Full installation
    sudo pi-config install -n --no-reboot   # Unattended, no reboot
    sudo pi-config init                     # Hostname, password, WiFi, repo
    sudo pi-config essentials               # Packages and pi-config.conf
    sudo pi-config theme                    # Wallpaper and startup video
    sudo pi-config x735                     # X735 power board
    sudo pi-config gps install --dry-run    # Preview GPSBerry install
    pi-config gps test --method cat         # Read the GPS data stream
    pi-config gps check                     # GPS diagnostics
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.cli_utils import (
    console,
    countdown_message,
    get_yes_no,
    print_error,
    print_info,
    print_summary,
    print_warning,
)
from .core.config import ConfigError, PiConfig
from .core.log import DEFAULT_LOG_FILE, setup_logging
from .core.paths import SystemPaths
from .core.pi_utils import is_root
from .core.system import InstallError, reboot
from .installer import Installer
from .setup.essentials import DEFAULT_CONFIG_FILE, run_essentials
from .setup.gps_install import GpsInstaller, GpsInstallOptions, post_reboot
from .setup.gps_test import DEFAULT_TOOLS, METHODS, GpsTester, GpsTestOptions
from .setup.gps_uninstall import GpsUninstaller, GpsUninstallOptions
from .setup.gps_utils import (
    GPSD_DEFAULT_OPTIONS,
    GpsConfig,
    check_gpsd_status,
    configure_gpsd_daemon,
    install_gps_tools,
    print_gpsd_status,
    run_diagnostics,
    setup_gps_logging,
)
from .setup.init_setup import run_init
from .setup.theme import DEFAULT_IMAGE_DIR, DEFAULT_VIDEO_DIR, install_theme
from .setup.x735 import install_x735

logger = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def baud_rate(value: str) -> int:
    number = positive_int(value)
    if number < 300:
        raise argparse.ArgumentTypeError("baud rate must be at least 300")
    return number


def absolute_path(value: str) -> Path:
    path = Path(value)
    if not path.is_absolute():
        raise argparse.ArgumentTypeError(f"'{value}' must be an absolute path")
    return path


# =============================================================================
# Helpers
# =============================================================================


def _load_config(args) -> PiConfig:
    config = PiConfig.load(args.config)
    config.apply_overrides(interactive_mode=False if args.non_interactive else None)
    return config


def _require_root(args, needed: bool = True):
    if needed and not getattr(args, "dry_run", False) and not is_root():
        raise InstallError("This command must be run as root (try: sudo pi-config ...)")


# =============================================================================
# Command handlers
# =============================================================================


def cmd_install(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    config = _load_config(args)
    config.apply_overrides(
        temp_dir=str(args.temp_dir) if args.temp_dir else None,
        repo_url=args.repo_url,
        install_theme=False if args.skip_theme else None,
        install_x735=False if args.skip_x735 else None,
        install_gps=False if args.skip_gps else None,
        auto_reboot=False if args.no_reboot else None,
        cleanup_temp=False if args.keep_temp else None,
    )
    installer = Installer(config, paths, log_file=log_file)
    success = installer.run()
    if installer.summary.installed or installer.summary.failed:
        installer.finish()
    return 0 if success else 1


def cmd_init(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    config = _load_config(args)
    config.apply_overrides(
        hostname=args.hostname,
        pi_password=args.password,
        wifi_ssid=args.wifi_ssid,
        wifi_password=args.wifi_password,
        repo_url=args.repo_url,
        temp_dir=str(args.temp_dir) if args.temp_dir else None,
    )
    run_init(config, paths, interactive=config.interactive_mode, progress_callback=print_info)
    return 0


def cmd_essentials(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    run_essentials(paths, config_file=args.config_file, interactive=not args.non_interactive)
    return 0


def cmd_theme(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    config = _load_config(args)
    repo_dir = args.repo_dir or Path(config.temp_dir)
    result = install_theme(
        repo_dir,
        paths,
        interactive=config.interactive_mode,
        image_dir=args.image_dir,
        video_dir=args.video_dir,
        user=args.user,
    )
    return 0 if result.success else 1


def cmd_x735(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    config = _load_config(args)
    repo_dir = args.temp_dir or Path(config.temp_dir)
    interactive = config.interactive_mode
    result = install_x735(repo_dir, paths, interactive=interactive)
    print_info(result.message)

    if args.no_reboot:
        print_warning("Reboot required for the X735 overlay to take effect")
        return 0
    if get_yes_no("Reboot now?", default=True, interactive=interactive):
        reboot(5, countdown_message)
    return 0


def cmd_gps_install(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    options = GpsInstallOptions(
        interactive=not args.non_interactive,
        dry_run=args.dry_run,
        skip_update=args.skip_update,
        reboot=not args.no_reboot,
    )
    installer = GpsInstaller(paths, options)
    result = installer.run()
    if not result.success:
        print_info(result.message)
        return 0 if result.message == "Installation cancelled" else 1
    installer.maybe_reboot()
    return 0


def cmd_gps_test(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    gps_config = GpsConfig.load(args.gps_config)
    method = "gpsd" if args.gpsd else args.method
    tools = args.install_tools.split() if args.install_tools else []
    options = GpsTestOptions(
        method=method,
        timeout=args.timeout or gps_config.timeout,
        baud=args.baud or gps_config.baudrate,
        device=args.device or gps_config.device,
        install_tools=tools,
        interactive=not args.non_interactive,
        dry_run=args.dry_run,
    )
    result = GpsTester(paths, options).run()
    return 0 if result.success else 1


def cmd_gps_uninstall(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args, needed=not args.list_changes)
    options = GpsUninstallOptions(
        interactive=not args.non_interactive,
        dry_run=args.dry_run,
        keep_packages=args.keep_packages,
        keep_configs=args.keep_configs,
        restore_backups=not args.no_restore_backups,
        force=args.force,
        list_changes=args.list_changes,
        backup_current=args.backup_current,
        restore_only=args.restore_only,
        reboot=not args.no_reboot,
    )
    uninstaller = GpsUninstaller(paths, options)
    result = uninstaller.run()
    if result.changes and not args.list_changes:
        uninstaller.maybe_reboot()
    return 0 if result.success else 1


def cmd_gps_check(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    return 0 if run_diagnostics(paths, GpsConfig.load(args.gps_config)) else 1


def cmd_gps_config(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    gps_config = GpsConfig.load(args.gps_config)
    print_summary("GPS Configuration", gps_config.rows())
    return 0


def cmd_gps_status(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    gps_config = GpsConfig.load(args.gps_config)
    status = check_gpsd_status(gps_config.gpsd_port)
    print_gpsd_status(status, gps_config.gpsd_port)
    return 0 if status.active else 1


def cmd_gps_tools(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    result = install_gps_tools()
    (print_info if result.success else print_error)(result.message)
    return 0 if result.success else 1


def cmd_gps_setup(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    gps_config = GpsConfig.load(args.gps_config)
    result = setup_gps_logging(paths, args.log_dir or Path(gps_config.log_dir))
    (print_info if result.success else print_error)(result.message)
    if result.success and args.configure_gpsd:
        gpsd = configure_gpsd_daemon(paths, gps_config.device, gps_config.gpsd_options)
        (print_info if gpsd.success else print_error)(gpsd.message)
        return 0 if gpsd.success else 1
    return 0 if result.success else 1


def cmd_gps_post_reboot(args, paths: SystemPaths, log_file: Optional[Path]) -> int:
    _require_root(args)
    result = post_reboot(paths, device=args.device, options=args.gpsd_options)
    return 0 if result.success else 1


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-n", "--non-interactive", action="store_true", help="Use defaults, never prompt")
    common.add_argument("-v", "--verbose", action="store_true", help="Show debug output")
    common.add_argument("--log-file", type=Path, help=f"Log file (default: {DEFAULT_LOG_FILE} when root)")
    common.add_argument("--config", type=Path, help="pi-config.conf to use instead of the search path")

    parser = argparse.ArgumentParser(
        prog="pi-config",
        description="Raspberry Pi configuration installer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:", 1)[1],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    p = commands.add_parser("install", parents=[common], help="Full installation")
    p.add_argument("--temp-dir", type=absolute_path, help="Working directory for the repository clone")
    p.add_argument("--repo-url", help="Configuration repository URL")
    p.add_argument("--skip-theme", action="store_true", help="Do not install the theme")
    p.add_argument("--skip-x735", action="store_true", help="Do not install X735 support")
    p.add_argument("--skip-gps", action="store_true", help="Do not install GPS support")
    p.add_argument("--no-reboot", action="store_true", help="Do not reboot when finished")
    p.add_argument("--keep-temp", action="store_true", help="Keep the repository clone")
    p.set_defaults(handler=cmd_install)

    p = commands.add_parser("init", parents=[common], help="Hostname, password, WiFi and repository")
    p.add_argument("--hostname", help="New hostname")
    p.add_argument("--password", help="New password for the pi user")
    p.add_argument("--wifi-ssid", help="WiFi network name")
    p.add_argument("--wifi-password", help="WiFi key (10/26 hex digits for WEP)")
    p.add_argument("--repo-url", help="Configuration repository URL")
    p.add_argument("--temp-dir", type=absolute_path, help="Where to clone the repository")
    p.set_defaults(handler=cmd_init)

    p = commands.add_parser("essentials", parents=[common], help="Essential packages and pi-config.conf")
    p.add_argument("--config-file", type=Path, default=DEFAULT_CONFIG_FILE, help="Configuration file to create")
    p.set_defaults(handler=cmd_essentials)

    p = commands.add_parser("theme", parents=[common], help="Wallpaper and startup video")
    p.add_argument("--repo-dir", type=Path, help="Repository clone holding the splash service template")
    p.add_argument("--image-dir", type=Path, default=DEFAULT_IMAGE_DIR, help="Background images directory")
    p.add_argument("--video-dir", type=Path, default=DEFAULT_VIDEO_DIR, help="Startup videos directory")
    p.add_argument("--user", help="Desktop user owning the wallpaper setting")
    p.set_defaults(handler=cmd_theme)

    p = commands.add_parser("x735", parents=[common], help="X735 power management board")
    p.add_argument("--temp-dir", type=absolute_path, help="Repository clone containing the x735 submodule")
    p.add_argument("--no-reboot", action="store_true", help="Do not offer to reboot")
    p.set_defaults(handler=cmd_x735)

    gps = commands.add_parser("gps", help="GPSBerry GPS tools")
    gps_commands = gps.add_subparsers(dest="gps_command", metavar="ACTION")
    gps_commands.required = True

    gps_common = argparse.ArgumentParser(add_help=False, parents=[common])
    gps_common.add_argument("--gps-config", type=Path, help="gpsberry.conf (default: /etc/gpsberry.conf)")

    p = gps_commands.add_parser("install", parents=[gps_common], help="Install GPS support")
    p.add_argument("-d", "--dry-run", action="store_true", help="Show what would be done")
    p.add_argument("-s", "--skip-update", action="store_true", help="Skip apt update/upgrade")
    p.add_argument("--no-reboot", action="store_true", help="Do not offer to reboot")
    p.set_defaults(handler=cmd_gps_install)

    p = gps_commands.add_parser("test", parents=[gps_common], help="Test the GPS data stream")
    p.add_argument("--method", choices=list(METHODS), help="Test method")
    p.add_argument("--gpsd", action="store_true", help="Shortcut for --method gpsd")
    p.add_argument("--timeout", type=positive_int, help="Seconds to read (default 10)")
    p.add_argument("--baud", type=baud_rate, help="Baud rate (default 9600)")
    p.add_argument("--serial", "--device", dest="device", help="Serial device (default /dev/serial0)")
    p.add_argument(
        "--install-tools",
        nargs="?",
        const=" ".join(DEFAULT_TOOLS),
        help="Install test tools first (default: minicom screen)",
    )
    p.add_argument("-d", "--dry-run", action="store_true", help="Show what would be done")
    p.set_defaults(handler=cmd_gps_test)

    p = gps_commands.add_parser("uninstall", parents=[gps_common], help="Remove GPS support")
    p.add_argument("-d", "--dry-run", action="store_true", help="Show what would be done")
    p.add_argument("--keep-packages", action="store_true", help="Do not remove packages")
    p.add_argument("--keep-configs", action="store_true", help="Do not restore configuration files")
    p.add_argument("--no-restore-backups", action="store_true", help="Do not restore from backups")
    p.add_argument("--force", action="store_true", help="Do not ask, remove optional packages too")
    p.add_argument("--list-changes", action="store_true", help="Only show what is installed")
    p.add_argument("--backup-current", action="store_true", help="Back up the current state first")
    p.add_argument("--restore-only", action="store_true", help="Only restore configuration files")
    p.add_argument("--no-reboot", action="store_true", help="Do not offer to reboot")
    p.set_defaults(handler=cmd_gps_uninstall)

    p = gps_commands.add_parser("check", parents=[gps_common], help="Run GPS diagnostics")
    p.set_defaults(handler=cmd_gps_check)

    p = gps_commands.add_parser("config", parents=[gps_common], help="Show GPS configuration")
    p.set_defaults(handler=cmd_gps_config)

    p = gps_commands.add_parser("status", parents=[gps_common], help="Show gpsd status")
    p.set_defaults(handler=cmd_gps_status)

    p = gps_commands.add_parser("tools", parents=[gps_common], help="Install gpsd and serial test tools")
    p.set_defaults(handler=cmd_gps_tools)

    p = gps_commands.add_parser("setup", parents=[gps_common], help="Set up GPS log directory and rotation")
    p.add_argument("--log-dir", type=Path, help="GPS log directory (default /var/log/gps)")
    p.add_argument("--configure-gpsd", action="store_true", help="Also write /etc/default/gpsd")
    p.set_defaults(handler=cmd_gps_setup)

    p = gps_commands.add_parser("post-reboot", parents=[gps_common], help="Finish GPS setup after reboot")
    p.add_argument("--device", default="/dev/serial0", help="GPS serial device")
    p.add_argument("--gpsd-options", default=GPSD_DEFAULT_OPTIONS, help="Options passed to gpsd")
    p.set_defaults(handler=cmd_gps_post_reboot)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = args.log_file
    if log_file is None and is_root():
        log_file = DEFAULT_LOG_FILE
    active_log = setup_logging(log_file, verbose=args.verbose)
    command = " ".join(filter(None, [args.command, getattr(args, "gps_command", None)]))
    logger.info("pi-config %s: %s", __version__, command)

    paths = SystemPaths.detect()
    try:
        return args.handler(args, paths, active_log)
    except (InstallError, ConfigError, ValueError) as e:
        logger.error("%s", e)
        print_error(str(e))
        if active_log:
            print_info(f"See {active_log} for details")
        return 1
    except KeyboardInterrupt:
        console.print()
        logger.warning("Interrupted by user")
        print_warning("Interrupted")
        return 130
