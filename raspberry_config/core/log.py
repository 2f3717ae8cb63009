"""
Logging setup for the installers.

Every run appends to the install log in the same layout the shell tooling
used: ``YYYY-mm-dd HH:MM:SS [LEVEL] message``.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from .cli_utils import console, print_warning

DEFAULT_LOG_FILE = Path("/var/log/raspberry-config/install.log")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: Optional[Path] = DEFAULT_LOG_FILE, verbose: bool = False) -> Optional[Path]:
    """Configure the package logger.

    Args:
        log_file: File to append to, or None for no file logging
        verbose: Also echo DEBUG records to the console

    Returns:
        The log file in use, or None if it could not be opened
    """
    root = logging.getLogger("raspberry_config")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    active = None
    if log_file is not None:
        log_file = Path(log_file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            print_warning(f"Cannot write log file {log_file}: {e}")
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            root.addHandler(file_handler)
            active = log_file

    if verbose:
        rich_handler = RichHandler(console=console, show_path=False, markup=False)
        rich_handler.setLevel(logging.DEBUG)
        root.addHandler(rich_handler)

    return active
