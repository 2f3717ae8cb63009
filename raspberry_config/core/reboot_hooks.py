"""
One-shot post-reboot hooks kept in root's crontab.

A hook is an ``@reboot`` line tagged with a marker comment so it can be
found again. The hooked command removes its own line when it runs.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .system import BACKUP_TIMESTAMP_FORMAT, run_command

logger = logging.getLogger(__name__)


def read_crontab() -> List[str]:
    """Current crontab lines. A user without a crontab has none."""
    ret, stdout, _ = run_command(["crontab", "-l"])
    if ret != 0:
        return []
    return stdout.splitlines()


def write_crontab(lines: List[str]) -> Tuple[bool, str]:
    content = "\n".join(lines)
    if content:
        content += "\n"
    ret, _, stderr = run_command(["crontab", "-"], input_text=content)
    if ret != 0:
        return False, f"Failed to write crontab: {stderr[:80]}"
    return True, "Crontab updated"


def backup_crontab(backup_dir: Path) -> Optional[Path]:
    """Save the current crontab as ``crontab.backup.<timestamp>``."""
    ret, stdout, _ = run_command(["crontab", "-l"])
    if ret != 0:
        logger.info("No existing crontab to back up")
        return None

    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    backup = backup_dir / f"crontab.backup.{datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)}"
    backup.write_text(stdout)
    logger.info("Crontab backed up to %s", backup)
    return backup


def has_reboot_hook(marker: str) -> bool:
    return any(marker in line for line in read_crontab())


def add_reboot_hook(command: str, marker: str) -> Tuple[bool, str]:
    """Register ``command`` to run once at next boot.

    Args:
        command: Command line run by cron at boot
        marker: Tag identifying this hook

    Returns:
        Tuple of (success, message)
    """
    lines = read_crontab()
    if any(marker in line for line in lines):
        return True, "Post-reboot hook already registered"

    lines.append(f"@reboot {command}  # {marker}")
    ok, msg = write_crontab(lines)
    if not ok:
        return False, msg
    logger.info("Registered post-reboot hook %s", marker)
    return True, "Post-reboot hook registered"


def remove_reboot_hooks(marker: str) -> int:
    """Drop every crontab line containing ``marker``. Returns lines removed."""
    lines = read_crontab()
    kept = [line for line in lines if marker not in line]
    removed = len(lines) - len(kept)
    if removed:
        ok, msg = write_crontab(kept)
        if not ok:
            logger.error(msg)
            return 0
        logger.info("Removed %d post-reboot hook line(s)", removed)
    return removed


def restore_crontab(backup: Path) -> Tuple[bool, str]:
    try:
        lines = Path(backup).read_text().splitlines()
    except OSError as e:
        return False, f"Cannot read {backup}: {e}"
    ok, msg = write_crontab(lines)
    if not ok:
        return False, msg
    return True, f"Crontab restored from {Path(backup).name}"
