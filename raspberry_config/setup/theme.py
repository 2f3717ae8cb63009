"""
Desktop theme: wallpaper and OpenAuto Pro splash video.

Images and videos are used from the directories they are deployed to; this
module only selects and applies them.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from ..core.cli_utils import (
    get_choice,
    get_input,
    print_header,
    print_info,
    print_step,
    print_success,
    print_warning,
)
from ..core.paths import SystemPaths
from ..core.system import InstallError, StepResult, daemon_reload, manage_service, run_command, write_file

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_DIR = Path("/usr/share/background")
DEFAULT_VIDEO_DIR = Path("/usr/share/openautopro")
SPLASH_SERVICE = "openautopro.splash.service"
SPLASH_ENV_KEY = "OPENAUTO_SPLASH_VIDEOS"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".gif")
VIDEO_EXTENSIONS = (".h264",)
WALLPAPER_MODES = ["center", "tile", "stretch", "fit", "fill", "zoom"]
DEFAULT_WALLPAPER_MODE = "stretch"


def _find_files(directory: Path, extensions: Tuple[str, ...]) -> List[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in extensions)


def find_images(directory: Path) -> List[Path]:
    return _find_files(directory, IMAGE_EXTENSIONS)


def find_videos(directory: Path) -> List[Path]:
    return _find_files(directory, VIDEO_EXTENSIONS)


# =============================================================================
# Wallpaper
# =============================================================================


def select_wallpaper(images: List[Path], interactive: bool = True) -> Optional[Tuple[Path, str]]:
    """Choose an image and a wallpaper mode.

    Returns:
        (image, mode), or None when there is nothing to apply
    """
    if not images:
        if not interactive:
            return None
        path = get_input("No images found. Path to an image (blank to skip)", "")
        if not path:
            return None
        image = Path(path)
        if not image.is_file():
            print_warning(f"{image} does not exist")
            return None
    else:
        index = get_choice("Available background images:", [p.name for p in images], interactive=interactive)
        image = images[index]

    mode_index = get_choice(
        "Wallpaper mode:",
        WALLPAPER_MODES,
        default=WALLPAPER_MODES.index(DEFAULT_WALLPAPER_MODE) + 1,
        interactive=interactive,
    )
    return image, WALLPAPER_MODES[mode_index]


def set_wallpaper(image: Path, mode: str = DEFAULT_WALLPAPER_MODE, user: Optional[str] = None) -> Tuple[bool, str]:
    """Apply ``image`` to the desktop on display :0.

    Args:
        image: Image file
        mode: One of WALLPAPER_MODES
        user: Desktop user to run pcmanfm as (when invoked as root)
    """
    if mode not in WALLPAPER_MODES:
        return False, f"Invalid wallpaper mode {mode}. Use: {', '.join(WALLPAPER_MODES)}"

    cmd = ["pcmanfm", f"--set-wallpaper={image}", f"--wallpaper-mode={mode}"]
    if user:
        cmd = ["sudo", "-u", user, "env", "DISPLAY=:0"] + cmd
        ret, _, stderr = run_command(cmd, timeout=30)
    else:
        ret, _, stderr = run_command(cmd, timeout=30, env={"DISPLAY": ":0"})

    if ret != 0:
        return False, f"Failed to set wallpaper: {stderr[:80]}"
    return True, f"Wallpaper set to {image.name} ({mode})"


# =============================================================================
# Splash video
# =============================================================================


def render_splash_service(template: str, video: Path) -> str:
    """Point the splash unit at ``video``.

    Exactly one active OPENAUTO_SPLASH_VIDEOS line remains; any others are
    commented out. Without one, it is added after ``[Service]``.
    """
    active = f'Environment="{SPLASH_ENV_KEY}={video}"'
    out = []
    placed = False
    for line in template.splitlines():
        stripped = line.lstrip("#").strip()
        if stripped.startswith(f'Environment="{SPLASH_ENV_KEY}='):
            if not placed:
                out.append(active)
                placed = True
            elif line.startswith("#"):
                out.append(line)
            else:
                out.append("#" + line)
            continue
        out.append(line)

    if not placed:
        for i, line in enumerate(out):
            if line.strip() == "[Service]":
                out.insert(i + 1, active)
                placed = True
                break
    if not placed:
        out += ["", "[Service]", active]

    return "\n".join(out) + "\n"


def install_splash_service(template_path: Path, video: Path, paths: SystemPaths) -> StepResult:
    try:
        template = Path(template_path).read_text()
    except OSError as e:
        return StepResult(success=False, message=f"Cannot read splash service template: {e}")

    write_file(paths.systemd_dir / SPLASH_SERVICE, render_splash_service(template, video))

    ok, msg = daemon_reload()
    if not ok:
        return StepResult(success=False, message=msg)
    ok, msg = manage_service(SPLASH_SERVICE, "enable")
    if not ok:
        return StepResult(success=False, message=msg)
    return StepResult(
        success=True, message=f"Splash video set to {video.name}", changes=[SPLASH_SERVICE], requires_reboot=True
    )


# =============================================================================
# Theme sequence
# =============================================================================


def install_theme(
    repo_dir: Path,
    paths: SystemPaths,
    interactive: bool = True,
    image_dir: Path = DEFAULT_IMAGE_DIR,
    video_dir: Path = DEFAULT_VIDEO_DIR,
    user: Optional[str] = None,
) -> StepResult:
    """Apply wallpaper and splash video.

    Raises:
        InstallError: if no wallpaper can be applied
    """
    print_header("Theme Installation", "Wallpaper and startup video")
    result = StepResult(success=True, message="Theme installed")

    print_step(1, 2, "Configuring wallpaper")
    images = find_images(image_dir)
    print_info(f"Found {len(images)} image(s) in {image_dir}")
    selection = select_wallpaper(images, interactive=interactive)
    if selection is None:
        raise InstallError(f"No background images available in {image_dir}")
    ok, msg = set_wallpaper(selection[0], selection[1], user=user)
    if not ok:
        raise InstallError(msg)
    print_success(msg)
    result.changes.append("wallpaper")

    print_step(2, 2, "Configuring startup video")
    videos = find_videos(video_dir)
    if not videos:
        print_warning(f"No .h264 videos found in {video_dir}, skipping startup video")
        return result

    index = get_choice("Available startup videos:", [v.name for v in videos], interactive=interactive)
    splash = install_splash_service(Path(repo_dir) / "theme" / SPLASH_SERVICE, videos[index], paths)
    if not splash.success:
        print_warning(splash.message)
        result.errors.append(splash.message)
        return result
    print_success(splash.message)
    result.changes += splash.changes
    result.requires_reboot = True
    print_info("Reboot for the startup video change to take effect")
    return result
