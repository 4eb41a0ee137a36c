"""Platform-dependent naming and install locations."""

import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "polyfjord3d"

# Substring identifying release assets built for each platform, and the
# archive extensions accepted there. GitHub release names follow the
# "<tool>-<arch>-<os>-<flavour>.<ext>" convention used by COLMAP, GLOMAP
# and the BtbN FFmpeg builds.
PLATFORM_MARKERS = {
    "win32": "win",
    "linux": "linux",
    "darwin": "mac",
}
ARCHIVE_EXTENSIONS = {
    "win32": (".zip",),
    "linux": (".tar.xz", ".tar.gz", ".tgz", ".zip"),
    "darwin": (".zip", ".tar.gz"),
}


def _platform_key(platform: str | None = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return "linux"
    if platform in ("win32", "cygwin"):
        return "win32"
    return platform


def is_windows(platform: str | None = None) -> bool:
    return _platform_key(platform) == "win32"


def exe_suffix(platform: str | None = None) -> str:
    """Return the executable file suffix (".exe" on Windows, "" elsewhere)."""
    return ".exe" if is_windows(platform) else ""


def platform_marker(platform: str | None = None) -> str:
    """Return the asset-name substring for the current platform."""
    key = _platform_key(platform)
    return PLATFORM_MARKERS.get(key, key)


def archive_extensions(platform: str | None = None) -> tuple[str, ...]:
    """Return accepted archive extensions for the current platform."""
    return ARCHIVE_EXTENSIONS.get(_platform_key(platform), (".zip",))


def data_local_dir(platform: str | None = None) -> Path:
    """Return the per-user local data root.

    Windows uses %LOCALAPPDATA%, macOS ~/Library/Application Support, and
    everything else $XDG_DATA_HOME falling back to ~/.local/share.
    """
    key = _platform_key(platform)
    if key == "win32":
        local = os.environ.get("LOCALAPPDATA")
        if local:
            return Path(local)
        return Path.home() / "AppData" / "Local"
    if key == "darwin":
        return Path.home() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".local" / "share"


def get_install_dir(root: str | Path | None = None) -> Path:
    """Return (and create) the tools root shared by all installed dependencies.

    Args:
        root: Explicit tools root. Defaults to ``<data_local_dir>/polyfjord3d``.

    Returns:
        Existing directory path.
    """
    install_dir = Path(root) if root is not None else data_local_dir() / APP_NAME
    if not install_dir.exists():
        logger.debug("Creating tools directory %s", install_dir)
        install_dir.mkdir(parents=True, exist_ok=True)
    return install_dir
