"""External tool resolution: release lookup, download, install, and search."""

from .archive import ArchiveInstaller, TqdmProgress, download_file, extract_archive
from .locator import find_executable
from .platform import data_local_dir, exe_suffix, get_install_dir, platform_marker
from .release import Asset, GitHubReleaseSource, Release, filter_assets
from .resolver import (
    COLMAP,
    FFMPEG,
    GLOMAP,
    KNOWN_TOOLS,
    DependencyResolver,
    ResolvedTool,
    ToolSpec,
)
from .selection import prompt_for_choice

__all__ = [
    "ArchiveInstaller",
    "Asset",
    "COLMAP",
    "DependencyResolver",
    "FFMPEG",
    "GLOMAP",
    "GitHubReleaseSource",
    "KNOWN_TOOLS",
    "Release",
    "ResolvedTool",
    "ToolSpec",
    "TqdmProgress",
    "data_local_dir",
    "download_file",
    "exe_suffix",
    "extract_archive",
    "filter_assets",
    "find_executable",
    "get_install_dir",
    "platform_marker",
    "prompt_for_choice",
]
