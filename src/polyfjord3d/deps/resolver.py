"""Ordered fallback search for the external tools the pipeline runs."""

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..errors import (
    DependencyError,
    InstallIOError,
    InstallVerificationError,
    InvalidOverrideError,
    NoAssetsError,
    NoSelectionError,
)
from .archive import ArchiveInstaller
from .locator import find_executable
from .platform import get_install_dir
from .release import GitHubReleaseSource, filter_assets
from .selection import Selector, prompt_for_choice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """Static description of one external dependency.

    Attributes:
        logical_name: Executable base name, e.g. "colmap".
        repository_id: GitHub "owner/name" publishing release builds.
        install_dir_name: Sub-directory of the tools root it installs into.
    """

    logical_name: str
    repository_id: str
    install_dir_name: str


@dataclass(frozen=True)
class ResolvedTool:
    """Outcome of resolving a ToolSpec.

    Attributes:
        executable_path: Path to the executable to invoke.
        freshly_installed: True only if this run downloaded and installed it.
    """

    executable_path: Path
    freshly_installed: bool = False


FFMPEG = ToolSpec("ffmpeg", "BtbN/FFmpeg-Builds", "ffmpeg")
COLMAP = ToolSpec("colmap", "colmap/colmap", "colmap")
GLOMAP = ToolSpec("glomap", "colmap/glomap", "glomap")

KNOWN_TOOLS = (COLMAP, GLOMAP, FFMPEG)


class DependencyResolver:
    """Resolve tool executables: override, PATH, tools root, then install.

    Each stage is a method returning a ResolvedTool or None; the first
    non-None result wins. Collaborators are injectable so tests can run
    without network access, a real PATH, or a human at the keyboard.

    Args:
        install_root: Tools root (defaults to the per-user data directory).
        release_source: Release lookup (defaults to GitHubReleaseSource).
        installer: Asset installer (defaults to ArchiveInstaller).
        selector: Interactive chooser (defaults to prompt_for_choice).
        which: PATH search function (defaults to shutil.which).
    """

    def __init__(
        self,
        install_root: str | Path | None = None,
        release_source: GitHubReleaseSource | None = None,
        installer: ArchiveInstaller | None = None,
        selector: Selector | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self._install_root = Path(install_root) if install_root is not None else None
        self.release_source = release_source or GitHubReleaseSource()
        self.installer = installer or ArchiveInstaller()
        self.selector = selector or prompt_for_choice
        self.which = which

    @property
    def install_root(self) -> Path:
        try:
            root = get_install_dir(self._install_root)
        except OSError as e:
            raise InstallIOError(f"Cannot create tools directory: {e}") from e
        self._install_root = root
        return root

    def install_dir_for(self, spec: ToolSpec) -> Path:
        return self.install_root / spec.install_dir_name

    def resolve(
        self, spec: ToolSpec, explicit_override: str | Path | None = None
    ) -> ResolvedTool:
        """Resolve *spec* to an executable.

        Args:
            spec: Tool to resolve.
            explicit_override: User-supplied executable path. When given it
                must exist; no other stage is tried.

        Returns:
            The resolved tool.

        Raises:
            DependencyError: Subclass tagged with the failing stage and tool.
        """
        lookups = [
            lambda: self._from_override(spec, explicit_override),
            lambda: self._from_system_path(spec),
            lambda: self._from_install_dir(spec),
        ]
        try:
            for lookup in lookups:
                resolved = lookup()
                if resolved is not None:
                    return resolved
            return self._install(spec)
        except DependencyError as e:
            if e.tool is None:
                e.tool = spec.logical_name
            raise

    def _from_override(
        self, spec: ToolSpec, override: str | Path | None
    ) -> ResolvedTool | None:
        if override is None:
            return None
        path = Path(override)
        if not path.exists():
            raise InvalidOverrideError(f"Provided path does not exist: {path}")
        logger.info("Using %s from command line: %s", spec.logical_name, path)
        return ResolvedTool(path, freshly_installed=False)

    def _from_system_path(self, spec: ToolSpec) -> ResolvedTool | None:
        found = self.which(spec.logical_name)
        if not found:
            logger.debug("%s not found in PATH", spec.logical_name)
            return None
        logger.info("Found %s in PATH: %s", spec.logical_name, found)
        return ResolvedTool(Path(found), freshly_installed=False)

    def _from_install_dir(self, spec: ToolSpec) -> ResolvedTool | None:
        install_dir = self.install_dir_for(spec)
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallIOError(f"Cannot create {install_dir}: {e}") from e

        found = find_executable(install_dir, spec.logical_name)
        if found is None:
            logger.debug("%s not found in %s", spec.logical_name, install_dir)
            return None
        logger.info(
            "Found %s in %s: %s", spec.logical_name, spec.install_dir_name, found
        )
        return ResolvedTool(found, freshly_installed=False)

    def _install(self, spec: ToolSpec) -> ResolvedTool:
        install_dir = self.install_dir_for(spec)
        logger.info(
            "%s not found in PATH or at (%s)", spec.logical_name, install_dir
        )
        logger.info("Fetching latest releases from GitHub...")

        release = self.release_source.latest_release(spec.repository_id)
        logger.info("Latest release is %s", release.tag_name)

        candidates = filter_assets(release.assets)
        if not candidates:
            raise NoAssetsError(
                f"No suitable assets for this platform in release "
                f"{release.tag_name} of {spec.repository_id}. "
                f"Please install {spec.logical_name} manually."
            )

        try:
            choice = self.selector([asset.name for asset in candidates])
        except EOFError as e:
            raise NoSelectionError(
                "Input closed before a package was chosen"
            ) from e
        asset = candidates[choice]

        self.installer.fetch_and_install(asset, install_dir)

        found = find_executable(install_dir, spec.logical_name)
        if found is None:
            raise InstallVerificationError(
                f"Failed to find executable after installing {asset.name} "
                f"into {install_dir}"
            )
        logger.info("%s installed successfully.", spec.logical_name)
        return ResolvedTool(found, freshly_installed=True)
