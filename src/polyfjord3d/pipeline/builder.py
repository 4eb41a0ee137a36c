"""Pipeline context builder: dependency resolution and environment setup."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..config import PipelineConfig
from ..deps.archive import ArchiveInstaller, TqdmProgress
from ..deps.release import GitHubReleaseSource
from ..deps.resolver import COLMAP, FFMPEG, DependencyResolver, ResolvedTool
from ..environment import (
    EnvironmentStore,
    ProcessEnvironment,
    configure_plugin_path,
    default_persistent_store,
    publish_tool_paths,
)
from ..variants import get_profile
from .commands import CommandRunner, run_step
from .context import PipelineContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTools:
    """Executables resolved for one run."""

    ffmpeg: ResolvedTool
    tool: ResolvedTool
    colmap: ResolvedTool

    @property
    def any_fresh(self) -> bool:
        return any(
            t.freshly_installed for t in (self.ffmpeg, self.tool, self.colmap)
        )


def make_resolver(config: PipelineConfig) -> DependencyResolver:
    """Build the default resolver for *config* (GitHub + tqdm progress)."""
    return DependencyResolver(
        install_root=config.install_dir,
        release_source=GitHubReleaseSource(
            api_url=config.github_api_url, timeout=config.request_timeout
        ),
        installer=ArchiveInstaller(
            progress_factory=lambda name: TqdmProgress(
                name, disable=True if config.quiet else None
            ),
            timeout=config.request_timeout,
        ),
    )


def resolve_dependencies(
    config: PipelineConfig, resolver: DependencyResolver
) -> ResolvedTools:
    """Resolve ffmpeg, the selected reconstruction tool and, if needed, COLMAP.

    Raises:
        DependencyError: If any tool cannot be resolved. This is fatal for
            the whole run.
    """
    profile = get_profile(config.tool)

    ffmpeg = resolver.resolve(FFMPEG, config.ffmpeg_path)
    tool = resolver.resolve(profile.tool, config.tool_path)

    if profile.needs_companion:
        logger.info(
            "%s pipeline requires COLMAP for some steps.",
            profile.variant.value.upper(),
        )
        colmap = resolver.resolve(COLMAP)
    else:
        colmap = tool

    return ResolvedTools(ffmpeg=ffmpeg, tool=tool, colmap=colmap)


def build_pipeline_context(
    config: PipelineConfig,
    resolver: DependencyResolver | None = None,
    process_env: EnvironmentStore | None = None,
    persistent_env: EnvironmentStore | None = None,
    run: CommandRunner = run_step,
) -> PipelineContext:
    """Perform one-time setup before the batch loop.

    Resolves all tools, persists their directories to PATH if anything was
    freshly installed (at most once per run), and points the reconstruction
    tool's plugin loader at COLMAP's bundled plugins.

    Args:
        config: Run configuration.
        resolver: Dependency resolver (defaults to make_resolver(config)).
        process_env: Environment inherited by subprocesses
            (defaults to ``os.environ``).
        persistent_env: Persistent PATH store; only created when needed
            (defaults to the platform store).
        run: Subprocess runner for pipeline steps.

    Returns:
        PipelineContext with resolved executables.

    Raises:
        DependencyError: If resolution fails.
        EnvironmentPublishError: If PATH cannot be persisted.
    """
    resolver = resolver or make_resolver(config)
    process_env = process_env or ProcessEnvironment()
    profile = get_profile(config.tool)

    tools = resolve_dependencies(config, resolver)

    if tools.any_fresh:
        logger.info("Need to modify PATH environment variable.")
        if persistent_env is None:
            persistent_env = default_persistent_store(resolver.install_root)
        publish_tool_paths(
            persistent_env,
            install_dir=Path(tools.colmap.executable_path).parent,
            tools_root=resolver.install_root,
            broadcast=config.broadcast_env_change,
        )

    configure_plugin_path(process_env, resolver.install_dir_for(COLMAP))

    return PipelineContext(
        config=config,
        profile=profile,
        ffmpeg=tools.ffmpeg.executable_path,
        tool=tools.tool.executable_path,
        colmap=tools.colmap.executable_path,
        num_threads=os.cpu_count() or 1,
        run=run,
    )
