"""Command-line interface for the polyfjord3d pipeline."""

import argparse
import logging
import sys
from pathlib import Path

from polyfjord3d.config import PipelineConfig
from polyfjord3d.deps.platform import APP_NAME, data_local_dir
from polyfjord3d.errors import DependencyError, EnvironmentPublishError
from polyfjord3d.variants import ToolVariant

BANNER_WIDTH = 62


def _version() -> str:
    from polyfjord3d import __version__

    return __version__


def configure_logging(debug: bool = False) -> None:
    """Configure root logging once for a CLI run.

    Args:
        debug: If True, set logging to DEBUG level.
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """Build the run configuration from an optional YAML file and CLI flags.

    Flags given on the command line override values from the file.

    Raises:
        SystemExit: If the config file is missing or invalid.
    """
    config = PipelineConfig()
    if args.config is not None:
        if not args.config.exists():
            print(f"Error: Config file not found: {args.config}", file=sys.stderr)
            sys.exit(1)
        try:
            config = PipelineConfig.from_yaml(args.config)
        except Exception as e:
            print(f"Error: Failed to load config: {e}", file=sys.stderr)
            sys.exit(1)

    try:
        return config.merged(
            tool=args.tool,
            scenes_dir=str(args.scenes_dir) if args.scenes_dir else None,
            force=True if args.force else None,
            ffmpeg_path=str(args.ffmpeg_path) if args.ffmpeg_path else None,
            tool_path=str(args.tool_path) if args.tool_path else None,
            install_dir=str(args.install_dir) if args.install_dir else None,
            quiet=True if args.quiet else None,
        )
    except ValueError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)


def run_command(args: argparse.Namespace) -> None:
    """Process the videos named on the command line.

    Exits with status 1 on configuration or dependency errors. Per-video
    failures are reported but do not change the exit status.
    """
    # 1. Configure logging
    configure_logging(args.debug)

    # 2. Load config
    config = load_config(args)

    # 3. Resolve tools, then run pipeline
    from polyfjord3d.pipeline import build_pipeline_context, run_pipeline

    try:
        ctx = build_pipeline_context(config)
    except DependencyError as e:
        print(f"Error: Failed to resolve dependencies: {e}", file=sys.stderr)
        sys.exit(1)
    except EnvironmentPublishError as e:
        print(f"Error: Failed to update PATH: {e}", file=sys.stderr)
        sys.exit(1)

    print("=" * BANNER_WIDTH)
    print(f" Starting on {len(args.videos)} video(s)...")
    print("=" * BANNER_WIDTH)

    try:
        results = run_pipeline(config, args.videos, context=ctx)
    except OSError as e:
        print(f"Error: Cannot create scenes directory: {e}", file=sys.stderr)
        sys.exit(1)

    # 4. Report
    print()
    print("-" * BANNER_WIDTH)
    print(f" All jobs finished - results are in {config.scenes_dir}")
    for result in results:
        if not result.ok:
            print(f"  [FAILED] {result.video_path}: {result.error}")
    print("-" * BANNER_WIDTH)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the main ``polyfjord3d`` command."""
    parser = argparse.ArgumentParser(
        prog="polyfjord3d",
        description=(
            "Convert videos into photogrammetry models with COLMAP or GLOMAP "
            "for 3D camera tracking."
        ),
        epilog="Example:\n    polyfjord3d  video.mp4  video.mov",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "videos",
        type=Path,
        nargs="+",
        help="Video files to process",
    )
    parser.add_argument(
        "-t",
        "--tool",
        choices=[variant.value for variant in ToolVariant],
        default=None,
        help="Photogrammetry tool to use (default: glomap)",
    )
    parser.add_argument(
        "--scenes-dir",
        type=Path,
        default=None,
        help="Directory that receives one scene per video (default: scenes)",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Re-process videos whose scene directory already exists",
    )
    parser.add_argument(
        "--ffmpeg-path",
        type=Path,
        default=None,
        help="Path to the ffmpeg executable",
    )
    parser.add_argument(
        "--tool-path",
        type=Path,
        default=None,
        help="Path to the colmap or glomap executable",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional pipeline config YAML file",
    )
    parser.add_argument(
        "--install-dir",
        type=Path,
        default=None,
        help="Directory where downloaded tools are installed",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Disable progress bars",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_version()}",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the polyfjord3d CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    run_command(args)


def modify_path_command(args: argparse.Namespace) -> None:
    """Persist the install directory and installed tools' directories to PATH."""
    from polyfjord3d.environment import default_persistent_store, publish_tool_paths

    configure_logging()

    print("====== DO NOT CLOSE THIS WINDOW. IT WILL CLOSE AUTOMATICALLY. ======")

    tools_root = args.tools_root or data_local_dir() / APP_NAME
    if not tools_root.exists():
        print("Tools directory not found. Nothing to add to PATH.")
        return

    try:
        store = default_persistent_store(tools_root, args.mode)
        publish_tool_paths(
            store,
            install_dir=args.install_dir,
            tools_root=tools_root,
            broadcast=args.broadcast,
        )
    except (EnvironmentPublishError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def build_modify_path_parser() -> argparse.ArgumentParser:
    """Build the argument parser for ``polyfjord3d-modify-path``."""
    parser = argparse.ArgumentParser(
        prog="polyfjord3d-modify-path",
        description=(
            "Updates environment variables of the tools needed for this pipeline."
        ),
    )
    parser.add_argument(
        "install_dir",
        type=Path,
        help="Installation directory of the main application",
    )
    parser.add_argument(
        "-m",
        "--mode",
        choices=["user", "system"],
        default="user",
        help="Modify PATH for the current user or the whole system (default: user)",
    )
    parser.add_argument(
        "-b",
        "--broadcast",
        action="store_true",
        help="Notify running applications of the environment change (Windows)",
    )
    parser.add_argument(
        "--tools-root",
        type=Path,
        default=None,
        help="Tools directory to scan (default: the per-user data directory)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_version()}",
    )
    return parser


def modify_path_main(argv: list[str] | None = None) -> None:
    """Entry point for the ``polyfjord3d-modify-path`` command."""
    parser = build_modify_path_parser()
    args = parser.parse_args(argv)
    modify_path_command(args)


if __name__ == "__main__":
    main()
