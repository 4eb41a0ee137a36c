"""Pipeline context dataclass for resolved, run-constant data."""

from dataclasses import dataclass
from pathlib import Path

from ..config import PipelineConfig
from ..variants import VariantProfile
from .commands import CommandRunner, run_step


@dataclass
class PipelineContext:
    """Data that is constant across all videos of a run.

    Created once by build_pipeline_context() and reused for every video.

    Attributes:
        config: Run configuration.
        profile: Behavior table entry of the selected variant.
        ffmpeg: Frame extractor executable.
        tool: Mapper executable (colmap or glomap).
        colmap: COLMAP executable used for extraction, matching and export
            (same as ``tool`` for the COLMAP variant).
        num_threads: Logical CPU count passed to mappers that accept it.
        run: Subprocess runner for pipeline steps.
    """

    config: PipelineConfig
    profile: VariantProfile
    ffmpeg: Path
    tool: Path
    colmap: Path
    num_threads: int = 1
    run: CommandRunner = run_step
