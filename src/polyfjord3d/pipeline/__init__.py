"""Pipeline orchestration package for video-to-sparse-scene reconstruction.

Provides the pipeline context, builder, per-video state machine, and batch
runner.
"""

from .builder import build_pipeline_context, resolve_dependencies
from .commands import run_step
from .context import PipelineContext
from .job import JobResult, JobState, SceneJob
from .runner import Pipeline, process_video, run_batch, run_pipeline

__all__ = [
    "Pipeline",
    "PipelineContext",
    "SceneJob",
    "JobState",
    "JobResult",
    "build_pipeline_context",
    "resolve_dependencies",
    "process_video",
    "run_batch",
    "run_pipeline",
    "run_step",
]
