"""Batch structure-from-motion from video using COLMAP or GLOMAP."""

from .config import PipelineConfig
from .deps import (
    COLMAP,
    FFMPEG,
    GLOMAP,
    DependencyResolver,
    ResolvedTool,
    ToolSpec,
)
from .environment import (
    add_to_path,
    configure_plugin_path,
    publish_tool_paths,
)
from .errors import (
    DependencyError,
    EnvironmentPublishError,
    Polyfjord3DError,
    StepFailedError,
)
from .pipeline import (
    JobResult,
    JobState,
    Pipeline,
    PipelineContext,
    SceneJob,
    process_video,
    run_pipeline,
)
from .variants import ToolVariant, VariantProfile, get_profile

__version__ = "0.1.0"

__all__ = [
    "PipelineConfig",
    "ToolVariant",
    "VariantProfile",
    "get_profile",
    "ToolSpec",
    "ResolvedTool",
    "DependencyResolver",
    "FFMPEG",
    "COLMAP",
    "GLOMAP",
    "add_to_path",
    "configure_plugin_path",
    "publish_tool_paths",
    "Polyfjord3DError",
    "DependencyError",
    "StepFailedError",
    "EnvironmentPublishError",
    "Pipeline",
    "PipelineContext",
    "SceneJob",
    "JobState",
    "JobResult",
    "process_video",
    "run_pipeline",
]
