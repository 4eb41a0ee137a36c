"""Command construction and execution for each reconstruction step.

Every step builds its argument list from the job layout and the variant
profile, so the step order in the runner stays variant-agnostic.
"""

import logging
from pathlib import Path

from .context import PipelineContext
from .job import SceneJob

logger = logging.getLogger(__name__)

STEP_EXTRACT_FRAMES = "extract_frames"
STEP_FEATURE_EXTRACTOR = "feature_extractor"
STEP_SEQUENTIAL_MATCHER = "sequential_matcher"
STEP_MAPPER = "mapper"
STEP_MODEL_CONVERTER = "model_converter"


def frame_extraction_command(job: SceneJob, ctx: PipelineContext) -> list[str | Path]:
    return [
        ctx.ffmpeg,
        "-i",
        job.video_path,
        "-qscale:v",
        str(ctx.config.frame_quality),
        job.images_dir / ctx.config.frame_pattern,
    ]


def feature_extraction_command(
    job: SceneJob, ctx: PipelineContext
) -> list[str | Path]:
    return [
        ctx.colmap,
        "feature_extractor",
        "--database_path",
        job.database_path,
        "--image_path",
        job.images_dir,
        *ctx.profile.feature_extractor_flags,
    ]


def matching_command(job: SceneJob, ctx: PipelineContext) -> list[str | Path]:
    return [
        ctx.colmap,
        "sequential_matcher",
        "--database_path",
        job.database_path,
        *ctx.profile.matcher_flags,
    ]


def mapper_command(job: SceneJob, ctx: PipelineContext) -> list[str | Path]:
    cmd: list[str | Path] = [
        ctx.tool,
        "mapper",
        "--database_path",
        job.database_path,
        "--image_path",
        job.images_dir,
        "--output_path",
        job.sparse_dir,
    ]
    if ctx.profile.mapper_threads:
        cmd += ["--Mapper.num_threads", str(ctx.num_threads)]
    return cmd


def model_converter_command(
    colmap: Path, input_path: Path, output_path: Path
) -> list[str | Path]:
    return [
        colmap,
        "model_converter",
        "--input_path",
        input_path,
        "--output_path",
        output_path,
        "--output_type",
        "TXT",
    ]


def export_commands(job: SceneJob, ctx: PipelineContext) -> list[list[str | Path]]:
    """Return the TXT conversion passes for the variant.

    With two passes the model is first rewritten in place (GLOMAP writes a
    binary layout COLMAP only reads after a self-to-self conversion), then
    exported next to it.
    """
    model = job.model_dir
    passes = [
        model_converter_command(ctx.colmap, model, model)
        for _ in range(ctx.profile.export_passes - 1)
    ]
    passes.append(model_converter_command(ctx.colmap, model, job.sparse_dir))
    return passes


def extract_frames(job: SceneJob, ctx: PipelineContext) -> None:
    """Decode the video into numbered JPEG frames in ``images/``."""
    logger.info("[1/4] Extracting frames...")
    ctx.run(frame_extraction_command(job, ctx), job.name, STEP_EXTRACT_FRAMES)


def extract_features(job: SceneJob, ctx: PipelineContext) -> None:
    """Detect keypoints in every frame into ``database.db``."""
    logger.info("[2/4] Feature extraction...")
    ctx.run(feature_extraction_command(job, ctx), job.name, STEP_FEATURE_EXTRACTOR)


def match_features(job: SceneJob, ctx: PipelineContext) -> None:
    """Match features between neighbouring frames."""
    logger.info("[3/4] Feature matching...")
    ctx.run(matching_command(job, ctx), job.name, STEP_SEQUENTIAL_MATCHER)


def map_sparse(job: SceneJob, ctx: PipelineContext) -> None:
    """Run sparse reconstruction into ``sparse/``."""
    logger.info("[4/4] Sparse reconstruction...")
    ctx.run(mapper_command(job, ctx), job.name, STEP_MAPPER)


def export_model(job: SceneJob, ctx: PipelineContext) -> bool:
    """Convert ``sparse/0`` to TXT, if the mapper produced it.

    Returns:
        True if an export ran, False if there was no model to export.
    """
    if not job.model_dir.exists():
        logger.warning(
            "%s: mapper produced no model at %s, skipping export",
            job.name,
            job.model_dir,
        )
        return False

    logger.info("Exporting model to TXT...")
    passes = export_commands(job, ctx)
    for i, command in enumerate(passes, start=1):
        step = STEP_MODEL_CONVERTER
        if i < len(passes):
            step = f"{STEP_MODEL_CONVERTER} (for {ctx.profile.variant.value})"
        ctx.run(command, job.name, step)
    return True
