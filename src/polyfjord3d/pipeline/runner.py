"""Pipeline runner: per-video state machine and batch loop."""

import logging
import shutil
import sys
from collections.abc import Iterable
from pathlib import Path

from tqdm import tqdm

from ..config import PipelineConfig
from ..deps.resolver import DependencyResolver
from ..environment import EnvironmentStore
from ..errors import StepFailedError
from .builder import build_pipeline_context
from .commands import CommandRunner, run_step
from .context import PipelineContext
from .job import JobResult, JobState, SceneJob
from .steps import (
    STEP_EXTRACT_FRAMES,
    STEP_FEATURE_EXTRACTOR,
    STEP_MAPPER,
    STEP_MODEL_CONVERTER,
    STEP_SEQUENTIAL_MATCHER,
    extract_features,
    extract_frames,
    export_model,
    map_sparse,
    match_features,
)

logger = logging.getLogger(__name__)

# Steps in order, with the state reached after each one
STEPS = (
    (extract_frames, JobState.FRAMES_EXTRACTED),
    (extract_features, JobState.FEATURES_EXTRACTED),
    (match_features, JobState.FEATURES_MATCHED),
    (map_sparse, JobState.RECONSTRUCTED),
)

REACHED_BEFORE_STEP = {
    STEP_EXTRACT_FRAMES: JobState.PENDING,
    STEP_FEATURE_EXTRACTOR: JobState.FRAMES_EXTRACTED,
    STEP_SEQUENTIAL_MATCHER: JobState.FEATURES_EXTRACTED,
    STEP_MAPPER: JobState.FEATURES_MATCHED,
    STEP_MODEL_CONVERTER: JobState.RECONSTRUCTED,
}


def process_video(video_path: str | Path, ctx: PipelineContext) -> JobResult:
    """Process a single video into its scene directory.

    An existing scene directory is skipped unless ``force`` is set, in
    which case it is removed first. Step failures propagate; the batch
    loop isolates them per video.

    Args:
        video_path: Source video file.
        ctx: Pipeline context from build_pipeline_context().

    Returns:
        JobResult with state DONE or SKIPPED_EXISTING.

    Raises:
        StepFailedError: If a step fails or the video does not exist.
        OSError: If the scene directory cannot be removed or created.
    """
    config = ctx.config
    job = SceneJob.from_video(video_path, config.scenes_dir)
    logger.info("=== Processing %s ===", job.name)

    state = JobState.PENDING
    if job.scene_dir.exists():
        if not config.force:
            logger.info("Skipping %s - already processed.", job.name)
            return JobResult(
                job.video_path, JobState.SKIPPED_EXISTING, JobState.SKIPPED_EXISTING
            )
        logger.info("Scene directory exists. Forcing overwrite.")
        state = JobState.OVERWRITING
        shutil.rmtree(job.scene_dir)

    if not job.video_path.is_file():
        raise StepFailedError(
            STEP_EXTRACT_FRAMES, job.name, reason=f"video not found: {job.video_path}"
        )

    job.create_dirs()

    for step, reached in STEPS:
        step(job, ctx)
        state = reached

    if export_model(job, ctx):
        state = JobState.EXPORTED_TEXT

    logger.info("Finished %s (%s)", job.name, state.value)
    return JobResult(job.video_path, JobState.DONE, state)


def _reached_before(error: Exception) -> JobState:
    """Return the last state a job reached before *error* stopped it."""
    if isinstance(error, StepFailedError):
        return REACHED_BEFORE_STEP.get(error.step.split(" ")[0], JobState.PENDING)
    return JobState.PENDING


def _discard_failed(job: SceneJob) -> None:
    if job.scene_dir.exists():
        logger.info("Removing incomplete scene directory %s", job.scene_dir)
        shutil.rmtree(job.scene_dir, ignore_errors=True)


def run_batch(videos: Iterable[str | Path], ctx: PipelineContext) -> list[JobResult]:
    """Process videos sequentially, isolating failures per video.

    A failing video is logged and recorded; the remaining videos still run.
    Unless ``keep_failed`` is set, the failed video's partial scene
    directory is removed so the next run retries it.

    Args:
        videos: Video files in processing order.
        ctx: Pipeline context.

    Returns:
        One JobResult per video, in order.
    """
    config = ctx.config
    videos = [Path(v) for v in videos]
    results = []

    for video_path in tqdm(
        videos,
        desc="Processing videos",
        disable=config.quiet or not sys.stderr.isatty(),
        unit="video",
    ):
        job = SceneJob.from_video(video_path, config.scenes_dir)
        try:
            results.append(process_video(video_path, ctx))
        except Exception as e:
            if isinstance(e, StepFailedError):
                logger.error("Failed to process %s: %s", video_path, e)
                if e.stderr:
                    logger.debug("%s stderr:\n%s", e.step, e.stderr)
            else:
                logger.exception("Failed to process %s", video_path)
            if not config.keep_failed:
                _discard_failed(job)
            results.append(
                JobResult(video_path, JobState.FAILED, _reached_before(e), e)
            )

    return results


def run_pipeline(
    config: PipelineConfig,
    videos: Iterable[str | Path],
    resolver: DependencyResolver | None = None,
    process_env: EnvironmentStore | None = None,
    persistent_env: EnvironmentStore | None = None,
    run: CommandRunner = run_step,
    context: PipelineContext | None = None,
) -> list[JobResult]:
    """Resolve dependencies, then process every video.

    Dependency errors abort the run before any video is touched; per-video
    errors do not.

    Args:
        config: Run configuration.
        videos: Video files.
        resolver: Dependency resolver override.
        process_env: Environment for subprocesses.
        persistent_env: Persistent PATH store.
        run: Subprocess runner for pipeline steps.
        context: Context from an earlier build_pipeline_context() call.
            When given, dependency resolution is not repeated.

    Returns:
        One JobResult per video.

    Raises:
        DependencyError: If a required tool cannot be resolved.
        OSError: If the scenes directory cannot be created.
    """
    videos = [Path(v) for v in videos]
    ctx = context
    if ctx is None:
        ctx = build_pipeline_context(
            config,
            resolver=resolver,
            process_env=process_env,
            persistent_env=persistent_env,
            run=run,
        )

    config.scenes_path.mkdir(parents=True, exist_ok=True)

    results = run_batch(videos, ctx)

    failed = sum(1 for r in results if r.state == JobState.FAILED)
    skipped = sum(1 for r in results if r.state == JobState.SKIPPED_EXISTING)
    logger.info(
        "All jobs finished - %d done, %d skipped, %d failed",
        len(results) - failed - skipped,
        skipped,
        failed,
    )
    return results


class Pipeline:
    """Video-to-sparse-scene pipeline.

    Primary programmatic entry point.

    Example:
        pipeline = Pipeline(config)
        results = pipeline.run(["clip.mp4"])
    """

    def __init__(self, config: PipelineConfig, **kwargs):
        """Initialize the pipeline with configuration.

        Args:
            config: Run configuration.
            **kwargs: Collaborator overrides forwarded to run_pipeline().
        """
        self.config = config
        self.kwargs = kwargs

    def run(self, videos: Iterable[str | Path]) -> list[JobResult]:
        """Run the pipeline over *videos*.

        Equivalent to calling run_pipeline(config, videos).
        """
        return run_pipeline(self.config, videos, **self.kwargs)
