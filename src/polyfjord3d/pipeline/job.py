"""Per-video scene job layout and lifecycle states."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class JobState(str, Enum):
    """Lifecycle of a single video's scene job."""

    PENDING = "pending"
    SKIPPED_EXISTING = "skipped_existing"
    OVERWRITING = "overwriting"
    FRAMES_EXTRACTED = "frames_extracted"
    FEATURES_EXTRACTED = "features_extracted"
    FEATURES_MATCHED = "features_matched"
    RECONSTRUCTED = "reconstructed"
    EXPORTED_TEXT = "exported_text"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SceneJob:
    """Output layout for one video, derived from its file stem.

    Attributes:
        video_path: Source video.
        scene_dir: ``<scenes_root>/<stem>``.
        images_dir: Extracted frames.
        sparse_dir: Mapper output and TXT export.
        database_path: COLMAP feature database.
    """

    video_path: Path
    scene_dir: Path
    images_dir: Path
    sparse_dir: Path
    database_path: Path

    @classmethod
    def from_video(cls, video_path: str | Path, scenes_root: str | Path) -> "SceneJob":
        video_path = Path(video_path)
        scene_dir = Path(scenes_root) / video_path.stem
        return cls(
            video_path=video_path,
            scene_dir=scene_dir,
            images_dir=scene_dir / "images",
            sparse_dir=scene_dir / "sparse",
            database_path=scene_dir / "database.db",
        )

    @property
    def name(self) -> str:
        return self.video_path.stem

    @property
    def model_dir(self) -> Path:
        """First reconstructed model written by the mapper."""
        return self.sparse_dir / "0"

    def create_dirs(self) -> None:
        """Create the job root, ``images/`` and ``sparse/`` together."""
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.sparse_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class JobResult:
    """What happened to one video in a batch.

    Attributes:
        video_path: Source video.
        state: Final job state (DONE, SKIPPED_EXISTING or FAILED).
        last_state: Last state reached before finishing or failing.
        error: Failure, if any.
    """

    video_path: Path
    state: JobState
    last_state: JobState
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.state != JobState.FAILED
