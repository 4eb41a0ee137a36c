"""Configuration management for the polyfjord3d pipeline."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from .deps.release import DEFAULT_API_URL
from .variants import ToolVariant

logger = logging.getLogger(__name__)

# ffmpeg's -qscale:v range for MJPEG output (1 = best)
MIN_FRAME_QUALITY = 1
MAX_FRAME_QUALITY = 31


class PipelineConfig(BaseModel):
    """Run configuration, read-only once the batch starts.

    Attributes:
        tool: Reconstruction engine variant.
        force: Re-process videos whose scene directory already exists.
        scenes_dir: Root directory holding one scene directory per video.
        ffmpeg_path: Explicit ffmpeg executable (skips resolution search).
        tool_path: Explicit colmap/glomap executable (skips resolution search).
        install_dir: Tools root for downloaded dependencies
            (None = per-user local data directory).
        github_api_url: Base URL of the release-hosting API.
        request_timeout: Network timeout in seconds.
        frame_quality: ffmpeg ``-qscale:v`` for extracted JPEG frames.
        frame_pattern: File name pattern for extracted frames.
        keep_failed: Keep a failed job's partial scene directory.
        broadcast_env_change: Broadcast PATH changes to running programs (Windows).
        quiet: Suppress progress bars.
    """

    model_config = ConfigDict(extra="allow")

    tool: ToolVariant = ToolVariant.GLOMAP
    force: bool = False
    scenes_dir: str = "scenes"
    ffmpeg_path: str | None = None
    tool_path: str | None = None

    install_dir: str | None = None
    github_api_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0

    frame_quality: int = 2
    frame_pattern: str = "frame_%06d.jpg"
    keep_failed: bool = False
    broadcast_env_change: bool = False
    quiet: bool = False

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that the timeout is positive."""
        if v <= 0:
            raise ValueError(f"request_timeout must be positive, got {v}")
        return v

    @field_validator("frame_quality")
    @classmethod
    def validate_frame_quality(cls, v: int) -> int:
        """Validate that frame_quality is within ffmpeg's qscale range."""
        if not MIN_FRAME_QUALITY <= v <= MAX_FRAME_QUALITY:
            raise ValueError(
                f"frame_quality must be in [{MIN_FRAME_QUALITY}, "
                f"{MAX_FRAME_QUALITY}], got {v}"
            )
        return v

    @field_validator("frame_pattern")
    @classmethod
    def validate_frame_pattern(cls, v: str) -> str:
        """Validate that frame_pattern is a numbered image sequence pattern."""
        if "%" not in v or "/" in v or "\\" in v:
            raise ValueError(
                f"frame_pattern must be a file name with a printf-style "
                f"frame number, got {v!r}"
            )
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "PipelineConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in PipelineConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @property
    def scenes_path(self) -> Path:
        return Path(self.scenes_dir)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PipelineConfig":
        """Load configuration from a YAML file.

        Missing fields use their default values.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Loaded configuration.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            ValueError: If validation fails (with all errors collected).
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineConfig":
        """Validate a plain mapping, reformatting errors with YAML-style paths.

        Raises:
            ValueError: If validation fails.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            formatted_errors = format_validation_errors(e)
            raise ValueError(
                f"Configuration validation failed:\n{formatted_errors}"
            ) from None

    def merged(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with non-None overrides applied and re-validated.

        Used to layer command-line flags over a YAML config.
        """
        data = self.model_dump(mode="json")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return self.from_dict(data)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        All fields including defaults are written for explicitness.

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors with YAML-style paths.

    Args:
        error: Pydantic ValidationError.

    Returns:
        Formatted error string with YAML paths and messages.
    """
    lines = []
    for err in error.errors():
        loc = err["loc"]
        path_parts: list[str] = []
        for part in loc:
            if isinstance(part, int) and path_parts:
                path_parts[-1] = f"{path_parts[-1]}[{part}]"
            else:
                path_parts.append(str(part))

        path = ".".join(path_parts)
        msg = err["msg"]
        lines.append(f"  {path}: {msg}")

    return "\n".join(lines)
