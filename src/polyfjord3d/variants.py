"""Reconstruction engine variants and their per-step behavior."""

from dataclasses import dataclass, field
from enum import Enum

from .deps.resolver import COLMAP, GLOMAP, ToolSpec


class ToolVariant(str, Enum):
    """Sparse reconstruction engine.

    - COLMAP: incremental mapper; runs every step itself.
    - GLOMAP: global mapper; needs COLMAP as companion for feature
      extraction, matching and model conversion.
    """

    COLMAP = "colmap"
    GLOMAP = "glomap"


@dataclass(frozen=True)
class VariantProfile:
    """Declarative differences between reconstruction variants.

    Attributes:
        variant: The variant this profile describes.
        tool: Dependency spec of the mapper executable.
        needs_companion: Whether COLMAP must be resolved separately.
        feature_extractor_flags: Extra ``feature_extractor`` arguments.
        matcher_flags: Extra ``sequential_matcher`` arguments.
        mapper_threads: Whether the mapper accepts ``--Mapper.num_threads``.
        export_passes: Number of ``model_converter`` TXT passes (2 means a
            self-to-self pass on ``sparse/0`` precedes the final export).
    """

    variant: ToolVariant
    tool: ToolSpec
    needs_companion: bool
    feature_extractor_flags: tuple[str, ...] = field(default_factory=tuple)
    matcher_flags: tuple[str, ...] = field(default_factory=tuple)
    mapper_threads: bool = False
    export_passes: int = 1


PROFILES = {
    ToolVariant.COLMAP: VariantProfile(
        variant=ToolVariant.COLMAP,
        tool=COLMAP,
        needs_companion=False,
        feature_extractor_flags=(
            "--ImageReader.single_camera",
            "1",
            "--SiftExtraction.use_gpu",
            "1",
            "--SiftExtraction.max_image_size",
            "4096",
        ),
        matcher_flags=("--SequentialMatching.overlap", "15"),
        mapper_threads=True,
        export_passes=1,
    ),
    ToolVariant.GLOMAP: VariantProfile(
        variant=ToolVariant.GLOMAP,
        tool=GLOMAP,
        needs_companion=True,
        export_passes=2,
    ),
}


def get_profile(variant: ToolVariant | str) -> VariantProfile:
    """Return the behavior table entry for *variant*.

    Raises:
        ValueError: If *variant* is not a known variant name.
    """
    return PROFILES[ToolVariant(variant)]
