"""Shared pytest fixtures for polyfjord3d tests."""

from pathlib import Path

import pytest

from polyfjord3d.config import PipelineConfig
from polyfjord3d.deps.locator import executable_candidates
from polyfjord3d.deps.resolver import DependencyResolver
from polyfjord3d.environment import InMemoryEnvironment
from polyfjord3d.errors import StepFailedError
from polyfjord3d.pipeline.context import PipelineContext
from polyfjord3d.variants import get_profile

MODEL_FILES = ("cameras.bin", "images.bin", "points3D.bin")
TEXT_FILES = ("cameras.txt", "images.txt", "points3D.txt")


def _arg_after(args: list[str], flag: str) -> Path:
    return Path(args[args.index(flag) + 1])


class FakeRunner:
    """Stand-in for run_step that writes each step's expected outputs.

    Attributes:
        calls: (video_name, step_name, args) for every invocation, in order.
        fail_on: (video_name, step_name) pairs that raise StepFailedError.
        produce_model: If False, the mapper writes no ``sparse/0``.
    """

    def __init__(self):
        self.calls: list[tuple[str, str, list[str]]] = []
        self.fail_on: set[tuple[str, str]] = set()
        self.produce_model = True
        self.frame_count = 3

    def steps(self, video_name: str | None = None) -> list[str]:
        return [
            step for video, step, _ in self.calls if video_name in (None, video)
        ]

    def command(self, step_name: str) -> list[str]:
        for _, step, args in self.calls:
            if step == step_name:
                return args
        raise KeyError(step_name)

    def __call__(self, command, video_name: str, step_name: str) -> None:
        args = [str(part) for part in command]
        self.calls.append((video_name, step_name, args))

        if (video_name, step_name) in self.fail_on:
            raise StepFailedError(
                step_name, video_name, stderr="simulated failure\n", returncode=1
            )

        tool = args[1] if len(args) > 1 else ""
        if step_name == "extract_frames":
            images_dir = Path(args[-1]).parent
            for i in range(1, self.frame_count + 1):
                (images_dir / f"frame_{i:06d}.jpg").write_bytes(b"\xff\xd8\xff")
        elif tool == "feature_extractor":
            _arg_after(args, "--database_path").write_bytes(b"SQLite format 3\x00")
        elif tool == "mapper" and self.produce_model:
            model_dir = _arg_after(args, "--output_path") / "0"
            model_dir.mkdir(parents=True, exist_ok=True)
            for name in MODEL_FILES:
                (model_dir / name).write_bytes(b"\x00")
        elif tool == "model_converter":
            output = _arg_after(args, "--output_path")
            for name in TEXT_FILES:
                (output / name).write_text("# text model\n")


def make_tool_file(directory: Path, name: str, in_bin: bool = True) -> Path:
    """Create an empty executable file where find_executable looks for it."""
    candidates = executable_candidates(directory, name)
    path = candidates[1] if in_bin else candidates[0]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    path.chmod(0o755)
    return path


@pytest.fixture
def make_tool():
    """Factory creating a fake tool executable (see make_tool_file)."""
    return make_tool_file


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Subprocess runner that fakes every external step."""
    return FakeRunner()


@pytest.fixture
def fake_tools(tmp_path: Path) -> dict[str, Path]:
    """Create fake ffmpeg, colmap and glomap executables on a fake PATH.

    Args:
        tmp_path: Pytest temporary directory fixture.

    Returns:
        Mapping of tool name to executable path.
    """
    bin_dir = tmp_path / "path_bin"
    return {
        name: make_tool_file(bin_dir, name, in_bin=False)
        for name in ("ffmpeg", "colmap", "glomap")
    }


@pytest.fixture
def path_resolver(tmp_path: Path, fake_tools: dict[str, Path]) -> DependencyResolver:
    """Resolver that finds every tool on the fake PATH and never downloads."""
    return DependencyResolver(
        install_root=tmp_path / "tools",
        which=lambda name: str(fake_tools[name]) if name in fake_tools else None,
    )


@pytest.fixture
def process_env() -> InMemoryEnvironment:
    """In-memory stand-in for the subprocess environment."""
    return InMemoryEnvironment()


@pytest.fixture
def videos_dir(tmp_path: Path) -> Path:
    """Directory for fake input videos."""
    directory = tmp_path / "videos"
    directory.mkdir()
    return directory


@pytest.fixture
def make_video(videos_dir: Path):
    """Factory creating a placeholder video file by name."""

    def _make(name: str) -> Path:
        path = videos_dir / name
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return path

    return _make


@pytest.fixture
def make_context(tmp_path: Path, fake_tools: dict[str, Path], fake_runner: FakeRunner):
    """Factory building a PipelineContext around the fake tools and runner."""

    def _make(tool: str = "glomap", **overrides) -> PipelineContext:
        config = PipelineConfig(
            tool=tool, scenes_dir=str(tmp_path / "scenes"), **overrides
        )
        profile = get_profile(config.tool)
        return PipelineContext(
            config=config,
            profile=profile,
            ffmpeg=fake_tools["ffmpeg"],
            tool=fake_tools[profile.tool.logical_name],
            colmap=fake_tools["colmap"],
            num_threads=8,
            run=fake_runner,
        )

    return _make
