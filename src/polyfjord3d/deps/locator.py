"""Locate a tool executable inside an install directory."""

from pathlib import Path

from .platform import exe_suffix


def executable_candidates(directory: Path, name: str) -> list[Path]:
    """Return the candidate executable paths for *name*, in search order."""
    exe_name = f"{name}{exe_suffix()}"
    return [directory / exe_name, directory / "bin" / exe_name]


def find_executable(directory: str | Path, name: str) -> Path | None:
    """Find the executable for a logical tool name.

    Only ``<dir>/<name>`` and ``<dir>/bin/<name>`` are checked (with the
    platform executable suffix); nothing deeper is searched.

    Args:
        directory: Install directory to search.
        name: Logical tool name, e.g. "colmap".

    Returns:
        First existing candidate, or None.
    """
    for candidate in executable_candidates(Path(directory), name):
        if candidate.is_file():
            return candidate
    return None
