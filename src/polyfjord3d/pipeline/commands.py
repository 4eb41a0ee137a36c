"""Subprocess execution for pipeline steps."""

import logging
import subprocess
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from ..errors import StepFailedError

logger = logging.getLogger(__name__)

# run(command, video_name, step_name); raises StepFailedError on failure
CommandRunner = Callable[[Sequence[str | Path], str, str], None]


def run_step(command: Sequence[str | Path], video_name: str, step_name: str) -> None:
    """Run one external step to completion, capturing its output.

    On a non-zero exit the captured standard error is written to this
    process's stderr before the failure is raised.

    Args:
        command: Executable followed by its arguments.
        video_name: Video the step runs for (for error reporting).
        step_name: Step name (for error reporting).

    Raises:
        StepFailedError: If the process cannot be launched or exits non-zero.
    """
    args = [str(part) for part in command]
    logger.debug("[run] %s", " ".join(args))

    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise StepFailedError(
            step_name, video_name, reason=f"failed to execute: {e}"
        ) from e

    if result.returncode != 0:
        if result.stderr:
            sys.stderr.write(result.stderr)
            sys.stderr.flush()
        raise StepFailedError(
            step_name,
            video_name,
            stderr=result.stderr or "",
            returncode=result.returncode,
        )
