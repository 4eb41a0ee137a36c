"""Exception taxonomy for dependency resolution and scene processing."""


class Polyfjord3DError(Exception):
    """Base class for all polyfjord3d errors."""


class DependencyError(Polyfjord3DError):
    """A required external tool could not be resolved.

    Attributes:
        stage: Resolution stage that failed (e.g. "override", "release",
            "select", "install", "verify").
        tool: Logical tool name, or None when raised outside a resolution
            (the resolver fills it in before re-raising).
    """

    stage = "resolve"

    def __init__(self, message: str, tool: str | None = None):
        super().__init__(message)
        self.message = message
        self.tool = tool

    def __str__(self) -> str:
        if self.tool:
            return f"[{self.stage}] {self.tool}: {self.message}"
        return f"[{self.stage}] {self.message}"


class InvalidOverrideError(DependencyError):
    """User-supplied executable path does not exist."""

    stage = "override"


class NetworkError(DependencyError):
    """Release API request failed at the transport or HTTP level."""

    stage = "release"


class DecodeError(DependencyError):
    """Release API response did not match the expected schema."""

    stage = "release"


class NoAssetsError(DependencyError):
    """No release asset matches the current platform and archive type."""

    stage = "select"


class NoSelectionError(DependencyError):
    """Input closed before a candidate asset was chosen."""

    stage = "select"


class DownloadError(DependencyError):
    """Streaming an asset to disk failed."""

    stage = "install"


class ArchiveError(DependencyError):
    """Downloaded archive is corrupt, unreadable or of an unknown type."""

    stage = "install"


class InstallIOError(DependencyError):
    """Creating or deleting files in the install directory failed."""

    stage = "install"


class InstallVerificationError(DependencyError):
    """Archive extracted but the expected executable was not found."""

    stage = "verify"


class StepFailedError(Polyfjord3DError):
    """An external pipeline step exited non-zero or could not be launched.

    Attributes:
        step: Step name (e.g. "extract_frames", "mapper").
        video: Video name (file stem) the step was running for.
        stderr: Captured standard error of the subprocess, if any.
        returncode: Exit status, or None when the process never started.
    """

    def __init__(
        self,
        step: str,
        video: str,
        stderr: str = "",
        returncode: int | None = None,
        reason: str | None = None,
    ):
        self.step = step
        self.video = video
        self.stderr = stderr
        self.returncode = returncode
        if reason is None:
            reason = f"exit status {returncode}"
        super().__init__(f"{step} failed for {video} ({reason})")


class EnvironmentPublishError(Polyfjord3DError):
    """Persistent environment could not be read or updated."""
