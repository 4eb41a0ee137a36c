"""Download release assets and unpack them into an install directory."""

import http.client
import logging
import shutil
import sys
import tarfile
import urllib.error
import urllib.request
import zipfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from tqdm import tqdm

from ..errors import ArchiveError, DownloadError, InstallIOError
from .release import Asset

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192

# progress(bytes_received, total_bytes); total_bytes is 0 when unknown
ProgressCallback = Callable[[int, int], None]


class TqdmProgress:
    """Progress sink rendering byte counts as a tqdm bar."""

    def __init__(self, desc: str, disable: bool | None = None):
        if disable is None:
            disable = not sys.stderr.isatty()
        self.desc = desc
        self.disable = disable
        self._bar: tqdm | None = None

    def __call__(self, received: int, total: int) -> None:
        if self._bar is None:
            self._bar = tqdm(
                total=total or None,
                desc=self.desc,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                disable=self.disable,
            )
        self._bar.update(received - self._bar.n)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def download_file(
    url: str,
    path: Path,
    progress: ProgressCallback | None = None,
    timeout: float = 60.0,
) -> int:
    """Stream *url* to *path*, reporting progress after every chunk.

    Args:
        url: Source URL.
        path: Destination file (overwritten).
        progress: Optional progress callback.
        timeout: Socket timeout in seconds.

    Returns:
        Number of bytes written.

    Raises:
        DownloadError: On any transport or local write failure, or when the
            stream ends before the advertised Content-Length.
    """
    logger.debug("Downloading %s -> %s", url, path)
    received = 0
    total = 0
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response, open(
            path, "wb"
        ) as f:
            total = int(response.headers.get("Content-Length") or 0)
            if progress is not None:
                progress(0, total)
            while True:
                chunk = response.read(CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
                received += len(chunk)
                if progress is not None:
                    progress(received, total)
    except (
        urllib.error.URLError,
        http.client.HTTPException,
        OSError,
        ValueError,
    ) as e:
        raise DownloadError(f"Download of {url} failed: {e}") from e

    if total and received != total:
        raise DownloadError(
            f"Download of {url} was cut short: received {received} of {total} bytes"
        )
    return received


def _safe_relative(name: str) -> PurePosixPath | None:
    """Return the enclosed relative form of an archive member name.

    Absolute paths, drive letters and ``..`` components are rejected.
    """
    normalized = name.replace("\\", "/")
    member = PurePosixPath(normalized)
    if member.is_absolute() or normalized.startswith("/"):
        return None
    if member.parts and ":" in member.parts[0]:
        return None
    if any(part == ".." for part in member.parts):
        return None
    parts = [part for part in member.parts if part not in ("", ".")]
    if not parts:
        return None
    return PurePosixPath(*parts)


def _common_root(members: list[PurePosixPath], dirs: set[PurePosixPath]) -> str | None:
    """Return the single top-level directory shared by all members, if any."""
    roots = {m.parts[0] for m in members}
    if len(roots) != 1:
        return None
    root = next(iter(roots))
    # A lone file at the top level is not a wrapper directory
    if any(len(m.parts) == 1 and m not in dirs for m in members):
        return None
    return root


def _plan(
    names: list[tuple[str, bool]],
) -> list[tuple[str, PurePosixPath, bool]]:
    """Map archive member names to destination-relative paths.

    Args:
        names: (member name, is_dir) pairs in archive order.

    Returns:
        (member name, relative destination, is_dir) triples; unsafe members
        are dropped and a shared top-level wrapper directory is stripped.
    """
    safe = []
    dirs = set()
    for name, is_dir in names:
        rel = _safe_relative(name)
        if rel is None:
            logger.warning("Skipping unsafe archive entry: %s", name)
            continue
        safe.append((name, rel, is_dir))
        if is_dir:
            dirs.add(rel)

    root = _common_root([rel for _, rel, _ in safe], dirs) if safe else None
    if root is None:
        return safe

    logger.debug("Stripping top-level archive directory %s", root)
    stripped = []
    for name, rel, is_dir in safe:
        if len(rel.parts) == 1:
            continue
        stripped.append((name, PurePosixPath(*rel.parts[1:]), is_dir))
    return stripped


def _extract_zip(path: Path, dest: Path) -> int:
    count = 0
    with zipfile.ZipFile(path) as archive:
        infos = {info.filename: info for info in archive.infolist()}
        plan = _plan([(info.filename, info.is_dir()) for info in infos.values()])
        for name, rel, is_dir in plan:
            outpath = dest.joinpath(*rel.parts)
            if is_dir:
                outpath.mkdir(parents=True, exist_ok=True)
                continue
            outpath.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(infos[name]) as src, open(outpath, "wb") as dst:
                shutil.copyfileobj(src, dst)
            # Restore POSIX permission bits (upper 16 bits of external_attr)
            mode = (infos[name].external_attr >> 16) & 0o777
            if mode:
                outpath.chmod(mode)
            count += 1
    return count


def _extract_tar(path: Path, dest: Path) -> int:
    count = 0
    with tarfile.open(path) as archive:
        members = {
            m.name: m for m in archive.getmembers() if m.isfile() or m.isdir()
        }
        plan = _plan([(m.name, m.isdir()) for m in members.values()])
        for name, rel, is_dir in plan:
            outpath = dest.joinpath(*rel.parts)
            if is_dir:
                outpath.mkdir(parents=True, exist_ok=True)
                continue
            outpath.parent.mkdir(parents=True, exist_ok=True)
            src = archive.extractfile(members[name])
            if src is None:
                continue
            with src, open(outpath, "wb") as dst:
                shutil.copyfileobj(src, dst)
            outpath.chmod(members[name].mode & 0o777 or 0o644)
            count += 1
    return count


def extract_archive(path: Path, dest: Path) -> int:
    """Extract a zip or tar archive into *dest*.

    Every entry is written using only its enclosed relative path; entries
    that are absolute or climb out of *dest* are skipped. When all entries
    sit under one top-level directory, that directory is stripped so the
    archive contents land directly in *dest*.

    Args:
        path: Archive file.
        dest: Destination directory (created if needed).

    Returns:
        Number of files written.

    Raises:
        ArchiveError: If the archive is corrupt, unreadable or of an unknown type.
        InstallIOError: If a directory or file cannot be created.
    """
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise InstallIOError(f"Cannot create {dest}: {e}") from e

    try:
        if zipfile.is_zipfile(path):
            return _extract_zip(path, dest)
        if tarfile.is_tarfile(path):
            return _extract_tar(path, dest)
    except (zipfile.BadZipFile, tarfile.TarError, EOFError) as e:
        raise ArchiveError(f"Corrupt archive {path.name}: {e}") from e
    except OSError as e:
        raise InstallIOError(f"Extracting {path.name} failed: {e}") from e

    raise ArchiveError(f"{path.name} is not a zip or tar archive")


class ArchiveInstaller:
    """Download an asset into an install directory and unpack it there.

    Args:
        progress_factory: Builds a progress callback for an asset name.
            Defaults to a tqdm bar.
        timeout: Socket timeout for the download, in seconds.
    """

    def __init__(
        self,
        progress_factory: Callable[[str], ProgressCallback] | None = None,
        timeout: float = 60.0,
    ):
        self.progress_factory = progress_factory or TqdmProgress
        self.timeout = timeout

    def fetch_and_install(self, asset: Asset, dest_dir: Path) -> None:
        """Download *asset* into *dest_dir*, extract it, then delete the archive.

        A failure leaves *dest_dir* partially populated; the next resolution
        finds no executable there and installs again.

        Raises:
            DownloadError: Transport or write failure while streaming.
            ArchiveError: Corrupt or unsupported archive.
            InstallIOError: Directory creation or archive deletion failure.
        """
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallIOError(f"Cannot create {dest_dir}: {e}") from e

        archive_path = dest_dir / asset.name

        logger.info("Downloading %s...", asset.name)
        progress = self.progress_factory(asset.name)
        try:
            download_file(
                asset.download_url, archive_path, progress, timeout=self.timeout
            )
        finally:
            close = getattr(progress, "close", None)
            if close is not None:
                close()

        logger.info("Unzipping %s...", asset.name)
        count = extract_archive(archive_path, dest_dir)
        logger.debug("Extracted %d file(s) into %s", count, dest_dir)

        logger.info("Cleaning up downloaded archive...")
        try:
            archive_path.unlink()
        except OSError as e:
            raise InstallIOError(f"Cannot delete {archive_path}: {e}") from e
