"""Tests for ordered tool resolution and on-demand installation."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from polyfjord3d.deps.release import Asset, Release
from polyfjord3d.deps.resolver import COLMAP, FFMPEG, GLOMAP, DependencyResolver
from polyfjord3d.errors import (
    InstallVerificationError,
    InvalidOverrideError,
    NetworkError,
    NoAssetsError,
    NoSelectionError,
)

ASSET_NAMES = (
    "colmap-x64-linux-cuda.tar.gz",
    "colmap-x64-linux-nocuda.tar.gz",
    "colmap-x64-windows-cuda.zip",
    "source.tar.gz",
)


@pytest.fixture(autouse=True)
def linux_assets(monkeypatch):
    """Pin asset filtering to Linux tarballs regardless of the host."""
    monkeypatch.setattr("polyfjord3d.deps.release.platform_marker", lambda: "linux")
    monkeypatch.setattr(
        "polyfjord3d.deps.release.archive_extensions", lambda: (".tar.gz",)
    )


class FakeReleaseSource:
    """Release source returning a canned release."""

    def __init__(self, names=ASSET_NAMES, error: Exception | None = None):
        self.release = Release(
            tag_name="3.12.3",
            assets=[
                Asset(name=n, download_url=f"https://example.com/{n}") for n in names
            ],
        )
        self.error = error
        self.requested: list[str] = []

    def latest_release(self, repository_id: str) -> Release:
        self.requested.append(repository_id)
        if self.error is not None:
            raise self.error
        return self.release


class FakeInstaller:
    """Installer that drops an executable into the install directory."""

    def __init__(self, make_tool, provides: str | None = None):
        self.make_tool = make_tool
        self.provides = provides
        self.installed: list[tuple[Asset, Path]] = []

    def fetch_and_install(self, asset: Asset, dest_dir: Path) -> None:
        self.installed.append((asset, dest_dir))
        dest_dir.mkdir(parents=True, exist_ok=True)
        if self.provides:
            self.make_tool(dest_dir, self.provides, in_bin=True)


def _resolver(tmp_path, which=None, source=None, installer=None, selector=None):
    return DependencyResolver(
        install_root=tmp_path / "tools",
        release_source=source or FakeReleaseSource(),
        installer=installer or MagicMock(),
        selector=selector or MagicMock(return_value=0),
        which=which or (lambda name: None),
    )


class TestOverride:
    """Tests for the explicit override stage."""

    def test_existing_override_wins(self, tmp_path, make_tool):
        """Test an existing override is used without consulting PATH."""
        exe = make_tool(tmp_path / "custom", "ffmpeg", in_bin=False)
        which = MagicMock(return_value="/usr/bin/ffmpeg")

        resolved = _resolver(tmp_path, which=which).resolve(FFMPEG, exe)

        assert resolved.executable_path == exe
        assert resolved.freshly_installed is False
        which.assert_not_called()

    def test_missing_override_fails(self, tmp_path):
        """Test a missing override fails instead of falling back."""
        which = MagicMock(return_value="/usr/bin/ffmpeg")
        resolver = _resolver(tmp_path, which=which)

        with pytest.raises(InvalidOverrideError) as exc_info:
            resolver.resolve(FFMPEG, tmp_path / "nope" / "ffmpeg")

        assert exc_info.value.tool == "ffmpeg"
        assert exc_info.value.stage == "override"
        assert "[override] ffmpeg:" in str(exc_info.value)
        which.assert_not_called()


class TestLookup:
    """Tests for the PATH and tools-root stages."""

    def test_found_on_path(self, tmp_path):
        """Test a PATH hit is returned as-is."""
        resolver = _resolver(tmp_path, which=lambda name: f"/opt/bin/{name}")
        resolved = resolver.resolve(COLMAP)
        assert resolved.executable_path == Path("/opt/bin/colmap")
        assert resolved.freshly_installed is False

    def test_found_in_tools_root(self, tmp_path, make_tool):
        """Test a previous install under the tools root is reused."""
        exe = make_tool(tmp_path / "tools" / "glomap", "glomap", in_bin=True)
        source = FakeReleaseSource()

        resolved = _resolver(tmp_path, source=source).resolve(GLOMAP)

        assert resolved.executable_path == exe
        assert resolved.freshly_installed is False
        assert source.requested == []

    def test_tools_root_created(self, tmp_path, make_tool):
        """Test the tool's install directory exists after lookup."""
        installer = FakeInstaller(make_tool, provides="colmap")
        _resolver(tmp_path, installer=installer).resolve(COLMAP)
        assert (tmp_path / "tools" / "colmap").is_dir()


class TestInstall:
    """Tests for the download-and-install stage."""

    def test_installs_selected_asset(self, tmp_path, make_tool):
        """Test the chosen candidate is installed and verified."""
        source = FakeReleaseSource()
        installer = FakeInstaller(make_tool, provides="colmap")
        selector = MagicMock(return_value=1)

        resolved = _resolver(
            tmp_path, source=source, installer=installer, selector=selector
        ).resolve(COLMAP)

        assert source.requested == ["colmap/colmap"]
        selector.assert_called_once_with(
            ["colmap-x64-linux-cuda.tar.gz", "colmap-x64-linux-nocuda.tar.gz"]
        )
        (asset, dest), = installer.installed
        assert asset.name == "colmap-x64-linux-nocuda.tar.gz"
        assert dest == tmp_path / "tools" / "colmap"
        assert resolved.freshly_installed is True
        assert resolved.executable_path.parent == dest / "bin"

    def test_no_matching_assets(self, tmp_path):
        """Test a release with nothing for this platform fails at selection."""
        selector = MagicMock()
        source = FakeReleaseSource(names=("colmap-x64-windows-cuda.zip",))

        with pytest.raises(NoAssetsError) as exc_info:
            _resolver(tmp_path, source=source, selector=selector).resolve(COLMAP)

        assert exc_info.value.stage == "select"
        assert exc_info.value.tool == "colmap"
        selector.assert_not_called()

    def test_verification_failure(self, tmp_path, make_tool):
        """Test an archive without the executable fails verification."""
        installer = FakeInstaller(make_tool, provides=None)

        with pytest.raises(InstallVerificationError) as exc_info:
            _resolver(tmp_path, installer=installer).resolve(FFMPEG)

        assert exc_info.value.stage == "verify"
        assert exc_info.value.tool == "ffmpeg"

    def test_network_error_tagged_with_tool(self, tmp_path):
        """Test release errors carry the tool being resolved."""
        source = FakeReleaseSource(error=NetworkError("GET failed"))

        with pytest.raises(NetworkError) as exc_info:
            _resolver(tmp_path, source=source).resolve(GLOMAP)

        assert exc_info.value.tool == "glomap"
        assert str(exc_info.value) == "[release] glomap: GET failed"

    def test_second_resolution_reuses_install(self, tmp_path, make_tool):
        """Test an installed tool is found without downloading again."""
        source = FakeReleaseSource()
        installer = FakeInstaller(make_tool, provides="ffmpeg")
        resolver = _resolver(tmp_path, source=source, installer=installer)

        first = resolver.resolve(FFMPEG)
        second = resolver.resolve(FFMPEG)

        assert first.freshly_installed is True
        assert second.freshly_installed is False
        assert second.executable_path == first.executable_path
        assert len(installer.installed) == 1

    def test_input_closed_at_menu(self, tmp_path, monkeypatch):
        """Test a closed stdin at the package menu is a tagged select failure."""

        def closed_input(prompt):
            raise EOFError

        monkeypatch.setattr("builtins.input", closed_input)
        installer = MagicMock()
        resolver = DependencyResolver(
            install_root=tmp_path / "tools",
            release_source=FakeReleaseSource(
                names=("ffmpeg-master-linux64-gpl.tar.gz",)
            ),
            installer=installer,
            which=lambda name: None,
        )

        with pytest.raises(NoSelectionError) as exc_info:
            resolver.resolve(FFMPEG)

        assert exc_info.value.stage == "select"
        assert exc_info.value.tool == "ffmpeg"
        assert isinstance(exc_info.value.__cause__, EOFError)
        installer.fetch_and_install.assert_not_called()
