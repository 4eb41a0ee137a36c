"""GitHub Releases client for locating downloadable tool builds."""

import json
import logging
import urllib.error
import urllib.request
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import DecodeError, NetworkError
from .platform import archive_extensions, platform_marker

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0


class Asset(BaseModel):
    """A downloadable file attached to a release.

    Attributes:
        name: Asset file name, e.g. "colmap-x64-windows-cuda.zip".
        download_url: Direct download URL (``browser_download_url`` in the API).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    download_url: str = Field(alias="browser_download_url")


class Release(BaseModel):
    """The latest published release of a repository.

    Attributes:
        tag_name: Release tag, e.g. "3.12.3".
        assets: Attached assets in API order.
    """

    tag_name: str
    assets: list[Asset] = Field(default_factory=list)


def filter_assets(
    assets: Iterable[Asset],
    marker: str | None = None,
    extensions: tuple[str, ...] | None = None,
) -> list[Asset]:
    """Keep assets built for this platform in an installable archive format.

    Order of the input is preserved, so the same asset list always yields
    the same subset in the same order.

    Args:
        assets: Release assets.
        marker: Platform substring (defaults to the current platform's).
        extensions: Accepted archive suffixes (defaults to the current platform's).

    Returns:
        Filtered list of assets.
    """
    marker = platform_marker() if marker is None else marker
    extensions = archive_extensions() if extensions is None else extensions
    return [
        asset
        for asset in assets
        if marker in asset.name.lower() and asset.name.lower().endswith(extensions)
    ]


class GitHubReleaseSource:
    """Query the GitHub REST API for the latest release of a repository."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str | None = None,
    ):
        if user_agent is None:
            from .. import __version__

            user_agent = f"polyfjord3d-python/{__version__}"
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent

    def release_url(self, repository_id: str) -> str:
        return f"{self.api_url}/repos/{repository_id}/releases/latest"

    def latest_release(self, repository_id: str) -> Release:
        """Fetch the latest release of ``owner/name``.

        A single attempt is made; there are no retries.

        Args:
            repository_id: GitHub repository in "owner/name" form.

        Returns:
            Parsed release.

        Raises:
            NetworkError: On transport failure or a non-2xx response.
            DecodeError: If the body is not a release JSON document.
        """
        url = self.release_url(repository_id)
        request = urllib.request.Request(
            url,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/vnd.github+json",
            },
        )
        logger.debug("GET %s", url)

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = getattr(response, "status", 200)
                if not 200 <= status < 300:
                    raise NetworkError(f"GET {url} returned HTTP {status}")
                body = response.read()
        except urllib.error.HTTPError as e:
            raise NetworkError(f"GET {url} returned HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise NetworkError(f"GET {url} failed: {e}") from e

        try:
            data = json.loads(body)
            release = Release.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Response from {url} is not valid JSON: {e}") from e
        except ValidationError as e:
            raise DecodeError(
                f"Response from {url} is not a release document "
                f"({e.error_count()} schema error(s))"
            ) from e

        logger.debug(
            "Release %s of %s has %d asset(s)",
            release.tag_name,
            repository_id,
            len(release.assets),
        )
        return release
