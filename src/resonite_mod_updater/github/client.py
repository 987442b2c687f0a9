"""
GitHub Client - HTTP access to releases, tag feeds and release assets.

Status codes are mapped onto the updater's error taxonomy here so the
locators and the synchronizer only deal with UpdaterError subclasses.
"""

import logging
import time
from typing import Any

import httpx

from resonite_mod_updater import __version__
from resonite_mod_updater.core.config import UpdaterConfig
from resonite_mod_updater.core.exceptions import (
    GitHubAuthenticationError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    TransportError,
)
from resonite_mod_updater.github.retry import RetryPolicy

logger = logging.getLogger(__name__)

USER_AGENT = f"ResoniteModUpdater/{__version__}"
GITHUB_JSON = "application/vnd.github+json"
OCTET_STREAM = "application/octet-stream"


def parse_retry_after(response: httpx.Response) -> float | None:
    """
    Extract the server's retry hint in seconds.

    Checks `Retry-After` first, then the `x-ratelimit-reset` epoch GitHub
    sends with primary rate limits.
    """
    retry_after = response.headers.get("retry-after")
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            pass

    if response.headers.get("x-ratelimit-remaining") == "0":
        reset = response.headers.get("x-ratelimit-reset")
        if reset:
            try:
                return max(0.0, float(reset) - time.time())
            except ValueError:
                pass
    return None


class GitHubClient:
    """
    Thin httpx wrapper for the three requests the updater makes.

    - Latest release (REST API, authenticated when a token is configured)
    - Tag feed (public Atom feed)
    - Asset download (octet-stream, redirects followed)

    API and feed requests go through the RetryPolicy; downloads do not.
    """

    def __init__(
        self,
        config: UpdaterConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client. `transport` is for tests."""
        self._config = config or UpdaterConfig()
        self._retry = retry_policy or RetryPolicy(
            max_retries=self._config.max_retries,
            retry_delay_seconds=self._config.retry_delay_seconds,
        )
        self._client = httpx.Client(
            timeout=self._config.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    @property
    def config(self) -> UpdaterConfig:
        return self._config

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def web_url(self) -> str:
        return self._config.web_url

    def get_latest_release(self, owner: str, repo: str) -> dict[str, Any]:
        """
        Fetch the latest published release of a repository.

        Returns:
            Release JSON as returned by the REST API

        Raises:
            GitHubAuthenticationError: If the token is rejected
            RateLimitExhaustedError: If rate-limit retries run out
            GitHubNotFoundError: If the repository has no published release
            GitHubError: For other HTTP errors or a non-JSON body
        """
        url = f"{self._config.api_url}/repos/{owner}/{repo}/releases/latest"
        headers = {"Accept": GITHUB_JSON}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        response = self._retry.call(self._get, url, headers)
        try:
            data = response.json()
        except ValueError as e:
            raise GitHubError(
                "Release response is not valid JSON",
                url=url,
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise GitHubError("Unexpected release response shape", url=url)
        return data

    def get_tags_feed(self, owner: str, repo: str) -> bytes:
        """Fetch the public Atom feed of a repository's tags."""
        url = f"{self._config.web_url}/{owner}/{repo}/tags.atom"
        response = self._retry.call(self._get, url, {"Accept": "application/atom+xml"})
        return response.content

    def download(self, url: str) -> bytes:
        """Download a release asset."""
        response = self._get(url, {"Accept": OCTET_STREAM})
        return response.content

    def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        """Issue a GET and raise the matching UpdaterError on failure."""
        logger.debug(f"GET {url}")
        try:
            response = self._client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during request: {e}", url=url) from e

        if response.is_success:
            return response
        self._raise_for_status(response, url)
        return response

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        """Convert HTTP errors to updater exceptions."""
        status_code = response.status_code

        if status_code == 401:
            raise GitHubAuthenticationError(url=url)
        elif status_code in (403, 429):
            raise GitHubRateLimitError(
                url=url,
                status_code=status_code,
                retry_after=parse_retry_after(response),
            )
        elif status_code == 404:
            raise GitHubNotFoundError(url=url)
        else:
            raise GitHubError(
                f"HTTP error from GitHub: {status_code}",
                url=url,
                status_code=status_code,
            )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, *args):
        """Context manager exit."""
        self.close()
