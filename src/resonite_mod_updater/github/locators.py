"""
Artifact Locators - find the latest published file for a repository.

Two interchangeable strategies:
- ReleaseLocator asks the REST API for the latest release and picks the
  asset named like the local module. Needs a token to be worth using.
- FeedLocator reads the public tag feed and builds the download URL from
  the newest tag by convention. No credential required.
"""

import logging
from typing import Any, Protocol
from urllib.parse import quote, unquote

import feedparser

from resonite_mod_updater.core.exceptions import (
    ArtifactNotFoundError,
    GitHubNotFoundError,
    InvalidLinkError,
)
from resonite_mod_updater.core.links import parse_link, path_segments
from resonite_mod_updater.core.models import LocatorStrategy, ResolvedArtifact, UpstreamIdentity
from resonite_mod_updater.github.client import GitHubClient

logger = logging.getLogger(__name__)


class ArtifactLocator(Protocol):
    """Strategy interface: latest artifact for a repository and filename."""

    strategy: LocatorStrategy

    def locate(self, identity: UpstreamIdentity, filename: str) -> ResolvedArtifact:
        ...


class ReleaseLocator:
    """Locate artifacts through the authenticated latest-release endpoint."""

    strategy = LocatorStrategy.RELEASE_API

    def __init__(self, client: GitHubClient):
        self._client = client

    def locate(self, identity: UpstreamIdentity, filename: str) -> ResolvedArtifact:
        """
        Find the latest release asset named exactly `filename`.

        Raises:
            InvalidLinkError: If the repository has no published release
            ArtifactNotFoundError: If no asset carries the module's name
        """
        try:
            release = self._client.get_latest_release(identity.owner, identity.repo)
        except GitHubNotFoundError as e:
            raise InvalidLinkError(
                "No published release found",
                link=e.url,
                details={"repository": identity.full_name},
            ) from e

        assets = release.get("assets")
        if not isinstance(assets, list):
            raise InvalidLinkError(
                "Release has no asset list",
                details={"repository": identity.full_name},
            )

        for asset in assets:
            if not isinstance(asset, dict) or asset.get("name") != filename:
                continue
            download_url = _asset_download_url(asset)
            if download_url:
                logger.debug(f"{identity.full_name}: matched asset {filename}")
                return ResolvedArtifact(
                    download_url=download_url,
                    filename=filename,
                    strategy=self.strategy,
                    tag=release.get("tag_name"),
                )

        raise ArtifactNotFoundError(
            owner=identity.owner,
            repo=identity.repo,
            filename=filename,
        )


class FeedLocator:
    """Locate artifacts from the newest entry of the public tag feed."""

    strategy = LocatorStrategy.TAG_FEED

    def __init__(self, client: GitHubClient):
        self._client = client

    def locate(self, identity: UpstreamIdentity, filename: str) -> ResolvedArtifact:
        """
        Build the download URL for `filename` in the newest tagged release.

        Raises:
            InvalidLinkError: If the feed is missing, empty, or names no tag
        """
        try:
            content = self._client.get_tags_feed(identity.owner, identity.repo)
        except GitHubNotFoundError as e:
            raise InvalidLinkError(
                "Tag feed not found",
                link=e.url,
                details={"repository": identity.full_name},
            ) from e

        feed = feedparser.parse(content)
        if not feed.entries:
            raise InvalidLinkError(
                "Tag feed has no entries",
                details={"repository": identity.full_name},
            )

        tag = derive_tag(feed.entries[0])
        if not tag:
            raise InvalidLinkError(
                "Could not derive a tag from the newest feed entry",
                details={"repository": identity.full_name},
            )

        base = self._client.web_url
        download_url = (
            f"{base}/{identity.owner}/{identity.repo}/releases/download/"
            f"{quote(tag, safe='')}/{quote(filename)}"
        )
        logger.debug(f"{identity.full_name}: newest tag {tag}")
        return ResolvedArtifact(
            download_url=download_url,
            filename=filename,
            strategy=self.strategy,
            tag=tag,
        )


def derive_tag(entry: Any) -> str | None:
    """
    Derive the tag name from an Atom feed entry.

    GitHub tag feed entries look like:
        link: https://github.com/{owner}/{repo}/releases/tag/{tag}
        id:   tag:github.com,2008:Repository/{repo_id}/{tag}

    The link is preferred; the id is the fallback.
    """
    link = entry.get("link")
    if link:
        url = parse_link(link)
        if url is not None:
            segments = path_segments(url)
            for index in range(len(segments) - 2):
                if segments[index] == "releases" and segments[index + 1] == "tag":
                    return unquote("/".join(segments[index + 2 :]))

    entry_id = entry.get("id")
    if entry_id and "Repository/" in entry_id:
        remainder = entry_id.split("Repository/", 1)[1]
        parts = remainder.split("/", 1)
        if len(parts) == 2 and parts[1]:
            return parts[1]
    return None


def _asset_download_url(asset: dict[str, Any]) -> str | None:
    """Return the public download URL of a release asset."""
    for key in ("browser_download_url", "download_url"):
        value = asset.get(key)
        if isinstance(value, str) and value:
            return value
    return None
