"""
Source Resolver - turn a module's link into a repository and a strategy.
"""

from resonite_mod_updater.core.exceptions import InvalidLinkError
from resonite_mod_updater.core.links import UPSTREAM_HOST, host_matches, parse_link, path_segments
from resonite_mod_updater.core.models import ResolvedArtifact, UpstreamIdentity
from resonite_mod_updater.github.client import GitHubClient
from resonite_mod_updater.github.locators import ArtifactLocator, FeedLocator, ReleaseLocator


class SourceResolver:
    """
    Chooses how to look up a module's latest artifact.

    Credential presence is the only selector: with a token the REST API is
    used, without one the public tag feed.
    """

    def __init__(
        self,
        client: GitHubClient,
        token: str | None = None,
        upstream_host: str = UPSTREAM_HOST,
    ):
        self._client = client
        self._upstream_host = upstream_host
        self._locator: ArtifactLocator = (
            ReleaseLocator(client) if token else FeedLocator(client)
        )

    def select_locator(self) -> ArtifactLocator:
        """Return the locator strategy for this run."""
        return self._locator

    def parse_identity(self, link: str) -> UpstreamIdentity:
        """
        Parse owner and repository from path segments 0 and 1.

        Raises:
            InvalidLinkError: If the link is not an upstream URL with at
                least two path segments
        """
        url = parse_link(link)
        if url is None:
            raise InvalidLinkError("Link is not an absolute http(s) URL", link=link)
        if not host_matches(url, self._upstream_host):
            raise InvalidLinkError(
                f"Link is not hosted on {self._upstream_host}",
                link=link,
            )

        segments = path_segments(url)
        if len(segments) < 2:
            raise InvalidLinkError("Link does not name an owner and repository", link=link)

        owner, repo = segments[0], segments[1]
        if repo.endswith(".git"):
            repo = repo[: -len(".git")]
        if not repo:
            raise InvalidLinkError("Link does not name a repository", link=link)
        return UpstreamIdentity(owner=owner, repo=repo)

    def resolve(self, link: str, filename: str) -> ResolvedArtifact:
        """
        Resolve a link to the latest artifact named `filename`.

        Raises:
            InvalidLinkError: If the link or the upstream data is unusable
            ArtifactNotFoundError: If the release has no matching asset
        """
        identity = self.parse_identity(link)
        return self.select_locator().locate(identity, filename)
