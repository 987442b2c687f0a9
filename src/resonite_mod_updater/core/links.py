"""
Upstream link validation.

A usable link is an absolute http(s) URL on the upstream host whose path
starts with owner and repository segments. Links into repository file views
(`/owner/repo/blob/...`, `/owner/repo/raw/...`) point at source files rather
than at the project, and are rejected.
"""

import httpx

UPSTREAM_HOST = "github.com"

_FILE_VIEW_SEGMENTS = frozenset({"blob", "raw"})


def parse_link(value: str) -> httpx.URL | None:
    """Parse an absolute http(s) URL, returning None for anything else."""
    try:
        url = httpx.URL(value.strip())
    except (httpx.InvalidURL, TypeError):
        return None
    if url.scheme not in ("http", "https") or not url.host:
        return None
    return url


def path_segments(url: httpx.URL) -> list[str]:
    """Return the non-empty path segments of a URL."""
    return [segment for segment in url.path.split("/") if segment]


def host_matches(url: httpx.URL, upstream_host: str = UPSTREAM_HOST) -> bool:
    """Return True if the URL is on the upstream host or one of its subdomains."""
    host = url.host.lower()
    return host == upstream_host or host.endswith(f".{upstream_host}")


def is_update_link(value: str | None, upstream_host: str = UPSTREAM_HOST) -> bool:
    """
    Check whether a string qualifies as a module's upstream link.

    Args:
        value: Candidate string, usually an ldstr operand
        upstream_host: Domain the link must be hosted on

    Returns:
        True if the link names an owner and repository on the upstream host
    """
    if not value:
        return False
    url = parse_link(value)
    if url is None or not host_matches(url, upstream_host):
        return False
    segments = path_segments(url)
    if len(segments) < 2:
        return False
    if len(segments) > 2 and segments[2].lower() in _FILE_VIEW_SEGMENTS:
        return False
    return True
