"""Pytest configuration and fixtures."""

import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import httpx
import pytest

from resonite_mod_updater.core.config import UpdaterConfig
from resonite_mod_updater.github.client import GitHubClient
from resonite_mod_updater.github.retry import RetryPolicy

_CONFIG_ENV_VARS = (
    "RMU_MODS_FOLDER",
    "RMU_TOKEN",
    "GITHUB_TOKEN",
    "RMU_DRY_RUN",
    "RMU_LIBRARY_SOURCE",
    "RMU_API_URL",
    "RMU_WEB_URL",
    "RMU_TIMEOUT",
)

TAGS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="en-US">
  <id>tag:github.com,2008:https://github.com/{owner}/{repo}/releases</id>
  <link type="text/html" rel="alternate" href="https://github.com/{owner}/{repo}/releases"/>
  <title>Tags from {repo}</title>
  <updated>2024-05-01T12:00:00Z</updated>
  <entry>
    <id>tag:github.com,2008:Repository/123456/{tag}</id>
    <updated>2024-05-01T12:00:00Z</updated>
    <link rel="alternate" type="text/html" href="https://github.com/{owner}/{repo}/releases/tag/{tag}"/>
    <title>{tag}</title>
    <content type="html">Release {tag}</content>
    <author>
      <name>{owner}</name>
    </author>
  </entry>
  <entry>
    <id>tag:github.com,2008:Repository/123456/v1.0.0</id>
    <updated>2024-01-01T12:00:00Z</updated>
    <link rel="alternate" type="text/html" href="https://github.com/{owner}/{repo}/releases/tag/v1.0.0"/>
    <title>v1.0.0</title>
  </entry>
</feed>
"""

EMPTY_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="en-US">
  <id>tag:github.com,2008:https://github.com/acme/empty/releases</id>
  <title>Tags from empty</title>
  <updated>2024-05-01T12:00:00Z</updated>
</feed>
"""


def tags_feed(owner: str, repo: str, tag: str) -> str:
    """Render a GitHub-style tags.atom document."""
    return TAGS_FEED.format(owner=owner, repo=repo, tag=tag)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of configuration tests."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mods_dir(temp_dir: Path) -> Path:
    """Provide an empty rml_mods folder inside a fake game directory."""
    folder = temp_dir / "Resonite" / "rml_mods"
    folder.mkdir(parents=True)
    return folder


@pytest.fixture
def sleeps() -> list[float]:
    """Collects the delays a RetryPolicy would have slept for."""
    return []


@pytest.fixture
def make_client(sleeps: list[float]) -> Generator[Callable[..., GitHubClient], None, None]:
    """Build GitHubClients backed by an httpx.MockTransport handler."""
    clients: list[GitHubClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response], **config_values) -> GitHubClient:
        config = UpdaterConfig(**config_values)
        policy = RetryPolicy(
            max_retries=config.max_retries,
            retry_delay_seconds=config.retry_delay_seconds,
            sleep=sleeps.append,
        )
        client = GitHubClient(config, retry_policy=policy, transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()
