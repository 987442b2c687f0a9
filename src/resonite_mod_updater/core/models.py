"""
Core data models for the updater.

Every module processed in a run ends in exactly one SyncOutcome.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

IGNORE_MARKER = "_"


class SyncStatus(Enum):
    """Terminal outcome of processing one module."""

    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    NO_LINK_FOUND = "no_link_found"
    INVALID_LINK = "invalid_link"
    IGNORED = "ignored"
    ERROR = "error"


class LocatorStrategy(Enum):
    """How the latest artifact of a repository was located."""

    RELEASE_API = "release_api"
    TAG_FEED = "tag_feed"


@dataclass
class LocalModule:
    """A plugin file in the mods folder. Bytes are read on first access."""

    path: Path
    _content: bytes | None = field(default=None, repr=False, compare=False)

    @property
    def filename(self) -> str:
        """Return the file name without directories."""
        return self.path.name

    @property
    def ignored(self) -> bool:
        """Return True if the filename opts the module out of updates."""
        return self.filename.startswith(IGNORE_MARKER)

    def read_bytes(self) -> bytes:
        """Return the module content, reading it from disk once."""
        if self._content is None:
            self._content = self.path.read_bytes()
        return self._content


@dataclass(frozen=True)
class UpstreamIdentity:
    """Owner and repository a module is published from."""

    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class ResolvedArtifact:
    """Concrete download location for the latest version of a module."""

    download_url: str
    filename: str
    strategy: LocatorStrategy
    tag: str | None = None


class SyncOutcome(BaseModel):
    """Result of processing one module."""

    filename: str
    path: Path
    status: SyncStatus
    source_url: str | None = None
    error_message: str | None = None
    error_type: str | None = None
    attempted_url: str | None = None
    dry_run: bool = False
    timestamp: str = Field(default_factory=lambda: _iso_timestamp())

    def is_issue(self) -> bool:
        """Return True if the outcome should be flagged to the user."""
        return self.status in (
            SyncStatus.NO_LINK_FOUND,
            SyncStatus.INVALID_LINK,
            SyncStatus.ERROR,
        )

    def is_error(self) -> bool:
        """Return True if processing failed with a captured error."""
        return self.status == SyncStatus.ERROR


def _iso_timestamp() -> str:
    """Return current ISO8601 timestamp in UTC."""
    from datetime import datetime, timezone

    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
