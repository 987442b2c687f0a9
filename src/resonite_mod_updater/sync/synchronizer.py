"""
Artifact Synchronizer - hash-gated, atomic replacement of module files.

A module is only rewritten when the downloaded bytes hash differently from
the bytes on disk, and the write goes through a temporary file in the same
directory followed by os.replace, so readers see either the old file or the
new one.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

from resonite_mod_updater.core.exceptions import SynchronizationError, UpdaterError, format_exception
from resonite_mod_updater.core.models import ResolvedArtifact, SyncOutcome, SyncStatus
from resonite_mod_updater.github.client import GitHubClient

logger = logging.getLogger(__name__)


def compute_hash(data: bytes) -> str:
    """Compute SHA256 hash of data."""
    return hashlib.sha256(data).hexdigest()


def compute_file_hash(file_path: Path) -> str:
    """Compute SHA256 hash of a file with streaming."""
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Replace `path` with `data` using the write-replace pattern.

    The temporary file lives next to the target so os.replace stays on one
    filesystem and takes over the permission bits of the file it replaces.
    It is removed if anything fails before the replace.
    """
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


class ArtifactSynchronizer:
    """
    Downloads resolved artifacts and replaces local modules that differ.

    Never raises for module-scoped failures: transport, HTTP and filesystem
    errors are returned as an ERROR outcome carrying the cause.
    """

    def __init__(self, client: GitHubClient, dry_run: bool = False):
        self._client = client
        self.dry_run = dry_run

    def synchronize(self, artifact: ResolvedArtifact, path: Path) -> SyncOutcome:
        """
        Bring the file at `path` in line with the artifact.

        Args:
            artifact: Resolved download location
            path: Local module file to compare and possibly replace

        Returns:
            UPDATED (written, or would be written in dry-run), UP_TO_DATE,
            or ERROR
        """
        url = artifact.download_url
        try:
            downloaded = self._client.download(url)
            if compute_hash(downloaded) == compute_file_hash(path):
                return self._outcome(path, SyncStatus.UP_TO_DATE)

            if self.dry_run:
                logger.info(f"{path.name}: update available from {url} (dry run)")
            else:
                self._write(path, downloaded, url)
                logger.info(f"{path.name}: updated from {url}")
            return self._outcome(path, SyncStatus.UPDATED, source_url=url)
        except (UpdaterError, OSError) as e:
            logger.warning(f"{path.name}: synchronization failed: {format_exception(e)}")
            return self._outcome(
                path,
                SyncStatus.ERROR,
                error_message=format_exception(e),
                error_type=type(e).__name__,
                attempted_url=url,
            )

    def _write(self, path: Path, data: bytes, url: str) -> None:
        """Atomically replace the module, wrapping filesystem errors."""
        try:
            atomic_write_bytes(path, data)
        except OSError as e:
            raise SynchronizationError(
                f"Failed to write module: {e.strerror or e}",
                path=str(path),
                url=url,
            ) from e

    def _outcome(self, path: Path, status: SyncStatus, **fields) -> SyncOutcome:
        return SyncOutcome(
            filename=path.name,
            path=path,
            status=status,
            dry_run=self.dry_run,
            **fields,
        )
