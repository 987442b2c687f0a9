"""
Resonite Mod Updater Sync Module.

Downloads artifacts and replaces local modules when their content differs.
"""

__all__ = ["ArtifactSynchronizer", "atomic_write_bytes", "compute_file_hash", "compute_hash"]

from resonite_mod_updater.sync.synchronizer import (
    ArtifactSynchronizer,
    atomic_write_bytes,
    compute_file_hash,
    compute_hash,
)
