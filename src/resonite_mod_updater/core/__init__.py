"""
Resonite Mod Updater Core Module.

Provides the data model, configuration and error types shared by the engine.
"""

__all__ = [
    "LocalModule",
    "LocatorStrategy",
    "ResolvedArtifact",
    "SyncOutcome",
    "SyncStatus",
    "UpstreamIdentity",
    "UpdaterConfig",
    "load_config",
    # Exceptions
    "UpdaterError",
    "ConfigurationError",
    "NoModulesFoundError",
    "ModuleParseError",
    "InvalidLinkError",
    "ArtifactNotFoundError",
    "TransportError",
    "GitHubError",
    "GitHubNotFoundError",
    "GitHubAuthenticationError",
    "GitHubRateLimitError",
    "RateLimitExhaustedError",
    "RunCancelledError",
    "SynchronizationError",
]

from resonite_mod_updater.core.config import UpdaterConfig, load_config
from resonite_mod_updater.core.exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    GitHubAuthenticationError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    InvalidLinkError,
    ModuleParseError,
    NoModulesFoundError,
    RateLimitExhaustedError,
    RunCancelledError,
    SynchronizationError,
    TransportError,
    UpdaterError,
)
from resonite_mod_updater.core.models import (
    LocalModule,
    LocatorStrategy,
    ResolvedArtifact,
    SyncOutcome,
    SyncStatus,
    UpstreamIdentity,
)
