"""
Resonite Mod Updater GitHub Module.

Provides the HTTP client, rate-limit retry policy, locator strategies and
the source resolver that picks between them.
"""

__all__ = [
    "ArtifactLocator",
    "FeedLocator",
    "GitHubClient",
    "RateLimitBudget",
    "ReleaseLocator",
    "RetryPolicy",
    "SourceResolver",
]

from resonite_mod_updater.github.client import GitHubClient
from resonite_mod_updater.github.locators import ArtifactLocator, FeedLocator, ReleaseLocator
from resonite_mod_updater.github.resolver import SourceResolver
from resonite_mod_updater.github.retry import RateLimitBudget, RetryPolicy
