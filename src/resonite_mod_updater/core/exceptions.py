"""
Resonite Mod Updater Exception Hierarchy.

Defines all custom exceptions used across the updater.
Module-scoped failures become an ERROR outcome for one mod; fatal
failures stop the whole run.
"""

from typing import Any


class UpdaterError(Exception):
    """
    Base exception for all updater errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error reporting.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize an UpdaterError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(UpdaterError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - The mods folder is not configured or does not exist
    - An environment variable holds an invalid value
    """

    def __init__(
        self,
        message: str,
        *,
        env_var: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            env_var: Environment variable name if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if env_var:
            details["env_var"] = env_var
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.env_var = env_var
        self.config_key = config_key


class NoModulesFoundError(ConfigurationError):
    """Raised when the mods folder contains no modules to update."""

    def __init__(self, message: str = "No mods found to update", *, mods_folder: str | None = None):
        details = {"mods_folder": mods_folder} if mods_folder else None
        super().__init__(message, config_key="mods_folder", details=details)
        self.mods_folder = mods_folder


class ModuleParseError(UpdaterError):
    """Raised when a module is not a readable .NET assembly."""

    def __init__(
        self,
        message: str = "Not a readable .NET assembly",
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)


class InvalidLinkError(UpdaterError):
    """
    Raised when a link cannot be resolved to a release artifact.

    Covers malformed or too-shallow links as well as upstream data that
    is insufficient to name an artifact (no release, empty tag feed).
    """

    def __init__(
        self,
        message: str = "Invalid link, no releases found",
        *,
        link: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if link:
            details["link"] = link
        super().__init__(message, details=details)
        self.link = link


class ArtifactNotFoundError(UpdaterError):
    """Raised when the latest release has no asset named like the module."""

    def __init__(
        self,
        message: str = "No matching release asset",
        *,
        owner: str | None = None,
        repo: str | None = None,
        filename: str | None = None,
    ):
        details = {}
        if owner and repo:
            details["repository"] = f"{owner}/{repo}"
        if filename:
            details["filename"] = filename
        super().__init__(message, details=details)
        self.filename = filename


class TransportError(UpdaterError):
    """Raised when a request fails before an HTTP response is received."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, details=details)
        self.url = url


class GitHubError(UpdaterError):
    """
    Errors from GitHub HTTP responses.

    Raised when:
    - API calls return an unexpected status
    - Authentication fails
    - Rate limits are exceeded
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a GitHubError.

        Args:
            message: Human-readable error message
            url: Request URL
            status_code: HTTP status code if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if url:
            details["url"] = url
        if status_code:
            details["status_code"] = status_code

        super().__init__(message, details=details)
        self.url = url
        self.status_code = status_code


class GitHubNotFoundError(GitHubError):
    """Raised when GitHub answers 404 for a repository, release or feed."""

    def __init__(self, message: str = "Resource not found", *, url: str | None = None):
        super().__init__(message, url=url, status_code=404)


class GitHubAuthenticationError(GitHubError):
    """Raised when the configured token is rejected. Fatal for the run."""

    def __init__(self, message: str = "Invalid token provided", *, url: str | None = None):
        super().__init__(message, url=url, status_code=401)


class GitHubRateLimitError(GitHubError):
    """Raised when GitHub signals that the rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        url: str | None = None,
        status_code: int = 403,
        retry_after: float | None = None,
    ):
        details = {}
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, url=url, status_code=status_code, details=details)
        self.retry_after = retry_after


class RateLimitExhaustedError(GitHubRateLimitError):
    """Raised when rate-limit retries are used up. Fatal for the run."""

    def __init__(
        self,
        message: str = "Access to the resource is forbidden after multiple attempts",
        *,
        url: str | None = None,
        attempts: int | None = None,
    ):
        super().__init__(message, url=url)
        if attempts is not None:
            self.details["attempts"] = attempts
        self.attempts = attempts


class RunCancelledError(UpdaterError):
    """Raised when a run is cancelled while waiting on GitHub."""

    def __init__(self, message: str = "Run cancelled"):
        super().__init__(message)


class SynchronizationError(UpdaterError):
    """Raised when a downloaded artifact cannot be compared or written."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if path:
            details["path"] = path
        if url:
            details["url"] = url
        super().__init__(message, details=details)
        self.path = path
        self.url = url


def format_exception(error: BaseException) -> str:
    """
    Format an exception for user-friendly display.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, UpdaterError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"


def is_fatal_error(error: BaseException) -> bool:
    """
    Determine if an error must stop the whole run.

    The token and the rate-limit quota are shared by every module, so
    once either fails there is no point in trying the remaining ones.
    A cancellation stops the run as well.
    """
    return isinstance(
        error, (GitHubAuthenticationError, RateLimitExhaustedError, RunCancelledError)
    )


def is_retriable_error(error: BaseException) -> bool:
    """Determine if an error is suitable for retry."""
    if isinstance(error, RateLimitExhaustedError):
        return False
    return isinstance(error, GitHubRateLimitError)
