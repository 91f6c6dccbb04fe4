"""Custom exceptions for GitHub API calls."""

from __future__ import annotations


class GithubError(Exception):
    """Base exception for GitHub API failures."""


class GithubConfigurationError(GithubError):
    """Raised when required configuration is missing."""


class GithubRateLimitError(GithubError):
    """Raised when the upstream service enforces a rate limit."""

    def __init__(self, message: str, retry_after: int | float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class GithubRetryableError(GithubError):
    """Raised for transient issues where retrying later may succeed."""


class GithubNotFoundError(GithubError):
    """Raised when the repository (or hook endpoint) is not visible to the token."""


class GithubPermissionError(GithubError):
    """
    Raised when the token lacks the rights for the call.

    Creating hooks needs admin rights on the repository and the
    ``admin:repo_hook`` (or ``repo``) scope.
    """
