"""GitHub API errors."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str | None = None,
    ) -> None:
        """Initialise with a message, optional HTTP status code and path."""
        self.status_code = status_code
        self.path = path
        super().__init__(message)

    @classmethod
    def http_error(
        cls, status_code: int, *, path: str | None = None, detail: str = ""
    ) -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        suffix = f": {detail}" if detail else ""
        target = f" {path}" if path else ""
        return cls(
            f"GitHub HTTP {status_code}{target}{suffix}",
            status_code=status_code,
            path=path,
        )

    @property
    def is_transient(self) -> bool:
        """Return True for server-side failures worth retrying."""
        return self.status_code is not None and (
            self.status_code >= 500 or self.status_code == 408  # noqa: PLR2004
        )


class GitHubNotFoundError(GitHubAPIError):
    """Raised for 404 responses (missing repository, branch, or object)."""


class GitHubConflictError(GitHubAPIError):
    """Raised for 409 responses; GitHub uses these for empty repositories."""


class GitHubRateLimitError(GitHubAPIError):
    """Raised when a response signals throttling (429, or 403 at quota).

    ``retry_after`` holds the ``retry-after`` header in seconds when present.
    ``reset_at`` holds the ``x-ratelimit-reset`` timestamp when present.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str | None = None,
        retry_after: float | None = None,
        reset_at: dt.datetime | None = None,
    ) -> None:
        """Initialise with the throttling hints carried by the response."""
        super().__init__(message, status_code=status_code, path=path)
        self.retry_after = retry_after
        self.reset_at = reset_at


class RateLimitExceededError(RuntimeError):
    """Raised when the executor has spent all retries waiting out throttling."""

    def __init__(self, attempts: int, *, description: str = "") -> None:
        """Initialise with the number of attempts that were throttled."""
        self.attempts = attempts
        self.description = description
        target = f" for {description}" if description else ""
        super().__init__(
            f"Rate limit exceeded after {attempts} attempts{target}; "
            "wait for the limit to reset or use conservative mode"
        )


class GitHubResponseShapeError(RuntimeError):
    """Raised when a response body does not match the expected schema."""

    @classmethod
    def mismatch(cls, schema: str, detail: object) -> GitHubResponseShapeError:
        """Return an error for a response that failed schema decoding."""
        return cls(f"GitHub response does not match {schema}: {detail}")


class GitHubConfigError(RuntimeError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def missing_token(cls) -> GitHubConfigError:
        """Return an error when no GitHub token is configured."""
        return cls("REPOCLEANR_GITHUB_TOKEN is required for GitHub API")

    @classmethod
    def empty_token(cls) -> GitHubConfigError:
        """Return an error when the provided token is empty."""
        return cls("GitHub token must be non-empty")

    @classmethod
    def missing_oauth_settings(cls, names: list[str]) -> GitHubConfigError:
        """Return an error naming the missing OAuth settings."""
        joined = ", ".join(f"REPOCLEANR_GITHUB_{name.upper()}" for name in names)
        return cls(f"OAuth configuration incomplete, missing: {joined}")
