"""Configuration for the GitHub client, request executor, and merge pipeline.

Every setting has a default matching GitHub's published limits, so a bare
``TransferConfig()`` is usable in tests. ``from_env`` constructors read the
``REPOCLEANR_*`` environment variables for deployments.

Usage
-----
>>> config = ExecutorConfig()
>>> config.max_retries
3

>>> import os
>>> os.environ["REPOCLEANR_MAX_RETRIES"] = "5"
>>> ExecutorConfig.from_env().max_retries
5

"""

from __future__ import annotations

import dataclasses as dc
import os

from repocleanr.github.errors import GitHubConfigError

_MB = 1024 * 1024

DEFAULT_API_URL = "https://api.github.com"


def _parse_positive_int(env_var: str, default: int) -> int:
    """Read a positive integer env var, falling back to a default."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 1:
        msg = f"{env_var} must be positive, got: {value}"
        raise ValueError(msg)
    return value


def _parse_non_negative_float(env_var: str, default: float) -> float:
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{env_var} must be a number, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 0:
        msg = f"{env_var} must not be negative, got: {value}"
        raise ValueError(msg)
    return value


@dc.dataclass(frozen=True, slots=True)
class GitHubClientConfig:
    """Connection settings for :class:`repocleanr.github.client.GitHubRESTClient`.

    Attributes
    ----------
    token
        Bearer credential sent on every request.
    api_url
        Base URL of the REST API. GitHub Enterprise installs override this.
    timeout_s
        Per-request timeout. Exceeding it counts as a transient failure.
    user_agent
        ``User-Agent`` header value; GitHub rejects requests without one.

    """

    token: str
    api_url: str = DEFAULT_API_URL
    timeout_s: float = 30.0
    user_agent: str = "repocleanr/0.1"

    @classmethod
    def from_env(cls) -> GitHubClientConfig:
        """Build configuration from ``REPOCLEANR_GITHUB_TOKEN`` and friends.

        Raises
        ------
        GitHubConfigError
            If ``REPOCLEANR_GITHUB_TOKEN`` is unset or blank.

        """
        token = os.environ.get("REPOCLEANR_GITHUB_TOKEN", "").strip()
        if not token:
            raise GitHubConfigError.missing_token()
        api_url = os.environ.get("REPOCLEANR_GITHUB_API_URL", "").strip()
        return cls(
            token=token,
            api_url=(api_url or DEFAULT_API_URL).rstrip("/"),
            timeout_s=_parse_non_negative_float("REPOCLEANR_HTTP_TIMEOUT_S", 30.0),
        )


@dc.dataclass(frozen=True, slots=True)
class ExecutorConfig:
    """Retry and wait policy for the rate-limited request executor.

    Attributes
    ----------
    max_retries
        Retries allowed after the first attempt.
    backoff_base_s
        First transient-failure wait; doubles on each further attempt.
    reset_buffer_s
        Added to the time remaining until ``x-ratelimit-reset``.
    min_rate_wait_s
        Floor for waits computed from the reset timestamp.
    max_wait_s
        Hard cap for any single wait.

    """

    max_retries: int = 3
    backoff_base_s: float = 30.0
    reset_buffer_s: float = 5.0
    min_rate_wait_s: float = 60.0
    max_wait_s: float = 20 * 60.0

    @classmethod
    def from_env(cls) -> ExecutorConfig:
        """Create configuration, reading ``REPOCLEANR_MAX_RETRIES``."""
        return cls(max_retries=_parse_positive_int("REPOCLEANR_MAX_RETRIES", 3))


@dc.dataclass(frozen=True, slots=True)
class TransferConfig:
    """Throttling and sizing knobs for reading, writing, and chunking."""

    read_batch_size: int = 50
    read_batch_pause_s: float = 1.0
    max_file_size: int = 100 * _MB
    conservative_initial_wait_s: float = 10.0
    conservative_file_wait_s: float = 5.0
    blob_concurrency: int = 50
    chunk_payload_threshold: int = 80 * _MB
    chunk_max_files: int = 200
    chunk_target_size: int = 25 * _MB
    chunk_file_cap: int = 50
    chunk_pause_s: float = 2.0
    per_file_overhead: int = 100
    deletion_cooldown_s: float = 5.0
    conservative_deletion_cooldown_s: float = 10.0

    @classmethod
    def from_env(cls) -> TransferConfig:
        """Create configuration, allowing the batch size to be lowered."""
        return cls(
            read_batch_size=_parse_positive_int("REPOCLEANR_READ_BATCH_SIZE", 50),
            chunk_pause_s=_parse_non_negative_float("REPOCLEANR_CHUNK_PAUSE_S", 2.0),
        )


@dc.dataclass(frozen=True, slots=True)
class OAuthConfig:
    """OAuth application settings used by :class:`GitHubOAuthFlow`."""

    client_id: str
    client_secret: str
    callback_url: str
    authorize_url: str = "https://github.com/login/oauth/authorize"
    token_url: str = "https://github.com/login/oauth/access_token"  # noqa: S105
    state_ttl_s: float = 600.0

    @classmethod
    def from_env(cls) -> OAuthConfig:
        """Read ``REPOCLEANR_GITHUB_CLIENT_ID``/``_SECRET``/``CALLBACK_URL``."""
        values = {
            name: os.environ.get(f"REPOCLEANR_GITHUB_{name.upper()}", "").strip()
            for name in ("client_id", "client_secret", "callback_url")
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise GitHubConfigError.missing_oauth_settings(missing)
        return cls(**values)
