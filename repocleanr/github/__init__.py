"""GitHub REST client, response schemas, and error types."""

from __future__ import annotations

from .client import GitHubRESTClient, RepositoryAPI, parse_link_header
from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubConflictError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubResponseShapeError,
    RateLimitExceededError,
)
from .models import RateLimitStatus, RepositoryRef

__all__ = [
    "GitHubAPIError",
    "GitHubConfigError",
    "GitHubConflictError",
    "GitHubNotFoundError",
    "GitHubRESTClient",
    "GitHubRateLimitError",
    "GitHubResponseShapeError",
    "RateLimitExceededError",
    "RateLimitStatus",
    "RepositoryAPI",
    "RepositoryRef",
    "parse_link_header",
]
