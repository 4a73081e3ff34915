"""Typed response schemas for the GitHub REST endpoints repocleanr calls.

Each endpoint decodes into exactly one schema. A body that does not fit is a
:class:`~repocleanr.github.errors.GitHubResponseShapeError`; the client never
branches on alternative shapes.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec

from repocleanr.common.slug import parse_repo_slug, repo_slug
from repocleanr.common.time import from_epoch_seconds

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

GitFileMode = typ.Literal["100644", "100755", "040000", "160000", "120000"]
GitObjectType = typ.Literal["blob", "tree", "commit"]


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Identifies a source or target repository."""

    owner: str
    name: str

    @classmethod
    def parse(cls, slug: str) -> RepositoryRef:
        """Build a reference from an ``owner/name`` slug."""
        owner, name = parse_repo_slug(slug)
        return cls(owner=owner, name=name)

    @property
    def slug(self) -> str:
        """Return ``owner/name``."""
        return repo_slug(self.owner, self.name)

    def __str__(self) -> str:
        """Render as the slug so refs read naturally in messages."""
        return self.slug


class OwnerPayload(msgspec.Struct, kw_only=True):
    """Repository owner summary."""

    login: str
    type: str = "User"


class RepositoryPayload(msgspec.Struct, kw_only=True):
    """Repository metadata from ``GET /repos/{owner}/{repo}`` and listings."""

    id: int
    name: str
    full_name: str
    owner: OwnerPayload
    private: bool = False
    archived: bool = False
    fork: bool = False
    default_branch: str = "main"
    description: str | None = None
    language: str | None = None
    visibility: str | None = None
    size: int = 0


class GitObjectPayload(msgspec.Struct, kw_only=True):
    """Pointer to a git object."""

    sha: str
    type: str = "commit"


class GitRefPayload(msgspec.Struct, kw_only=True):
    """Branch reference (``refs/heads/<name>``)."""

    ref: str
    target: GitObjectPayload = msgspec.field(name="object")


class TreeEntryPayload(msgspec.Struct, kw_only=True):
    """One entry of a tree listing."""

    path: str
    mode: str
    type: str
    sha: str
    size: int | None = None


class TreePayload(msgspec.Struct, kw_only=True):
    """Tree object, optionally listed recursively.

    ``truncated`` is set by GitHub when a recursive listing exceeded its
    limits (about 100,000 entries or 7 MB).
    """

    sha: str
    tree: list[TreeEntryPayload] = msgspec.field(default_factory=list)
    truncated: bool = False


class BlobPayload(msgspec.Struct, kw_only=True):
    """Blob content from ``GET /git/blobs/{sha}``."""

    sha: str
    content: str
    encoding: str
    size: int = 0


class ShaPayload(msgspec.Struct, kw_only=True):
    """Response carrying only the identifier of a created object."""

    sha: str


class CommitPayload(msgspec.Struct, kw_only=True):
    """Commit object from ``POST /git/commits``."""

    sha: str
    tree: ShaPayload
    parents: list[ShaPayload] = msgspec.field(default_factory=list)
    message: str = ""


class ContentEntryPayload(msgspec.Struct, kw_only=True):
    """Directory listing entry from the contents API."""

    name: str
    path: str
    sha: str
    size: int = 0
    type: typ.Literal["file", "dir", "symlink", "submodule"] = "file"


class ContentFilePayload(msgspec.Struct, kw_only=True):
    """Single file from the contents API, with base64 content."""

    name: str
    path: str
    sha: str
    size: int = 0
    type: str = "file"
    content: str = ""
    encoding: str = "base64"


class UserPayload(msgspec.Struct, kw_only=True):
    """Authenticated user from ``GET /user``."""

    login: str
    id: int


class RateLimitResourcePayload(msgspec.Struct, kw_only=True):
    """Core rate-limit bucket from ``GET /rate_limit``."""

    limit: int
    remaining: int
    reset: int
    used: int = 0


class RateLimitPayload(msgspec.Struct, kw_only=True):
    """Body of ``GET /rate_limit``."""

    rate: RateLimitResourcePayload


@dataclasses.dataclass(frozen=True, slots=True)
class RateLimitStatus:
    """Current rate-limit budget for the authenticated token."""

    limit: int
    remaining: int
    reset_at: dt.datetime
    used: int = 0

    @classmethod
    def from_payload(cls, payload: RateLimitResourcePayload) -> RateLimitStatus:
        """Build a status from the ``/rate_limit`` resource body."""
        return cls(
            limit=payload.limit,
            remaining=payload.remaining,
            reset_at=from_epoch_seconds(payload.reset),
            used=payload.used,
        )

    @classmethod
    def from_headers(cls, headers: cabc.Mapping[str, str]) -> RateLimitStatus | None:
        """Build a status from ``x-ratelimit-*`` headers, if they are present."""
        try:
            limit = int(headers["x-ratelimit-limit"])
            remaining = int(headers["x-ratelimit-remaining"])
            reset = int(headers["x-ratelimit-reset"])
        except (KeyError, ValueError):
            return None
        used_raw = headers.get("x-ratelimit-used", "0")
        return cls(
            limit=limit,
            remaining=remaining,
            reset_at=from_epoch_seconds(reset),
            used=int(used_raw) if used_raw.isdigit() else 0,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class NewTreeEntry:
    """Entry submitted to ``POST /git/trees``."""

    path: str
    sha: str
    mode: GitFileMode = "100644"
    type: GitObjectType = "blob"


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryListing:
    """One page of ``GET /user/repos`` or ``GET /orgs/{org}/repos``."""

    repositories: list[RepositoryPayload]
    links: dict[str, str]
    total_count: int | None
    rate_limit: RateLimitStatus | None


@dataclasses.dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    """The token owner together with the scopes granted to the token.

    ``scopes`` is None when GitHub sent no ``X-OAuth-Scopes`` header, as for
    fine-grained tokens and GitHub App tokens.
    """

    login: str
    id: int
    scopes: frozenset[str] | None
    rate_limit: RateLimitStatus | None
