"""GitHub REST client implementing the Remote Repository API.

The client performs exactly one HTTP request per method call and maps error
statuses onto the typed errors in :mod:`repocleanr.github.errors`. Retrying is
not its job: callers wrap calls in
:class:`repocleanr.github.executor.RateLimitedExecutor`.
"""

from __future__ import annotations

import typing as typ
from urllib.parse import quote

import httpx
import msgspec

from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubConflictError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubResponseShapeError,
)
from .models import (
    AuthenticatedUser,
    BlobPayload,
    CommitPayload,
    ContentEntryPayload,
    ContentFilePayload,
    GitRefPayload,
    RateLimitPayload,
    RateLimitStatus,
    RepositoryListing,
    RepositoryPayload,
    ShaPayload,
    TreePayload,
    UserPayload,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.config import GitHubClientConfig

    from .models import NewTreeEntry, RepositoryRef

BlobEncoding = typ.Literal["utf-8", "base64"]

_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_FORBIDDEN = 403
_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409
_HTTP_TOO_MANY_REQUESTS = 429


class RepositoryAPI(typ.Protocol):
    """Remote repository operations consumed by the merge pipeline."""

    async def list_repositories(
        self, *, org: str | None = None, params: dict[str, str] | None = None
    ) -> RepositoryListing:
        """Return one page of the caller's (or an organisation's) repositories."""
        ...

    async def get_repository(self, repo: RepositoryRef) -> RepositoryPayload:
        """Return repository metadata."""
        ...

    async def update_repository(
        self, repo: RepositoryRef, changes: dict[str, typ.Any]
    ) -> RepositoryPayload:
        """Apply settings changes (archived, private, ...) to a repository."""
        ...

    async def delete_repository(self, repo: RepositoryRef) -> None:
        """Delete a repository."""
        ...

    async def get_branch_ref(self, repo: RepositoryRef, branch: str) -> GitRefPayload:
        """Resolve ``refs/heads/<branch>``."""
        ...

    async def create_ref(
        self, repo: RepositoryRef, branch: str, sha: str
    ) -> GitRefPayload:
        """Create ``refs/heads/<branch>`` pointing at ``sha``."""
        ...

    async def update_ref(
        self, repo: RepositoryRef, branch: str, sha: str
    ) -> GitRefPayload:
        """Move ``refs/heads/<branch>`` to ``sha``."""
        ...

    async def get_tree(
        self, repo: RepositoryRef, sha: str, *, recursive: bool = False
    ) -> TreePayload:
        """Return the tree for a tree or commit SHA."""
        ...

    async def get_blob(self, repo: RepositoryRef, sha: str) -> BlobPayload:
        """Return blob content."""
        ...

    async def create_blob(
        self, repo: RepositoryRef, content: str, encoding: BlobEncoding
    ) -> ShaPayload:
        """Store content and return the new blob SHA."""
        ...

    async def create_tree(
        self,
        repo: RepositoryRef,
        entries: cabc.Sequence[NewTreeEntry],
        *,
        base_tree: str | None = None,
    ) -> TreePayload:
        """Create a tree from entries, layered over ``base_tree`` when given."""
        ...

    async def create_commit(
        self,
        repo: RepositoryRef,
        message: str,
        tree_sha: str,
        parents: cabc.Sequence[str],
    ) -> CommitPayload:
        """Create a commit object."""
        ...

    async def list_contents(
        self, repo: RepositoryRef, path: str = "", *, ref: str | None = None
    ) -> list[ContentEntryPayload]:
        """List a directory through the contents API."""
        ...

    async def get_content(
        self, repo: RepositoryRef, path: str, *, ref: str | None = None
    ) -> ContentFilePayload:
        """Return one file through the contents API."""
        ...

    async def get_rate_limit(self) -> RateLimitStatus:
        """Return the core rate-limit budget."""
        ...

    async def get_authenticated_user(self) -> AuthenticatedUser:
        """Return the token owner and the scopes granted to the token."""
        ...


def _parse_retry_after(value: str | None) -> float | None:
    if value is None or not value.strip().isdigit():
        return None
    return float(value.strip())


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return ""


def _is_throttled(response: httpx.Response) -> bool:
    if response.status_code == _HTTP_TOO_MANY_REQUESTS:
        return True
    if response.status_code != _HTTP_FORBIDDEN:
        return False
    headers = response.headers
    return headers.get("x-ratelimit-remaining") == "0" or "retry-after" in headers


def raise_for_github_status(response: httpx.Response) -> None:
    """Raise the typed error matching a non-2xx GitHub response."""
    status = response.status_code
    if status < _HTTP_ERROR_STATUS_THRESHOLD:
        return
    path = response.request.url.path
    detail = _error_detail(response)
    if _is_throttled(response):
        status_info = RateLimitStatus.from_headers(response.headers)
        raise GitHubRateLimitError(
            f"GitHub rate limit hit ({status}) on {path}: {detail}",
            status_code=status,
            path=path,
            retry_after=_parse_retry_after(response.headers.get("retry-after")),
            reset_at=status_info.reset_at if status_info else None,
        )
    error_type: type[GitHubAPIError] = GitHubAPIError
    if status == _HTTP_NOT_FOUND:
        error_type = GitHubNotFoundError
    elif status == _HTTP_CONFLICT:
        error_type = GitHubConflictError
    suffix = f": {detail}" if detail else ""
    raise error_type(
        f"GitHub HTTP {status} {path}{suffix}", status_code=status, path=path
    )


def _decode[T](response: httpx.Response, schema: type[T]) -> T:
    try:
        return msgspec.json.decode(response.content, type=schema)
    except (msgspec.ValidationError, msgspec.DecodeError) as exc:
        name = getattr(schema, "__name__", str(schema))
        raise GitHubResponseShapeError.mismatch(name, exc) from exc


def parse_link_header(value: str | None) -> dict[str, str]:
    """Parse an RFC 8288 ``Link`` header into ``{rel: url}``."""
    links: dict[str, str] = {}
    if not value:
        return links
    for part in value.split(","):
        section = part.split(";")
        if len(section) != 2:  # noqa: PLR2004
            continue
        url = section[0].strip().removeprefix("<").removesuffix(">")
        rel = section[1].strip()
        if rel.startswith('rel="') and rel.endswith('"'):
            links[rel[5:-1]] = url
    return links


def _scopes_from_header(value: str | None) -> frozenset[str] | None:
    if value is None:
        return None
    return frozenset(scope.strip() for scope in value.split(",") if scope.strip())


class GitHubRESTClient:
    """``httpx``-backed implementation of :class:`RepositoryAPI`."""

    def __init__(
        self,
        config: GitHubClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if not config.token.strip():
            raise GitHubConfigError.empty_token()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": config.user_agent,
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GitHubRESTClient:
        """Return the client for use as an async context manager."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close owned resources on context exit."""
        await self.aclose()

    def _url(self, path: str) -> str:
        return f"{self._config.api_url}{path}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: object | None = None,
    ) -> httpx.Response:
        response = await self._client.request(
            method, self._url(path), params=params, json=json
        )
        raise_for_github_status(response)
        return response

    @staticmethod
    def _repo_path(repo: RepositoryRef) -> str:
        return f"/repos/{quote(repo.owner)}/{quote(repo.name)}"

    async def list_repositories(
        self, *, org: str | None = None, params: dict[str, str] | None = None
    ) -> RepositoryListing:
        """Return one page of repositories with pagination links."""
        path = f"/orgs/{quote(org)}/repos" if org else "/user/repos"
        response = await self._send("GET", path, params=params)
        total_raw = response.headers.get("x-total-count")
        return RepositoryListing(
            repositories=_decode(response, list[RepositoryPayload]),
            links=parse_link_header(response.headers.get("link")),
            total_count=int(total_raw) if total_raw and total_raw.isdigit() else None,
            rate_limit=RateLimitStatus.from_headers(response.headers),
        )

    async def get_repository(self, repo: RepositoryRef) -> RepositoryPayload:
        """Return repository metadata."""
        response = await self._send("GET", self._repo_path(repo))
        return _decode(response, RepositoryPayload)

    async def update_repository(
        self, repo: RepositoryRef, changes: dict[str, typ.Any]
    ) -> RepositoryPayload:
        """Apply settings changes to a repository."""
        response = await self._send("PATCH", self._repo_path(repo), json=changes)
        return _decode(response, RepositoryPayload)

    async def delete_repository(self, repo: RepositoryRef) -> None:
        """Delete a repository; requires the ``delete_repo`` scope."""
        await self._send("DELETE", self._repo_path(repo))

    async def get_branch_ref(self, repo: RepositoryRef, branch: str) -> GitRefPayload:
        """Resolve one branch through the single-ref endpoint."""
        response = await self._send(
            "GET", f"{self._repo_path(repo)}/git/ref/heads/{quote(branch)}"
        )
        return _decode(response, GitRefPayload)

    async def create_ref(
        self, repo: RepositoryRef, branch: str, sha: str
    ) -> GitRefPayload:
        """Create a branch reference."""
        response = await self._send(
            "POST",
            f"{self._repo_path(repo)}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        return _decode(response, GitRefPayload)

    async def update_ref(
        self, repo: RepositoryRef, branch: str, sha: str
    ) -> GitRefPayload:
        """Fast-forward a branch reference to ``sha``."""
        response = await self._send(
            "PATCH",
            f"{self._repo_path(repo)}/git/refs/heads/{quote(branch)}",
            json={"sha": sha, "force": False},
        )
        return _decode(response, GitRefPayload)

    async def get_tree(
        self, repo: RepositoryRef, sha: str, *, recursive: bool = False
    ) -> TreePayload:
        """Return a tree; ``recursive`` lists every nested entry in one call."""
        params = {"recursive": "1"} if recursive else None
        response = await self._send(
            "GET", f"{self._repo_path(repo)}/git/trees/{sha}", params=params
        )
        return _decode(response, TreePayload)

    async def get_blob(self, repo: RepositoryRef, sha: str) -> BlobPayload:
        """Return a blob's content (base64 encoded by GitHub)."""
        response = await self._send("GET", f"{self._repo_path(repo)}/git/blobs/{sha}")
        return _decode(response, BlobPayload)

    async def create_blob(
        self, repo: RepositoryRef, content: str, encoding: BlobEncoding
    ) -> ShaPayload:
        """Create a blob and return its SHA."""
        response = await self._send(
            "POST",
            f"{self._repo_path(repo)}/git/blobs",
            json={"content": content, "encoding": encoding},
        )
        return _decode(response, ShaPayload)

    async def create_tree(
        self,
        repo: RepositoryRef,
        entries: cabc.Sequence[NewTreeEntry],
        *,
        base_tree: str | None = None,
    ) -> TreePayload:
        """Create a tree object."""
        body: dict[str, typ.Any] = {
            "tree": [
                {
                    "path": entry.path,
                    "mode": entry.mode,
                    "type": entry.type,
                    "sha": entry.sha,
                }
                for entry in entries
            ]
        }
        if base_tree is not None:
            body["base_tree"] = base_tree
        response = await self._send(
            "POST", f"{self._repo_path(repo)}/git/trees", json=body
        )
        return _decode(response, TreePayload)

    async def create_commit(
        self,
        repo: RepositoryRef,
        message: str,
        tree_sha: str,
        parents: cabc.Sequence[str],
    ) -> CommitPayload:
        """Create a commit object."""
        response = await self._send(
            "POST",
            f"{self._repo_path(repo)}/git/commits",
            json={"message": message, "tree": tree_sha, "parents": list(parents)},
        )
        return _decode(response, CommitPayload)

    async def list_contents(
        self, repo: RepositoryRef, path: str = "", *, ref: str | None = None
    ) -> list[ContentEntryPayload]:
        """List a directory; a file path is a shape error, not a listing."""
        response = await self._send(
            "GET",
            f"{self._repo_path(repo)}/contents/{quote(path)}",
            params={"ref": ref} if ref else None,
        )
        return _decode(response, list[ContentEntryPayload])

    async def get_content(
        self, repo: RepositoryRef, path: str, *, ref: str | None = None
    ) -> ContentFilePayload:
        """Return one file; a directory path is a shape error."""
        response = await self._send(
            "GET",
            f"{self._repo_path(repo)}/contents/{quote(path)}",
            params={"ref": ref} if ref else None,
        )
        return _decode(response, ContentFilePayload)

    async def get_rate_limit(self) -> RateLimitStatus:
        """Return the core rate-limit budget; this call is not counted."""
        response = await self._send("GET", "/rate_limit")
        return RateLimitStatus.from_payload(_decode(response, RateLimitPayload).rate)

    async def get_authenticated_user(self) -> AuthenticatedUser:
        """Return the token owner and its ``X-OAuth-Scopes``."""
        response = await self._send("GET", "/user")
        user = _decode(response, UserPayload)
        return AuthenticatedUser(
            login=user.login,
            id=user.id,
            scopes=_scopes_from_header(response.headers.get("x-oauth-scopes")),
            rate_limit=RateLimitStatus.from_headers(response.headers),
        )
