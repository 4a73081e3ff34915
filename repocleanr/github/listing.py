"""Repository listing with server-side paging and client-side filters.

GitHub's repository listing endpoints page and sort on the server but cannot
filter by name, language, archive state, or fork state. Those filters are
applied to each returned page, so a filtered page may hold fewer than
``per_page`` entries and its counts describe that page only.
"""

from __future__ import annotations

import dataclasses
import typing as typ
from urllib.parse import parse_qs, urlsplit

from repocleanr.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    from .client import RepositoryAPI
    from .executor import RateLimitedExecutor
    from .models import RateLimitStatus, RepositoryPayload

logger = get_logger(__name__)

ListType = typ.Literal["all", "owner", "public", "private", "member"]
ListSort = typ.Literal["created", "updated", "pushed", "full_name"]
ListDirection = typ.Literal["asc", "desc"]


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryListQuery:
    """Listing parameters; the first group is sent to GitHub."""

    type: ListType | None = None
    sort: ListSort | None = None
    direction: ListDirection | None = None
    page: int = 1
    per_page: int = 30
    org: str | None = None
    search: str | None = None
    language: str | None = None
    archived: bool | None = None
    fork: bool | None = None

    def server_params(self) -> dict[str, str]:
        """Return the query string GitHub understands."""
        params = {"page": str(self.page), "per_page": str(self.per_page)}
        for name in ("type", "sort", "direction"):
            value = getattr(self, name)
            if value is not None:
                params[name] = value
        return params

    @property
    def has_client_filters(self) -> bool:
        """Return True when any filter must be applied after fetching."""
        return bool(self.search) or any(
            value is not None for value in (self.language, self.archived, self.fork)
        )

    def matches(self, repo: RepositoryPayload) -> bool:
        """Return True when ``repo`` passes every client-side filter."""
        if self.search:
            term = self.search.lower()
            description = (repo.description or "").lower()
            if term not in repo.name.lower() and term not in description:
                return False
        if self.language is not None and repo.language != self.language:
            return False
        if self.archived is not None and repo.archived != self.archived:
            return False
        return self.fork is None or repo.fork == self.fork


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryPage:
    """One page of listed repositories and where to go next."""

    repositories: list[RepositoryPayload]
    page: int
    per_page: int
    total_count: int
    has_next: bool
    has_prev: bool
    next_page: int | None = None
    last_page: int | None = None
    filtered: bool = False
    rate_limit: RateLimitStatus | None = None


def page_number(url: str | None) -> int | None:
    """Return the ``page`` query parameter of a pagination link."""
    if not url:
        return None
    values = parse_qs(urlsplit(url).query).get("page")
    if not values or not values[0].isdigit():
        return None
    return int(values[0])


async def list_repositories(
    api: RepositoryAPI,
    executor: RateLimitedExecutor,
    query: RepositoryListQuery | None = None,
) -> RepositoryPage:
    """Fetch one page of repositories and apply the client-side filters."""
    query = query or RepositoryListQuery()
    listing = await executor.execute(
        lambda: api.list_repositories(org=query.org, params=query.server_params()),
        description=f"list_repositories page={query.page}",
    )
    repositories = [repo for repo in listing.repositories if query.matches(repo)]
    filtered = query.has_client_filters
    if filtered:
        log_debug(
            logger,
            "Client-side filters kept %d of %d repositories on page %d",
            len(repositories),
            len(listing.repositories),
            query.page,
        )
        total = len(repositories)
    else:
        total = listing.total_count or len(repositories)

    links = listing.links
    return RepositoryPage(
        repositories=repositories,
        page=query.page,
        per_page=query.per_page,
        total_count=total,
        has_next="next" in links,
        has_prev="prev" in links,
        next_page=page_number(links.get("next")),
        last_page=page_number(links.get("last")),
        filtered=filtered,
        rate_limit=listing.rate_limit,
    )
