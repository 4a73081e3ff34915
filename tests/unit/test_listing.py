"""Unit tests for repository listing and client-side filters."""

from __future__ import annotations

import pytest

from repocleanr.github.executor import RateLimitedExecutor
from repocleanr.github.listing import (
    RepositoryListQuery,
    list_repositories,
    page_number,
)
from repocleanr.github.models import RepositoryListing
from tests.helpers.fake_github import FakeGitHub


@pytest.fixture
def catalogue(github: FakeGitHub) -> FakeGitHub:
    """A handful of repositories with varied attributes."""
    github.add_repo("octo/api", language="Python", description="REST service")
    github.add_repo("octo/web", language="TypeScript", description="Front end")
    github.add_repo("octo/old-api", language="Python", archived=True)
    github.add_repo("octo/fork-of-x", language="Go", fork=True)
    return github


def test_server_params_only_include_set_values() -> None:
    """Unset sort and type are not sent."""
    query = RepositoryListQuery(sort="updated", page=3, per_page=50)

    assert query.server_params() == {"page": "3", "per_page": "50", "sort": "updated"}
    assert not query.has_client_filters


@pytest.mark.asyncio
async def test_unfiltered_page_uses_server_total(
    catalogue: FakeGitHub, executor: RateLimitedExecutor
) -> None:
    """Without filters every repository is returned with the server count."""
    page = await list_repositories(catalogue, executor)

    assert len(page.repositories) == 4
    assert page.total_count == 4
    assert not page.filtered


@pytest.mark.asyncio
async def test_search_matches_name_or_description(
    catalogue: FakeGitHub, executor: RateLimitedExecutor
) -> None:
    """Search is case-insensitive over name and description."""
    page = await list_repositories(
        catalogue, executor, RepositoryListQuery(search="API")
    )

    assert [repo.name for repo in page.repositories] == ["api", "old-api"]
    assert page.filtered
    assert page.total_count == 2, "Filtered counts describe this page only"

    by_description = await list_repositories(
        catalogue, executor, RepositoryListQuery(search="front")
    )
    assert [repo.name for repo in by_description.repositories] == ["web"]


@pytest.mark.asyncio
async def test_attribute_filters_combine(
    catalogue: FakeGitHub, executor: RateLimitedExecutor
) -> None:
    """Language, archived, and fork filters all apply."""
    page = await list_repositories(
        catalogue,
        executor,
        RepositoryListQuery(language="Python", archived=False, fork=False),
    )

    assert [repo.name for repo in page.repositories] == ["api"]


@pytest.mark.asyncio
async def test_pagination_links_become_page_numbers(
    github: FakeGitHub, executor: RateLimitedExecutor
) -> None:
    """next/prev/last links are exposed as page numbers."""
    github.listing_pages = [
        RepositoryListing(repositories=[], links={}, total_count=None, rate_limit=None),
        RepositoryListing(
            repositories=[],
            links={
                "next": "https://api.github.com/user/repos?page=3&per_page=30",
                "prev": "https://api.github.com/user/repos?page=1&per_page=30",
                "last": "https://api.github.com/user/repos?page=9&per_page=30",
            },
            total_count=None,
            rate_limit=None,
        ),
    ]

    page = await list_repositories(github, executor, RepositoryListQuery(page=2))

    assert page.page == 2
    assert page.has_next
    assert page.has_prev
    assert page.next_page == 3
    assert page.last_page == 9


def test_page_number_handles_missing_values() -> None:
    """Links without a page parameter yield None."""
    assert page_number(None) is None
    assert page_number("https://api.github.com/user/repos") is None
    assert page_number("https://api.github.com/user/repos?page=x") is None
