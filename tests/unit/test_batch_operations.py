"""Unit tests for batch repository operations."""

from __future__ import annotations

import pytest

from repocleanr.github.batch import BatchOperation, BatchScopeError, run_batch
from repocleanr.github.errors import GitHubAPIError
from repocleanr.github.executor import RateLimitedExecutor
from repocleanr.github.models import RepositoryRef
from tests.helpers.fake_github import FakeGitHub, rate_limited


@pytest.fixture
def repos(github: FakeGitHub) -> list[RepositoryRef]:
    """Three repositories to operate on."""
    return [github.add_repo(f"octo/r{index}", {"a": "a"}) for index in range(3)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("operation", "attribute", "expected"),
    [
        (BatchOperation.ARCHIVE, "archived", True),
        (BatchOperation.VISIBILITY_PRIVATE, "private", True),
    ],
)
async def test_settings_changes_apply_to_every_repository(
    github: FakeGitHub,
    executor: RateLimitedExecutor,
    repos: list[RepositoryRef],
    operation: BatchOperation,
    attribute: str,
    expected: bool,  # noqa: FBT001
) -> None:
    """Each repository receives the settings change."""
    result = await run_batch(github, executor, operation, repos)

    assert result.successful == 3
    assert all(getattr(github.repos[repo], attribute) is expected for repo in repos)


@pytest.mark.asyncio
async def test_unarchive_and_publish(
    github: FakeGitHub, executor: RateLimitedExecutor
) -> None:
    """Reverse operations clear the flags again."""
    repo = github.add_repo("octo/x", {"a": "a"}, archived=True, private=True)

    await run_batch(github, executor, BatchOperation.UNARCHIVE, [repo])
    await run_batch(github, executor, BatchOperation.VISIBILITY_PUBLIC, [repo])

    assert not github.repos[repo].archived
    assert not github.repos[repo].private


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_batch(
    github: FakeGitHub, executor: RateLimitedExecutor, repos: list[RepositoryRef]
) -> None:
    """A refused repository is reported; the others are still processed."""
    github.fail_always(
        "delete_repository",
        repos[1].slug,
        GitHubAPIError("Must have admin rights", status_code=403),
    )

    result = await run_batch(github, executor, BatchOperation.DELETE, repos)

    assert [item.success for item in result.results] == [True, False, True]
    assert result.results[1].error == "Must have admin rights"
    assert github.deleted == [repos[0], repos[2]]
    assert result.failed == 1


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_halts_the_batch(
    github: FakeGitHub, executor: RateLimitedExecutor, repos: list[RepositoryRef]
) -> None:
    """Remaining repositories are reported as not attempted."""
    github.fail_always("update_repository", repos[1].slug, rate_limited(retry_after=1))

    result = await run_batch(github, executor, BatchOperation.ARCHIVE, repos)

    assert [item.success for item in result.results] == [True, False, False]
    assert result.results[2].error == "not attempted"
    assert not github.repos[repos[2]].archived


@pytest.mark.asyncio
async def test_delete_requires_delete_scope(
    github: FakeGitHub, executor: RateLimitedExecutor, repos: list[RepositoryRef]
) -> None:
    """Deleting without delete_repo is refused before any call."""
    with pytest.raises(BatchScopeError, match="delete_repo"):
        await run_batch(
            github,
            executor,
            BatchOperation.DELETE,
            repos,
            granted_scopes=frozenset({"repo"}),
        )

    assert github.calls == []


@pytest.mark.asyncio
async def test_empty_batch_succeeds(
    github: FakeGitHub, executor: RateLimitedExecutor
) -> None:
    """Nothing to do is not an error."""
    result = await run_batch(github, executor, BatchOperation.ARCHIVE, [])

    assert result.results == ()
    assert result.successful == 0
