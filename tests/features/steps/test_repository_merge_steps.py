"""Behavioural tests for merging repositories."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from repocleanr.config import TransferConfig
from repocleanr.github.errors import GitHubNotFoundError
from repocleanr.github.models import RepositoryRef
from repocleanr.merge.models import MergeLayout, MergePhase, MergePlan
from repocleanr.merge.orchestrator import MergeOrchestrator
from tests.helpers.fake_github import FakeGitHub, rate_limited
from tests.helpers.fake_sleep import RecordingSleep

if typ.TYPE_CHECKING:
    from repocleanr.merge.models import MergeRunResult


def run_async[T](coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


def _split(values: str) -> list[str]:
    return [value.strip() for value in values.split(",") if value.strip()]


class MergeContext(typ.TypedDict, total=False):
    """Shared state used by repository merge steps."""

    github: FakeGitHub
    target: RepositoryRef
    result: MergeRunResult


@scenario(
    "../repository_merge.feature",
    "Two repositories are merged into separate folders",
)
def test_two_repositories_are_merged() -> None:
    """Behavioural test: complete sources are merged and deleted."""


@scenario("../repository_merge.feature", "A source with an unreadable file is kept")
def test_source_with_unreadable_file_is_kept() -> None:
    """Behavioural test: incomplete sources survive the merge."""


@scenario("../repository_merge.feature", "Rate-limit exhaustion stops the merge")
def test_rate_limit_exhaustion_stops_the_merge() -> None:
    """Behavioural test: throttling halts before the next source."""


@pytest.fixture
def merge_context() -> MergeContext:
    """Provide a fresh in-memory GitHub per scenario."""
    return {"github": FakeGitHub(scopes=frozenset({"repo", "delete_repo"}))}


@given(parsers.parse('a target repository "{slug}" containing "{path}"'))
def target_repository(merge_context: MergeContext, slug: str, path: str) -> None:
    """Create the target with one existing file."""
    merge_context["github"].add_repo(slug, {path: f"existing {path}"})


@given(parsers.parse('a source repository "{slug}" with files "{paths}"'))
def source_repository(merge_context: MergeContext, slug: str, paths: str) -> None:
    """Create a source whose files hold their own path as content."""
    merge_context["github"].add_repo(
        slug, {path: f"{slug}:{path}" for path in _split(paths)}
    )


@given(parsers.parse('the file "{path}" cannot be read'))
def unreadable_file(merge_context: MergeContext, path: str) -> None:
    """Make every read of ``path`` fail with a 404."""
    merge_context["github"].fail_always(
        "get_blob", path, GitHubNotFoundError("blob missing", status_code=404)
    )


@given(parsers.parse('GitHub keeps rate limiting reads of "{slug}"'))
def rate_limited_reads(merge_context: MergeContext, slug: str) -> None:
    """Throttle every tree listing of ``slug``."""
    merge_context["github"].fail_always("get_tree", slug, rate_limited(retry_after=5))


@when(parsers.parse('I merge "{sources}" into "{target}" using separate folders'))
def run_merge(merge_context: MergeContext, sources: str, target: str) -> None:
    """Run the merge with recorded, instant waits."""
    plan = MergePlan(
        source_repos=tuple(RepositoryRef.parse(slug) for slug in _split(sources)),
        target_repo=RepositoryRef.parse(target),
        layout=MergeLayout.SEPARATE_FOLDERS,
    )
    orchestrator = MergeOrchestrator(
        merge_context["github"],
        config=TransferConfig(),
        sleep=RecordingSleep(),
        granted_scopes=frozenset({"repo", "delete_repo"}),
    )
    merge_context["target"] = plan.target_repo
    merge_context["result"] = run_async(orchestrator.run(plan))


@then("the merge completes")
def merge_completes(merge_context: MergeContext) -> None:
    """The run ended in the complete phase."""
    result = merge_context["result"]
    assert result.phase is MergePhase.COMPLETE, result.errors


@then(parsers.parse('the merge ends in error halted at "{slug}"'))
def merge_halted(merge_context: MergeContext, slug: str) -> None:
    """The run stopped at ``slug`` with an error phase."""
    result = merge_context["result"]
    assert result.phase is MergePhase.ERROR
    assert result.halted_at == RepositoryRef.parse(slug)


@then(parsers.parse('the target contains "{paths}"'))
def target_contains(merge_context: MergeContext, paths: str) -> None:
    """The target branch holds exactly the listed files."""
    github = merge_context["github"]
    assert sorted(github.files(merge_context["target"])) == sorted(_split(paths))


@then(parsers.parse('the source repositories "{slugs}" are deleted'))
def sources_deleted(merge_context: MergeContext, slugs: str) -> None:
    """Each listed source was deleted by the run."""
    github = merge_context["github"]
    for slug in _split(slugs):
        ref = RepositoryRef.parse(slug)
        assert ref in github.deleted, f"Expected {slug} to be deleted"
        assert ref not in github.repos


@then(parsers.parse('the source repository "{slug}" is kept'))
def source_kept(merge_context: MergeContext, slug: str) -> None:
    """The source still exists after the run."""
    ref = RepositoryRef.parse(slug)
    assert ref in merge_context["github"].repos, f"Expected {slug} to be kept"


@then(parsers.parse('no request touched "{slug}"'))
def untouched(merge_context: MergeContext, slug: str) -> None:
    """No call was made with ``slug`` as its key."""
    assert all(key != slug for _, key in merge_context["github"].calls)
