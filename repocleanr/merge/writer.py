"""Bulk Writer: land a set of files in the target branch as one commit.

The write builds git objects bottom-up (blobs, one tree, one commit) and
only then moves the branch, so a failure part-way leaves the branch exactly
as it was. Existing files on the branch are preserved by layering the new
tree over the current one.
"""

from __future__ import annotations

import asyncio
import typing as typ

import httpx

from repocleanr.config import TransferConfig
from repocleanr.github.errors import (
    GitHubAPIError,
    GitHubConflictError,
    GitHubNotFoundError,
    GitHubResponseShapeError,
    RateLimitExceededError,
)
from repocleanr.github.models import NewTreeEntry
from repocleanr.logging import get_logger, log_error, log_info, log_warning

from .models import BulkWriteResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.debug_log import DebugLog
    from repocleanr.github.client import RepositoryAPI
    from repocleanr.github.executor import RateLimitedExecutor
    from repocleanr.github.models import RepositoryRef

    from .models import FileEntry

logger = get_logger(__name__)

_WRITE_ERRORS = (GitHubAPIError, GitHubResponseShapeError, httpx.TransportError)

# Placeholder branch name that is redirected to the repository's real default
GENERIC_DEFAULT_BRANCH = "main"


class _BranchTip(typ.NamedTuple):
    commit_sha: str
    tree_sha: str


class BulkWriter:
    """Write many files to a branch in a single commit."""

    def __init__(
        self,
        api: RepositoryAPI,
        executor: RateLimitedExecutor,
        config: TransferConfig | None = None,
        *,
        debug_log: DebugLog | None = None,
    ) -> None:
        """Create a writer bound to an API client and executor."""
        self._api = api
        self._executor = executor
        self._config = config or TransferConfig()
        self._debug_log = debug_log

    async def _resolve_branch(self, repo: RepositoryRef, branch: str) -> str:
        info = await self._executor.execute(
            lambda: self._api.get_repository(repo),
            description=f"get_repository {repo}",
        )
        if branch == GENERIC_DEFAULT_BRANCH and info.default_branch != branch:
            log_info(
                logger,
                "Using default branch %s of %s instead of %s",
                info.default_branch,
                repo,
                branch,
            )
            return info.default_branch
        return branch

    async def _branch_tip(self, repo: RepositoryRef, branch: str) -> _BranchTip | None:
        try:
            ref = await self._executor.execute(
                lambda: self._api.get_branch_ref(repo, branch),
                description=f"get_branch_ref {repo}@{branch}",
            )
        except (GitHubNotFoundError, GitHubConflictError):
            log_info(logger, "Branch %s of %s does not exist yet", branch, repo)
            return None
        commit_sha = ref.target.sha
        tree = await self._executor.execute(
            lambda: self._api.get_tree(repo, commit_sha),
            description=f"get_tree {repo}@{branch}",
        )
        return _BranchTip(commit_sha=commit_sha, tree_sha=tree.sha)

    async def _create_blobs(
        self, repo: RepositoryRef, files: cabc.Sequence[FileEntry]
    ) -> list[NewTreeEntry]:
        semaphore = asyncio.Semaphore(self._config.blob_concurrency)

        async def create(entry: FileEntry) -> NewTreeEntry:
            async with semaphore:
                blob = await self._executor.execute(
                    lambda: self._api.create_blob(
                        repo, entry.content, entry.encoding.blob_encoding
                    ),
                    description=f"create_blob {repo}:{entry.path}",
                )
            return NewTreeEntry(path=entry.path, sha=blob.sha, mode=entry.mode)

        results = await asyncio.gather(
            *(create(entry) for entry in files), return_exceptions=True
        )
        entries: list[NewTreeEntry] = []
        for result in results:
            if isinstance(result, BaseException):
                raise result
            entries.append(result)
        return entries

    async def bulk_write(
        self,
        target_repo: RepositoryRef,
        files: cabc.Sequence[FileEntry],
        commit_message: str,
        branch: str,
    ) -> BulkWriteResult:
        """Write ``files`` to ``target_repo`` as one commit on ``branch``.

        Parameters
        ----------
        target_repo
            Repository receiving the files.
        files
            Files to write; a later entry replaces an earlier one at the
            same path.
        commit_message
            Message of the single commit created.
        branch
            Branch to update or create. ``main`` is redirected to the
            repository's default branch when they differ.

        Returns
        -------
        BulkWriteResult
            Success with the commit SHA, or a failure whose ``error`` names
            the step that failed. When the commit exists but the branch could
            not be moved, the error carries the dangling commit SHA.

        Raises
        ------
        RateLimitExceededError
            When any call exhausted its rate-limit retries.

        """
        total = len(files)
        if total == 0:
            return BulkWriteResult(
                success=True, files_processed=0, total_files=0, branch=branch
            )

        try:
            branch = await self._resolve_branch(target_repo, branch)
        except _WRITE_ERRORS as exc:
            log_error(logger, "Target repository %s unavailable: %s", target_repo, exc)
            return BulkWriteResult(
                success=False,
                files_processed=0,
                total_files=total,
                error=f"Target repository {target_repo} not accessible: {exc}",
            )

        try:
            tip = await self._branch_tip(target_repo, branch)
            tree_entries = await self._create_blobs(target_repo, files)
            # Last entry for a path wins
            unique = {entry.path: entry for entry in tree_entries}
            tree = await self._executor.execute(
                lambda: self._api.create_tree(
                    target_repo,
                    list(unique.values()),
                    base_tree=tip.tree_sha if tip else None,
                ),
                description=f"create_tree {target_repo}",
            )
            commit = await self._executor.execute(
                lambda: self._api.create_commit(
                    target_repo,
                    commit_message,
                    tree.sha,
                    [tip.commit_sha] if tip else [],
                ),
                description=f"create_commit {target_repo}",
            )
        except RateLimitExceededError:
            raise
        except _WRITE_ERRORS as exc:
            log_error(logger, "Bulk write to %s failed: %s", target_repo, exc)
            return BulkWriteResult(
                success=False,
                files_processed=0,
                total_files=total,
                branch=branch,
                error=f"Failed to write files to {target_repo}: {exc}",
            )

        try:
            if tip is None:
                await self._executor.execute(
                    lambda: self._api.create_ref(target_repo, branch, commit.sha),
                    description=f"create_ref {target_repo}@{branch}",
                )
            else:
                await self._executor.execute(
                    lambda: self._api.update_ref(target_repo, branch, commit.sha),
                    description=f"update_ref {target_repo}@{branch}",
                )
        except _WRITE_ERRORS as exc:
            log_warning(
                logger,
                "Commit %s created on %s but branch %s was not moved: %s",
                commit.sha,
                target_repo,
                branch,
                exc,
            )
            return BulkWriteResult(
                success=False,
                files_processed=0,
                total_files=total,
                commit_sha=commit.sha,
                branch=branch,
                error=(
                    f"Commit {commit.sha} was created but updating "
                    f"refs/heads/{branch} failed: {exc}"
                ),
            )

        log_info(
            logger,
            "Committed %d files to %s@%s as %s",
            total,
            target_repo,
            branch,
            commit.sha,
        )
        if self._debug_log is not None:
            self._debug_log.record(
                "writer.commit",
                commit_message,
                repo=target_repo.slug,
                branch=branch,
                commit_sha=commit.sha,
                files=total,
            )
        return BulkWriteResult(
            success=True,
            files_processed=total,
            total_files=total,
            commit_sha=commit.sha,
            branch=branch,
        )
