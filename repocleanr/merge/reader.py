"""Tree Reader: read a repository's whole file tree with few API calls.

One recursive tree listing replaces a directory walk. Blob contents are then
fetched in concurrent batches with a pause between batches. Files over the
size limit and files whose fetch fails are left out of the snapshot but
recorded on it, so callers can tell a partial read from a complete one.
"""

from __future__ import annotations

import asyncio
import typing as typ

import httpx

from repocleanr.config import TransferConfig
from repocleanr.github.errors import (
    GitHubAPIError,
    GitHubResponseShapeError,
    RateLimitExceededError,
)
from repocleanr.logging import get_logger, log_error, log_info, log_warning

from .models import FileEncoding, FileEntry, ReadResult, TreeSnapshot

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.debug_log import DebugLog
    from repocleanr.github.client import RepositoryAPI
    from repocleanr.github.executor import RateLimitedExecutor
    from repocleanr.github.models import (
        BlobPayload,
        GitFileMode,
        RepositoryRef,
        TreeEntryPayload,
    )

    type Sleep = cabc.Callable[[float], cabc.Awaitable[None]]

logger = get_logger(__name__)

# Errors that lose one file (or one read) without aborting the run
READ_ERRORS = (GitHubAPIError, GitHubResponseShapeError, httpx.TransportError)


def file_entry_from_blob(entry: TreeEntryPayload, blob: BlobPayload) -> FileEntry:
    """Build a :class:`FileEntry` from a tree entry and its fetched blob."""
    if blob.encoding == "base64":
        encoding = FileEncoding.BASE64
        # GitHub wraps base64 blob content at 60 columns
        content = blob.content.replace("\n", "")
    else:
        encoding = FileEncoding.UTF8
        content = blob.content
    return FileEntry(
        path=entry.path,
        content=content,
        encoding=encoding,
        size=entry.size or blob.size,
        source_object_id=entry.sha,
        mode=typ.cast("GitFileMode", entry.mode),
    )


def batched[T](items: cabc.Sequence[T], size: int) -> list[cabc.Sequence[T]]:
    """Split ``items`` into consecutive slices of at most ``size``."""
    return [items[start : start + size] for start in range(0, len(items), size)]


class TreeReader:
    """Read a full repository snapshot through the Git data API."""

    def __init__(
        self,
        api: RepositoryAPI,
        executor: RateLimitedExecutor,
        config: TransferConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        debug_log: DebugLog | None = None,
    ) -> None:
        """Create a reader; ``sleep`` paces batches and is injectable."""
        self._api = api
        self._executor = executor
        self._config = config or TransferConfig()
        self._sleep = sleep
        self._debug_log = debug_log

    def _record(
        self, event: str, message: str, repo: RepositoryRef, **kw: object
    ) -> None:
        if self._debug_log is not None:
            self._debug_log.record(event, message, repo=repo.slug, **kw)

    async def _resolve_commit(
        self, repo: RepositoryRef, branch: str
    ) -> tuple[str, str] | None:
        """Return ``(branch, commit_sha)``, falling back to the default branch."""
        try:
            ref = await self._executor.execute(
                lambda: self._api.get_branch_ref(repo, branch),
                description=f"get_branch_ref {repo}@{branch}",
            )
        except READ_ERRORS as exc:
            log_warning(
                logger,
                "Branch %s not readable on %s (%s); trying default branch",
                branch,
                repo,
                exc,
            )
        else:
            return branch, ref.target.sha

        try:
            info = await self._executor.execute(
                lambda: self._api.get_repository(repo),
                description=f"get_repository {repo}",
            )
            default = info.default_branch
            ref = await self._executor.execute(
                lambda: self._api.get_branch_ref(repo, default),
                description=f"get_branch_ref {repo}@{default}",
            )
        except READ_ERRORS as exc:
            log_warning(logger, "No readable branch on %s: %s", repo, exc)
            return None
        return default, ref.target.sha

    async def _fetch_blob(
        self, repo: RepositoryRef, entry: TreeEntryPayload
    ) -> FileEntry:
        blob = await self._executor.execute(
            lambda: self._api.get_blob(repo, entry.sha),
            description=f"get_blob {repo}:{entry.path}",
        )
        return file_entry_from_blob(entry, blob)

    async def read_tree(self, repo: RepositoryRef, branch: str) -> ReadResult:
        """Read every file of ``repo`` at ``branch``.

        Parameters
        ----------
        repo
            Source repository.
        branch
            Branch to read; the repository's default branch is used when it
            does not exist.

        Returns
        -------
        ReadResult
            A failure when no branch could be resolved or the tree listing
            failed; otherwise a snapshot with per-file diagnostics.

        Raises
        ------
        RateLimitExceededError
            When any call exhausted its rate-limit retries.

        """
        resolved = await self._resolve_commit(repo, branch)
        if resolved is None:
            return ReadResult.failure(
                f"Repository {repo} appears to be empty or inaccessible"
            )
        read_branch, commit_sha = resolved

        try:
            tree = await self._executor.execute(
                lambda: self._api.get_tree(repo, commit_sha, recursive=True),
                description=f"get_tree {repo}@{read_branch}",
            )
        except READ_ERRORS as exc:
            log_error(logger, "Recursive tree fetch failed for %s: %s", repo, exc)
            return ReadResult.failure(f"Failed to fetch repository tree: {exc}")

        if tree.truncated:
            log_warning(
                logger,
                "Tree listing for %s was truncated; reading the %d entries returned",
                repo,
                len(tree.tree),
            )

        blobs = [entry for entry in tree.tree if entry.type == "blob"]
        wanted: list[TreeEntryPayload] = []
        skipped: list[str] = []
        for entry in blobs:
            if (entry.size or 0) > self._config.max_file_size:
                log_warning(
                    logger,
                    "Skipping large file %s:%s (%d bytes > %d)",
                    repo,
                    entry.path,
                    entry.size,
                    self._config.max_file_size,
                )
                skipped.append(entry.path)
            else:
                wanted.append(entry)

        files, failed = await self._fetch_in_batches(repo, wanted)
        log_info(
            logger,
            "Read %d/%d files from %s@%s",
            len(files),
            len(blobs),
            repo,
            read_branch,
        )
        snapshot = TreeSnapshot(
            files=tuple(files),
            branch=read_branch,
            expected_count=len(blobs),
            skipped=tuple(skipped),
            failed=tuple(failed),
            truncated=tree.truncated,
        )
        self._record(
            "reader.tree",
            f"read {len(files)} of {len(blobs)} files",
            repo,
            branch=read_branch,
            skipped=len(skipped),
            failed=len(failed),
            truncated=tree.truncated,
        )
        return ReadResult(success=True, snapshot=snapshot)

    async def _fetch_in_batches(
        self, repo: RepositoryRef, entries: list[TreeEntryPayload]
    ) -> tuple[list[FileEntry], list[str]]:
        files: list[FileEntry] = []
        failed: list[str] = []
        batches = batched(entries, self._config.read_batch_size)
        for number, batch in enumerate(batches, start=1):
            log_info(
                logger,
                "Fetching batch %d/%d (%d files) from %s",
                number,
                len(batches),
                len(batch),
                repo,
            )
            results = await asyncio.gather(
                *(self._fetch_blob(repo, entry) for entry in batch),
                return_exceptions=True,
            )
            for entry, result in zip(batch, results, strict=True):
                if isinstance(result, RateLimitExceededError):
                    raise result
                if isinstance(result, READ_ERRORS):
                    log_error(
                        logger,
                        "Failed to fetch blob for %s:%s: %s",
                        repo,
                        entry.path,
                        result,
                    )
                    failed.append(entry.path)
                elif isinstance(result, BaseException):
                    raise result
                else:
                    files.append(result)
            if number < len(batches):
                await self._sleep(self._config.read_batch_pause_s)
        return files, failed
