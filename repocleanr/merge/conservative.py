"""Conservative Reader: a slow, root-only read for throttled accounts.

Used when a user asks for conservative mode, or when the Tree Reader fails or
finds nothing. It waits before its first call and between every file, lists
the root directory once, and fetches root-level files one at a time.
Directories are not walked; their names are recorded on the snapshot so the
orchestrator keeps the source repository.
"""

from __future__ import annotations

import asyncio
import typing as typ

from repocleanr.config import TransferConfig
from repocleanr.github.errors import (
    GitHubConflictError,
    GitHubNotFoundError,
    GitHubResponseShapeError,
)
from repocleanr.logging import get_logger, log_error, log_info, log_warning

from .models import FileEncoding, FileEntry, ReadResult, TreeSnapshot
from .reader import READ_ERRORS

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.debug_log import DebugLog
    from repocleanr.github.client import RepositoryAPI
    from repocleanr.github.executor import RateLimitedExecutor
    from repocleanr.github.models import ContentEntryPayload, RepositoryRef

    type Sleep = cabc.Callable[[float], cabc.Awaitable[None]]

logger = get_logger(__name__)


class ConservativeReader:
    """Read root-level files one by one with long pauses."""

    def __init__(
        self,
        api: RepositoryAPI,
        executor: RateLimitedExecutor,
        config: TransferConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        debug_log: DebugLog | None = None,
    ) -> None:
        """Create a reader; ``sleep`` provides the pacing waits."""
        self._api = api
        self._executor = executor
        self._config = config or TransferConfig()
        self._sleep = sleep
        self._debug_log = debug_log

    async def _list(
        self, repo: RepositoryRef, ref: str | None
    ) -> list[ContentEntryPayload]:
        return await self._executor.execute(
            lambda: self._api.list_contents(repo, "", ref=ref),
            description=f"list_contents {repo}@{ref or 'default'}",
        )

    async def _list_root(
        self, repo: RepositoryRef, branch: str
    ) -> tuple[list[ContentEntryPayload], str | None] | None:
        """List the root at ``branch``, or at the default branch if it is absent."""
        ref: str | None = branch
        try:
            try:
                return await self._list(repo, ref), ref
            except GitHubNotFoundError:
                log_info(logger, "%s has no branch %s; using default", repo, branch)
                ref = None
                return await self._list(repo, ref), ref
        except (GitHubNotFoundError, GitHubConflictError):
            log_info(logger, "%s is empty or has no readable root", repo)
            return [], ref
        except READ_ERRORS as exc:
            log_error(logger, "Listing root of %s failed: %s", repo, exc)
            return None

    async def _fetch_file(
        self, repo: RepositoryRef, ref: str | None, item: ContentEntryPayload
    ) -> FileEntry:
        payload = await self._executor.execute(
            lambda: self._api.get_content(repo, item.path, ref=ref),
            description=f"get_content {repo}:{item.path}",
        )
        size = payload.size or item.size
        content = payload.content
        if payload.encoding != "base64" or (not content and size > 0):
            # Files over 1 MB come back without a body; read the blob instead
            log_info(
                logger,
                "Contents API returned no body for %s:%s (encoding=%s); "
                "fetching blob %s",
                repo,
                item.path,
                payload.encoding,
                payload.sha,
            )
            blob = await self._executor.execute(
                lambda: self._api.get_blob(repo, payload.sha),
                description=f"get_blob {repo}:{item.path}",
            )
            if blob.encoding != "base64" or (not blob.content and size > 0):
                raise GitHubResponseShapeError.mismatch(
                    "BlobPayload",
                    f"no base64 content for {item.path} ({size} bytes)",
                )
            content = blob.content
        return FileEntry(
            path=item.path,
            content=content.replace("\n", ""),
            encoding=FileEncoding.BASE64,
            size=size,
            source_object_id=payload.sha,
        )

    async def read_root_files(self, repo: RepositoryRef, branch: str) -> ReadResult:
        """Read the root-level files of ``repo`` at ``branch``.

        A missing or empty repository yields an empty, successful snapshot.
        Rate-limit exhaustion propagates; any other per-file failure is
        logged and recorded in ``snapshot.failed``.
        """
        log_info(
            logger,
            "Conservative read of %s: waiting %.0fs before first request",
            repo,
            self._config.conservative_initial_wait_s,
        )
        await self._sleep(self._config.conservative_initial_wait_s)

        listed = await self._list_root(repo, branch)
        if listed is None:
            return ReadResult.failure(f"Failed to list root of {repo}")
        listing, ref = listed

        files: list[FileEntry] = []
        failed: list[str] = []
        skipped: list[str] = []
        directories = [item.path for item in listing if item.type == "dir"]
        candidates = [item for item in listing if item.type != "dir"]

        for item in candidates:
            if item.type != "file":
                log_warning(
                    logger, "Skipping %s entry %s:%s", item.type, repo, item.path
                )
                skipped.append(item.path)
                continue
            if item.size > self._config.max_file_size:
                log_warning(
                    logger,
                    "Skipping large file %s:%s (%d bytes)",
                    repo,
                    item.path,
                    item.size,
                )
                skipped.append(item.path)
                continue
            await self._sleep(self._config.conservative_file_wait_s)
            try:
                files.append(await self._fetch_file(repo, ref, item))
            except READ_ERRORS as exc:
                log_error(logger, "Failed to fetch %s:%s: %s", repo, item.path, exc)
                failed.append(item.path)

        if directories:
            log_warning(
                logger,
                "Conservative read of %s left %d directories unread: %s",
                repo,
                len(directories),
                ", ".join(directories),
            )
        if self._debug_log is not None:
            self._debug_log.record(
                "reader.conservative",
                f"read {len(files)} of {len(candidates)} root files",
                repo=repo.slug,
                branch=ref,
                skipped_directories=directories,
                failed=len(failed),
            )
        return ReadResult(
            success=True,
            snapshot=TreeSnapshot(
                files=tuple(files),
                branch=ref,
                expected_count=len(candidates),
                skipped=tuple(skipped),
                failed=tuple(failed),
                skipped_directories=tuple(directories),
            ),
        )
