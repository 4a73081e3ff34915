"""Chunked Transfer Coordinator: split oversized writes into several commits.

Small transfers go straight to the Bulk Writer as one commit. A transfer
whose estimated request payload or file count is too large is split into
sequential chunks, each committed separately with a pause in between.
"""

from __future__ import annotations

import asyncio
import math
import typing as typ

from repocleanr.config import TransferConfig
from repocleanr.logging import get_logger, log_error, log_info, log_warning

from .models import TransferResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.github.models import RepositoryRef

    from .cancellation import CancellationToken
    from .models import FileEntry
    from .writer import BulkWriter

    type Sleep = cabc.Callable[[float], cabc.Awaitable[None]]

logger = get_logger(__name__)


def estimate_payload(
    files: cabc.Sequence[FileEntry], per_file_overhead: int = 100
) -> int:
    """Return the approximate request size for writing ``files`` at once."""
    return sum(
        2 * len(entry.path) + len(entry.content) + per_file_overhead
        for entry in files
    )


def files_per_chunk(files: cabc.Sequence[FileEntry], config: TransferConfig) -> int:
    """Return how many files go in each chunk for the given file set."""
    if not files:
        return config.chunk_file_cap
    average = sum(len(entry.content) for entry in files) / len(files)
    if average == 0:
        return config.chunk_file_cap
    return min(
        max(1, math.floor(config.chunk_target_size / average)),
        config.chunk_file_cap,
    )


def split_chunks[T](items: cabc.Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size``."""
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class ChunkedTransferCoordinator:
    """Decide between a single write and a sequence of chunk commits."""

    def __init__(
        self,
        writer: BulkWriter,
        config: TransferConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Create a coordinator over ``writer``; ``sleep`` paces chunks."""
        self._writer = writer
        self._config = config or TransferConfig()
        self._sleep = sleep

    def needs_chunking(self, files: cabc.Sequence[FileEntry]) -> bool:
        """Return True when ``files`` is too large for one commit request."""
        cfg = self._config
        return (
            len(files) > cfg.chunk_max_files
            or estimate_payload(files, cfg.per_file_overhead)
            > cfg.chunk_payload_threshold
        )

    async def transfer(
        self,
        target_repo: RepositoryRef,
        files: cabc.Sequence[FileEntry],
        commit_message: str,
        branch: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> TransferResult:
        """Write ``files`` to ``target_repo`` in one or more commits.

        Cancellation is honoured only between chunks; chunks not yet
        submitted when it is requested are reported in ``failed_chunks``.
        Rate-limit exhaustion propagates from the writer.
        """
        if not self.needs_chunking(files):
            result = await self._writer.bulk_write(
                target_repo, files, commit_message, branch
            )
            return TransferResult(
                success=result.success and result.files_processed == len(files),
                transferred_files=result.files_processed,
                total_files=len(files),
                failed_chunks=() if result.success else (1,),
                commit_shas=(result.commit_sha,) if result.commit_sha else (),
                errors=(result.error,) if result.error else (),
            )

        size = files_per_chunk(files, self._config)
        chunks = split_chunks(files, size)
        count = len(chunks)
        log_info(
            logger,
            "Splitting %d files for %s into %d chunks of up to %d files",
            len(files),
            target_repo,
            count,
            size,
        )

        transferred = 0
        commit_shas: list[str] = []
        errors: list[str] = []
        failed: list[int] = []
        for number, chunk in enumerate(chunks, start=1):
            if cancellation is not None and cancellation.cancelled:
                remaining = list(range(number, count + 1))
                failed.extend(remaining)
                errors.append(
                    f"Cancelled before chunk {number}/{count}; "
                    f"{len(remaining)} chunk(s) not submitted"
                )
                log_warning(
                    logger,
                    "Transfer to %s cancelled before chunk %d/%d",
                    target_repo,
                    number,
                    count,
                )
                break
            if number > 1:
                await self._sleep(self._config.chunk_pause_s)

            log_info(
                logger,
                "Writing chunk %d/%d (%d files) to %s",
                number,
                count,
                len(chunk),
                target_repo,
            )
            result = await self._writer.bulk_write(
                target_repo,
                chunk,
                f"{commit_message} (chunk {number}/{count})",
                branch,
            )
            if result.success:
                transferred += result.files_processed
                if result.commit_sha:
                    commit_shas.append(result.commit_sha)
            else:
                log_error(logger, "Chunk %d/%d failed: %s", number, count, result.error)
                failed.append(number)
                errors.append(f"Chunk {number}: {result.error}")

        return TransferResult(
            success=transferred == len(files) and not errors,
            transferred_files=transferred,
            total_files=len(files),
            chunk_count=count,
            failed_chunks=tuple(failed),
            commit_shas=tuple(commit_shas),
            errors=tuple(errors),
        )
