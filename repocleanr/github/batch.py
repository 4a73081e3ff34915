"""Batch repository operations.

Applies one settings change (archive, visibility) or deletion to many
repositories. Every repository gets its own result; one failure never stops
the rest of the batch. Rate-limit exhaustion is the exception: it stops the
batch and the unprocessed repositories are reported as not attempted.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

import httpx

from repocleanr.logging import get_logger, log_info, log_warning

from .errors import GitHubAPIError, GitHubResponseShapeError, RateLimitExceededError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .client import RepositoryAPI
    from .executor import RateLimitedExecutor
    from .models import RepositoryRef

logger = get_logger(__name__)

DELETE_SCOPE = "delete_repo"


class BatchOperation(enum.StrEnum):
    """Operations that can be applied to many repositories at once."""

    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"
    DELETE = "delete"
    VISIBILITY_PUBLIC = "visibility_public"
    VISIBILITY_PRIVATE = "visibility_private"


_SETTINGS_CHANGES: dict[BatchOperation, dict[str, bool]] = {
    BatchOperation.ARCHIVE: {"archived": True},
    BatchOperation.UNARCHIVE: {"archived": False},
    BatchOperation.VISIBILITY_PUBLIC: {"private": False},
    BatchOperation.VISIBILITY_PRIVATE: {"private": True},
}


class BatchScopeError(RuntimeError):
    """Raised when a batch needs a scope the token does not have."""

    @classmethod
    def missing(cls, operation: BatchOperation, scope: str) -> BatchScopeError:
        """Return an error naming the operation and the missing scope."""
        return cls(f"Batch {operation} requires the {scope!r} token scope")


@dataclasses.dataclass(frozen=True, slots=True)
class BatchItemResult:
    """Result for one repository of a batch."""

    repo: RepositoryRef
    success: bool
    error: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class BatchResult:
    """Per-repository results of one batch operation."""

    operation: BatchOperation
    results: tuple[BatchItemResult, ...]

    @property
    def successful(self) -> int:
        """Return how many repositories were changed."""
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        """Return how many repositories were not changed."""
        return len(self.results) - self.successful


async def _apply(
    api: RepositoryAPI, operation: BatchOperation, repo: RepositoryRef
) -> None:
    if operation is BatchOperation.DELETE:
        await api.delete_repository(repo)
    else:
        await api.update_repository(repo, _SETTINGS_CHANGES[operation])


async def run_batch(
    api: RepositoryAPI,
    executor: RateLimitedExecutor,
    operation: BatchOperation,
    repos: cabc.Sequence[RepositoryRef],
    *,
    granted_scopes: frozenset[str] | None = None,
) -> BatchResult:
    """Apply ``operation`` to each of ``repos`` in order.

    Raises
    ------
    BatchScopeError
        For :attr:`BatchOperation.DELETE` when ``granted_scopes`` is known
        and lacks ``delete_repo``. Nothing is attempted in that case.

    """
    if (
        operation is BatchOperation.DELETE
        and granted_scopes is not None
        and DELETE_SCOPE not in granted_scopes
    ):
        raise BatchScopeError.missing(operation, DELETE_SCOPE)

    results: list[BatchItemResult] = []
    for position, repo in enumerate(repos):
        try:
            await executor.execute(
                lambda repo=repo: _apply(api, operation, repo),
                description=f"{operation} {repo}",
            )
        except RateLimitExceededError as exc:
            log_warning(logger, "Batch %s halted at %s: %s", operation, repo, exc)
            results.append(BatchItemResult(repo=repo, success=False, error=str(exc)))
            results.extend(
                BatchItemResult(repo=rest, success=False, error="not attempted")
                for rest in repos[position + 1 :]
            )
            break
        except (GitHubAPIError, GitHubResponseShapeError, httpx.TransportError) as exc:
            log_warning(logger, "Batch %s failed for %s: %s", operation, repo, exc)
            results.append(BatchItemResult(repo=repo, success=False, error=str(exc)))
        else:
            results.append(BatchItemResult(repo=repo, success=True))

    batch = BatchResult(operation=operation, results=tuple(results))
    log_info(
        logger,
        "Batch %s completed: %d successful, %d failed",
        operation,
        batch.successful,
        batch.failed,
    )
    return batch
