"""Observability primitives for merge runs.

Provides structured logging and error categorisation for merge runs. Every
event is emitted twice: as a ``[event.type] key=value`` femtologging record
for log aggregators, and as a :class:`~repocleanr.debug_log.DebugLogEntry`
for the downloadable run log.
"""

from __future__ import annotations

import enum
import typing as typ

import httpx

from repocleanr.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubResponseShapeError,
    RateLimitExceededError,
)
from repocleanr.logging import get_logger, log_error, log_info, log_warning

from .errors import MergeCancelledError, MergePlanValidationError

if typ.TYPE_CHECKING:
    import datetime as dt

    from repocleanr.debug_log import DebugLog
    from repocleanr.github.models import RepositoryRef

    from .models import MergePlan, MergeRunResult, RepositoryMergeOutcome

logger = get_logger(__name__)


class MergeEventType(enum.StrEnum):
    """Structured log event types for merge observability."""

    RUN_STARTED = "merge.run.started"
    RUN_COMPLETED = "merge.run.completed"
    RUN_HALTED = "merge.run.halted"
    RUN_CANCELLED = "merge.run.cancelled"
    REPO_STARTED = "merge.repo.started"
    REPO_READ = "merge.repo.read"
    REPO_FALLBACK = "merge.repo.fallback"
    REPO_COMPLETED = "merge.repo.completed"
    REPO_FAILED = "merge.repo.failed"
    REPO_DELETED = "merge.repo.deleted"
    REPO_DELETE_FAILED = "merge.repo.delete_failed"
    REPO_KEPT = "merge.repo.kept"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in logs."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (RateLimitExceededError, ErrorCategory.RATE_LIMITED),
    (GitHubRateLimitError, ErrorCategory.RATE_LIMITED),
    (GitHubNotFoundError, ErrorCategory.NOT_FOUND),
    (GitHubResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (GitHubConfigError, ErrorCategory.CONFIGURATION),
    (MergePlanValidationError, ErrorCategory.CONFIGURATION),
    (MergeCancelledError, ErrorCategory.CANCELLED),
    (httpx.TransportError, ErrorCategory.TRANSIENT),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorise an exception for log routing.

    Returns:
        ErrorCategory indicating the type of failure.

    """
    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    # Remaining API errors split on status code
    if isinstance(exc, GitHubAPIError):
        if exc.is_transient:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    return ErrorCategory.UNKNOWN


class MergeEventLogger:
    """Emit structured merge events via femtologging and the debug log.

    Events are emitted at INFO level for progress, WARNING for degraded
    paths (fallbacks, kept sources), and ERROR for failures.
    """

    def __init__(self, debug_log: DebugLog | None = None) -> None:
        """Attach an optional debug log that mirrors every event."""
        self._debug_log = debug_log

    def _record(
        self,
        event: MergeEventType,
        message: str,
        *,
        level: typ.Literal["INFO", "WARNING", "ERROR"] = "INFO",
        repo: RepositoryRef | None = None,
        **details: object,
    ) -> None:
        if self._debug_log is not None:
            self._debug_log.record(
                str(event),
                message,
                level=level,
                repo=repo.slug if repo else None,
                **details,
            )

    def log_run_started(self, plan: MergePlan) -> None:
        """Log merge run start."""
        sources = ",".join(repo.slug for repo in plan.source_repos)
        log_info(
            logger,
            "[%s] target=%s branch=%s layout=%s conservative=%s sources=%s",
            MergeEventType.RUN_STARTED,
            plan.target_repo,
            plan.target_branch,
            plan.layout,
            plan.conservative_mode,
            sources,
        )
        self._record(
            MergeEventType.RUN_STARTED,
            f"merging {len(plan.source_repos)} repositories into {plan.target_repo}",
            target=plan.target_repo.slug,
            branch=plan.target_branch,
            layout=str(plan.layout),
            conservative=plan.conservative_mode,
            sources=[repo.slug for repo in plan.source_repos],
        )

    def log_repo_started(self, repo: RepositoryRef, index: int, total: int) -> None:
        """Log the start of one source repository."""
        log_info(
            logger,
            "[%s] repo=%s index=%d total=%d",
            MergeEventType.REPO_STARTED,
            repo,
            index,
            total,
        )
        self._record(
            MergeEventType.REPO_STARTED,
            f"processing repository {index}/{total}",
            repo=repo,
            index=index,
            total=total,
        )

    def log_repo_read(
        self, repo: RepositoryRef, method: str, files: int, expected: int
    ) -> None:
        """Log a completed read with the method used."""
        log_info(
            logger,
            "[%s] repo=%s method=%s files=%d expected=%d",
            MergeEventType.REPO_READ,
            repo,
            method,
            files,
            expected,
        )
        self._record(
            MergeEventType.REPO_READ,
            f"read {files} of {expected} files",
            repo=repo,
            method=method,
            files=files,
            expected=expected,
        )

    def log_repo_fallback(self, repo: RepositoryRef, reason: str) -> None:
        """Log a switch from the tree reader to the conservative reader."""
        log_warning(
            logger,
            "[%s] repo=%s reason=%s",
            MergeEventType.REPO_FALLBACK,
            repo,
            reason,
        )
        self._record(
            MergeEventType.REPO_FALLBACK,
            f"falling back to conservative read: {reason}",
            level="WARNING",
            repo=repo,
        )

    def log_repo_completed(self, outcome: RepositoryMergeOutcome) -> None:
        """Log a per-repository outcome."""
        event = (
            MergeEventType.REPO_COMPLETED
            if outcome.success
            else MergeEventType.REPO_FAILED
        )
        emit = log_info if outcome.success else log_error
        emit(
            logger,
            "[%s] repo=%s success=%s method=%s transferred_files=%d "
            "skipped_files=%d error_count=%d deleted=%s",
            event,
            outcome.repo,
            outcome.success,
            outcome.method,
            outcome.transferred_files,
            outcome.skipped_files,
            len(outcome.errors),
            outcome.deleted,
        )
        self._record(
            event,
            "; ".join(outcome.errors) or "ok",
            level="INFO" if outcome.success else "ERROR",
            repo=outcome.repo,
            success=outcome.success,
            method=str(outcome.method),
            transferred_files=outcome.transferred_files,
            skipped_files=outcome.skipped_files,
            deleted=outcome.deleted,
        )

    def log_repo_kept(self, repo: RepositoryRef, reasons: list[str]) -> None:
        """Log that a source was kept because its transfer was incomplete."""
        log_warning(
            logger,
            "[%s] repo=%s reasons=%s",
            MergeEventType.REPO_KEPT,
            repo,
            "; ".join(reasons),
        )
        self._record(
            MergeEventType.REPO_KEPT,
            "source kept: " + "; ".join(reasons),
            level="WARNING",
            repo=repo,
        )

    def log_repo_deleted(self, repo: RepositoryRef) -> None:
        """Log deletion of a fully transferred source."""
        log_info(logger, "[%s] repo=%s", MergeEventType.REPO_DELETED, repo)
        self._record(MergeEventType.REPO_DELETED, "source deleted", repo=repo)

    def log_repo_delete_failed(
        self, repo: RepositoryRef, error: BaseException
    ) -> None:
        """Log a failed source deletion."""
        category = categorize_error(error)
        log_error(
            logger,
            "[%s] repo=%s error_type=%s error_category=%s error_message=%s",
            MergeEventType.REPO_DELETE_FAILED,
            repo,
            type(error).__name__,
            category,
            str(error),
            exc_info=error,
        )
        self._record(
            MergeEventType.REPO_DELETE_FAILED,
            str(error),
            level="ERROR",
            repo=repo,
            error_category=str(category),
        )

    def log_run_halted(self, repo: RepositoryRef, error: BaseException) -> None:
        """Log a run stopped by rate-limit exhaustion."""
        category = categorize_error(error)
        log_error(
            logger,
            "[%s] repo=%s error_type=%s error_category=%s error_message=%s",
            MergeEventType.RUN_HALTED,
            repo,
            type(error).__name__,
            category,
            str(error),
        )
        self._record(
            MergeEventType.RUN_HALTED,
            str(error),
            level="ERROR",
            repo=repo,
            error_category=str(category),
        )

    def log_run_cancelled(self, reason: str) -> None:
        """Log a run stopped at a cancellation checkpoint."""
        log_warning(logger, "[%s] reason=%s", MergeEventType.RUN_CANCELLED, reason)
        self._record(
            MergeEventType.RUN_CANCELLED,
            reason or "cancelled",
            level="WARNING",
        )

    def log_run_completed(
        self, result: MergeRunResult, duration: dt.timedelta
    ) -> None:
        """Log run completion with summary metrics."""
        deleted = len(result.deleted_repos)
        log_info(
            logger,
            "[%s] phase=%s success=%s duration_seconds=%.3f repos=%d "
            "transferred_files=%d skipped_files=%d deleted_repos=%d error_count=%d",
            MergeEventType.RUN_COMPLETED,
            result.phase,
            result.success,
            duration.total_seconds(),
            len(result.outcomes),
            result.transferred_files,
            result.skipped_files,
            deleted,
            len(result.errors),
        )
        self._record(
            MergeEventType.RUN_COMPLETED,
            f"run finished in phase {result.phase}",
            level="INFO" if result.success else "ERROR",
            phase=str(result.phase),
            transferred_files=result.transferred_files,
            skipped_files=result.skipped_files,
            deleted_repos=deleted,
            duration_seconds=round(duration.total_seconds(), 3),
        )
