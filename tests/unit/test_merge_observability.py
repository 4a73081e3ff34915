"""Unit tests for merge observability: error categories and events."""

from __future__ import annotations

import datetime as dt

import httpx
import pytest

from repocleanr.debug_log import DebugLog
from repocleanr.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubNotFoundError,
    GitHubResponseShapeError,
    RateLimitExceededError,
)
from repocleanr.github.models import RepositoryRef
from repocleanr.merge.errors import MergeCancelledError, MergePlanValidationError
from repocleanr.merge.models import (
    MergePhase,
    MergePlan,
    MergeRunResult,
    RepositoryMergeOutcome,
    TransferMethod,
)
from repocleanr.merge.observability import (
    ErrorCategory,
    MergeEventLogger,
    MergeEventType,
    categorize_error,
)
from tests.helpers.fake_github import rate_limited

ALPHA = RepositoryRef(owner="octo", name="alpha")


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (RateLimitExceededError(4), ErrorCategory.RATE_LIMITED),
        (rate_limited(), ErrorCategory.RATE_LIMITED),
        (GitHubNotFoundError("x", status_code=404), ErrorCategory.NOT_FOUND),
        (GitHubAPIError("x", status_code=502), ErrorCategory.TRANSIENT),
        (GitHubAPIError("x", status_code=422), ErrorCategory.CLIENT_ERROR),
        (GitHubResponseShapeError("x"), ErrorCategory.SCHEMA_DRIFT),
        (GitHubConfigError("x"), ErrorCategory.CONFIGURATION),
        (MergePlanValidationError(["x"]), ErrorCategory.CONFIGURATION),
        (MergeCancelledError("x"), ErrorCategory.CANCELLED),
        (httpx.ReadTimeout("x"), ErrorCategory.TRANSIENT),
        (ValueError("x"), ErrorCategory.UNKNOWN),
    ],
)
def test_categorize_error(exc: BaseException, expected: ErrorCategory) -> None:
    """Exceptions map to their log categories."""
    assert categorize_error(exc) is expected


def test_events_are_mirrored_into_debug_log() -> None:
    """Each logged event also lands in the debug log."""
    debug_log = DebugLog()
    events = MergeEventLogger(debug_log)
    plan = MergePlan(
        source_repos=(ALPHA, RepositoryRef(owner="octo", name="beta")),
        target_repo=RepositoryRef(owner="octo", name="combined"),
    )
    outcome = RepositoryMergeOutcome(
        repo=ALPHA,
        success=True,
        transferred_files=3,
        method=TransferMethod.OPTIMIZED,
    )

    events.log_run_started(plan)
    events.log_repo_started(ALPHA, 1, 2)
    events.log_repo_completed(outcome)
    events.log_repo_kept(ALPHA, ["1 file(s) were skipped: big.bin"])
    events.log_run_halted(ALPHA, RateLimitExceededError(4))
    events.log_run_completed(
        MergeRunResult(
            success=False,
            phase=MergePhase.ERROR,
            outcomes=(outcome,),
            errors=(),
            transferred_files=3,
            skipped_files=0,
            duration=dt.timedelta(seconds=1.5),
        ),
        dt.timedelta(seconds=1.5),
    )

    assert [entry.event for entry in debug_log.entries] == [
        MergeEventType.RUN_STARTED,
        MergeEventType.REPO_STARTED,
        MergeEventType.REPO_COMPLETED,
        MergeEventType.REPO_KEPT,
        MergeEventType.RUN_HALTED,
        MergeEventType.RUN_COMPLETED,
    ]
    started = debug_log.entries[0]
    assert started.details["sources"] == ["octo/alpha", "octo/beta"]
    halted = debug_log.entries[4]
    assert halted.level == "ERROR"
    assert halted.details["error_category"] == "rate_limited"
    assert debug_log.entries[-1].details["duration_seconds"] == 1.5


def test_failed_outcome_uses_failed_event() -> None:
    """Unsuccessful outcomes are recorded as merge.repo.failed."""
    debug_log = DebugLog()
    outcome = RepositoryMergeOutcome(
        repo=ALPHA,
        success=False,
        transferred_files=0,
        method=TransferMethod.CONSERVATIVE,
        errors=("Failed to list root of octo/alpha",),
    )

    MergeEventLogger(debug_log).log_repo_completed(outcome)

    (entry,) = debug_log.entries
    assert entry.event == MergeEventType.REPO_FAILED
    assert entry.message == "Failed to list root of octo/alpha"
    assert entry.level == "ERROR"


def test_logger_without_debug_log_is_allowed() -> None:
    """Events can be emitted with no debug log attached."""
    MergeEventLogger().log_repo_deleted(ALPHA)
