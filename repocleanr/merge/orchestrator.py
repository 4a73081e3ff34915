"""Merge Orchestrator: move several repositories into one, then clean up.

Source repositories are processed strictly one after another. Each is read
(Tree Reader, or Conservative Reader in conservative mode or as a fallback),
written into the target through the Chunked Transfer Coordinator, and only
deleted when its outcome proves the transfer was complete. Rate-limit
exhaustion stops the whole run so no further source is touched.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import time
import typing as typ

from repocleanr.auth.provider import MissingScopeError, missing_scopes
from repocleanr.config import TransferConfig
from repocleanr.debug_log import DebugLog
from repocleanr.github.errors import RateLimitExceededError
from repocleanr.github.executor import RateLimitedExecutor
from repocleanr.logging import get_logger, log_info, log_warning

from .chunking import ChunkedTransferCoordinator
from .conservative import ConservativeReader
from .errors import MergeCancelledError
from .models import (
    FileEncoding,
    FileEntry,
    MergeLayout,
    MergePhase,
    MergeProgress,
    MergeRunResult,
    ReadResult,
    RepositoryMergeOutcome,
    TransferMethod,
)
from .observability import MergeEventLogger
from .plan import validate_plan
from .progress import ProgressPublisher
from .reader import READ_ERRORS, TreeReader
from .writer import BulkWriter

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.github.client import RepositoryAPI
    from repocleanr.github.models import RateLimitStatus, RepositoryRef

    from .cancellation import CancellationToken
    from .models import MergePlan

    type Sleep = cabc.Callable[[float], cabc.Awaitable[None]]

logger = get_logger(__name__)

# Sources are read at this branch; readers fall back to the default branch
SOURCE_BRANCH = "main"
PLACEHOLDER_NAME = ".gitkeep"
DELETE_SCOPE = "delete_repo"


@dataclasses.dataclass(slots=True)
class _RepositoryRun:
    outcome: RepositoryMergeOutcome
    halt: RateLimitExceededError | None = None


class MergeOrchestrator:
    """Run merge plans against a :class:`RepositoryAPI`.

    Parameters
    ----------
    api
        Remote repository API used for every call.
    executor
        Shared request executor; one is created when omitted.
    config
        Pacing and sizing knobs.
    sleep
        Coroutine used for every pacing wait.
    debug_log
        Run log receiving every step; one is created when omitted.
    publisher
        Progress fan-out; one is created when omitted.
    granted_scopes
        Scopes of the token behind ``api``; None when unknown.

    """

    def __init__(  # noqa: PLR0913
        self,
        api: RepositoryAPI,
        executor: RateLimitedExecutor | None = None,
        config: TransferConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        debug_log: DebugLog | None = None,
        publisher: ProgressPublisher | None = None,
        granted_scopes: frozenset[str] | None = None,
    ) -> None:
        """Wire the readers, writer, and coordinator around ``api``."""
        self._api = api
        self._config = config or TransferConfig()
        self._sleep = sleep
        self.debug_log = debug_log if debug_log is not None else DebugLog()
        self.publisher = publisher or ProgressPublisher()
        self._granted_scopes = granted_scopes
        self._executor = executor or RateLimitedExecutor(
            sleep=sleep, debug_log=self.debug_log
        )
        self._events = MergeEventLogger(self.debug_log)
        self._tree_reader = TreeReader(
            api, self._executor, self._config, sleep=sleep, debug_log=self.debug_log
        )
        self._conservative_reader = ConservativeReader(
            api, self._executor, self._config, sleep=sleep, debug_log=self.debug_log
        )
        self._coordinator = ChunkedTransferCoordinator(
            BulkWriter(api, self._executor, self._config, debug_log=self.debug_log),
            self._config,
            sleep=sleep,
        )

    def _check_scopes(self) -> None:
        missing = missing_scopes(self._granted_scopes, {DELETE_SCOPE})
        if missing:
            raise MissingScopeError(missing)

    async def run(
        self, plan: MergePlan, *, cancellation: CancellationToken | None = None
    ) -> MergeRunResult:
        """Execute ``plan`` and return the run summary.

        Raises
        ------
        MergePlanValidationError
            If the plan is malformed; nothing remote has been called.
        MissingScopeError
            If the token is known to lack ``delete_repo``.

        """
        validate_plan(plan)
        self._check_scopes()

        started = time.monotonic()
        self._events.log_run_started(plan)
        progress = MergeProgress(total_repos=len(plan.source_repos))
        self.publisher.clear_history()
        self.publisher.publish(progress)
        outcomes: list[RepositoryMergeOutcome] = []
        halted_at: RepositoryRef | None = None
        cancelled = False

        try:
            for index, repo in enumerate(plan.source_repos, start=1):
                try:
                    if cancellation is not None:
                        cancellation.raise_if_cancelled()
                except MergeCancelledError as exc:
                    cancelled = True
                    progress.errors.append(f"{exc} before {repo}")
                    self._events.log_run_cancelled(exc.reason)
                    break

                progress.current_repo = repo
                progress.current_repo_index = index
                progress.phase = MergePhase.SCANNING
                self.publisher.publish(progress)
                self._events.log_repo_started(repo, index, len(plan.source_repos))

                if plan.conservative_mode and index > 1:
                    log_info(
                        logger,
                        "Conservative mode: waiting %ds before %s",
                        plan.conservative_delay_seconds,
                        repo,
                    )
                    await self._sleep(plan.conservative_delay_seconds)

                run = await self._merge_repository(plan, repo, progress, cancellation)
                outcome = run.outcome
                outcomes.append(outcome)
                self._events.log_repo_completed(outcome)
                progress.transferred_file_count += outcome.transferred_files
                progress.skipped_file_count += outcome.skipped_files
                progress.errors.extend(f"{repo}: {error}" for error in outcome.errors)
                self.publisher.publish(progress)

                if run.halt is not None:
                    halted_at = repo
                    self._events.log_run_halted(repo, run.halt)
                    break
        except Exception:
            progress.phase = MergePhase.ERROR
            self.publisher.publish(progress)
            self.publisher.close()
            raise

        success = (
            any(outcome.success for outcome in outcomes)
            and halted_at is None
            and not cancelled
        )
        progress.phase = MergePhase.COMPLETE if success else MergePhase.ERROR
        progress.current_repo = None
        self.publisher.publish(progress)
        self.publisher.close()

        duration_s = time.monotonic() - started
        result = MergeRunResult(
            success=success,
            phase=progress.phase,
            outcomes=tuple(outcomes),
            errors=tuple(progress.errors),
            transferred_files=progress.transferred_file_count,
            skipped_files=progress.skipped_file_count,
            duration=dt.timedelta(seconds=duration_s),
            halted_at=halted_at,
            cancelled=cancelled,
            rate_limit=await self._final_rate_limit(),
        )
        self._events.log_run_completed(result, result.duration)
        return result

    async def _final_rate_limit(self) -> RateLimitStatus | None:
        try:
            return await self._executor.rate_limit_status(self._api)
        except (RateLimitExceededError, *READ_ERRORS) as exc:
            log_warning(logger, "Could not fetch final rate-limit status: %s", exc)
            return None

    async def _read(
        self, plan: MergePlan, repo: RepositoryRef
    ) -> tuple[ReadResult, TransferMethod]:
        if plan.conservative_mode:
            result = await self._conservative_reader.read_root_files(
                repo, SOURCE_BRANCH
            )
            return result, TransferMethod.CONSERVATIVE

        result = await self._tree_reader.read_tree(repo, SOURCE_BRANCH)
        if result.success and len(result.snapshot) > 0:
            return result, TransferMethod.OPTIMIZED

        reason = result.error or "tree read found no files"
        self._events.log_repo_fallback(repo, reason)
        fallback = await self._conservative_reader.read_root_files(repo, SOURCE_BRANCH)
        return fallback, TransferMethod.CONSERVATIVE_FALLBACK

    async def _merge_repository(
        self,
        plan: MergePlan,
        repo: RepositoryRef,
        progress: MergeProgress,
        cancellation: CancellationToken | None,
    ) -> _RepositoryRun:
        method = (
            TransferMethod.CONSERVATIVE
            if plan.conservative_mode
            else TransferMethod.OPTIMIZED
        )
        try:
            read, method = await self._read(plan, repo)
            if not read.success:
                return _RepositoryRun(
                    RepositoryMergeOutcome(
                        repo=repo,
                        success=False,
                        transferred_files=0,
                        method=method,
                        errors=(read.error or "read failed",),
                    )
                )

            snapshot = read.snapshot
            self._events.log_repo_read(
                repo, method, len(snapshot), snapshot.expected_count
            )
            errors = snapshot.incompleteness()
            skipped = len(snapshot.skipped) + len(snapshot.failed)

            if len(snapshot) == 0:
                errors.extend(await self._write_placeholder(plan, repo))
                outcome = RepositoryMergeOutcome(
                    repo=repo,
                    success=not errors,
                    transferred_files=0,
                    method=method,
                    errors=tuple(errors),
                    skipped_files=skipped,
                )
                return await self._finish(
                    plan, outcome, complete=not errors, progress=progress
                )

            progress.phase = MergePhase.TRANSFERRING
            self.publisher.publish(progress)
            files = [plan.target_path(repo, entry) for entry in snapshot.files]
            transfer = await self._coordinator.transfer(
                plan.target_repo,
                files,
                f"Transfer from {repo}",
                plan.target_branch,
                cancellation=cancellation,
            )
        except RateLimitExceededError as exc:
            return _RepositoryRun(
                RepositoryMergeOutcome(
                    repo=repo,
                    success=False,
                    transferred_files=0,
                    method=method,
                    errors=(str(exc),),
                ),
                halt=exc,
            )

        errors.extend(transfer.errors)
        complete = (
            transfer.success
            and transfer.transferred_files == snapshot.expected_count
            and snapshot.is_complete
        )
        outcome = RepositoryMergeOutcome(
            repo=repo,
            success=transfer.success,
            transferred_files=transfer.transferred_files,
            method=method,
            errors=tuple(errors),
            skipped_files=skipped,
        )
        return await self._finish(plan, outcome, complete=complete, progress=progress)

    async def _write_placeholder(
        self, plan: MergePlan, repo: RepositoryRef
    ) -> list[str]:
        if not (
            plan.empty_placeholder and plan.layout is MergeLayout.SEPARATE_FOLDERS
        ):
            return []
        placeholder = FileEntry(
            path=f"{repo.name}/{PLACEHOLDER_NAME}",
            content="",
            encoding=FileEncoding.UTF8,
            size=0,
            source_object_id="",
        )
        transfer = await self._coordinator.transfer(
            plan.target_repo,
            [placeholder],
            f"Add empty folder for {repo}",
            plan.target_branch,
        )
        return list(transfer.errors)

    async def _finish(
        self,
        plan: MergePlan,
        outcome: RepositoryMergeOutcome,
        *,
        complete: bool,
        progress: MergeProgress,
    ) -> _RepositoryRun:
        """Delete the source when the outcome satisfies the deletion rule."""
        if not (outcome.success and not outcome.errors and complete):
            reasons = list(outcome.errors) or ["transfer did not cover every file"]
            self._events.log_repo_kept(outcome.repo, reasons)
            return _RepositoryRun(outcome)

        progress.phase = MergePhase.DELETING
        self.publisher.publish(progress)
        cooldown = (
            self._config.conservative_deletion_cooldown_s
            if plan.conservative_mode
            else self._config.deletion_cooldown_s
        )
        await self._sleep(cooldown)
        try:
            await self._executor.execute(
                lambda: self._api.delete_repository(outcome.repo),
                description=f"delete_repository {outcome.repo}",
            )
        except RateLimitExceededError as exc:
            self._events.log_repo_delete_failed(outcome.repo, exc)
            return _RepositoryRun(
                dataclasses.replace(
                    outcome, errors=(f"Failed to delete source: {exc}",)
                ),
                halt=exc,
            )
        except READ_ERRORS as exc:
            self._events.log_repo_delete_failed(outcome.repo, exc)
            return _RepositoryRun(
                dataclasses.replace(
                    outcome, errors=(f"Failed to delete source: {exc}",)
                )
            )
        self._events.log_repo_deleted(outcome.repo)
        return _RepositoryRun(dataclasses.replace(outcome, deleted=True))
