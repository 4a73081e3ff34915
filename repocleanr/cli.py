"""Merge several GitHub repositories into one from a YAML plan file."""

from __future__ import annotations

import argparse
import asyncio
import os
import typing as typ
from pathlib import Path

import httpx

from repocleanr.auth.provider import MissingScopeError
from repocleanr.config import ExecutorConfig, GitHubClientConfig, TransferConfig
from repocleanr.debug_log import DebugLog
from repocleanr.github.client import GitHubRESTClient
from repocleanr.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    RateLimitExceededError,
)
from repocleanr.github.executor import RateLimitedExecutor
from repocleanr.logging import configure_logging, get_logger, log_warning
from repocleanr.merge.errors import MergePlanValidationError
from repocleanr.merge.models import MergePhase
from repocleanr.merge.orchestrator import MergeOrchestrator
from repocleanr.merge.plan import load_plan

if typ.TYPE_CHECKING:
    from repocleanr.github.client import RepositoryAPI
    from repocleanr.merge.models import MergePlan, MergeRunResult

logger = get_logger(__name__)

EXIT_COMPLETE = 0
EXIT_FAILED = 1
EXIT_INVALID_PLAN = 2


def _print_summary(result: MergeRunResult) -> None:
    print(
        f"merge finished: phase={result.phase} "
        f"transferred={result.transferred_files} skipped={result.skipped_files} "
        f"deleted={len(result.deleted_repos)}/{len(result.outcomes)}"
    )
    for outcome in result.outcomes:
        status = "ok" if outcome.success else "failed"
        deleted = " deleted" if outcome.deleted else ""
        print(
            f"  {outcome.repo}: {status} ({outcome.method}, "
            f"{outcome.transferred_files} files){deleted}"
        )
        for error in outcome.errors:
            print(f"    - {error}")
    if result.halted_at is not None:
        print(f"halted at {result.halted_at}: rate limit exhausted")
    if result.rate_limit is not None:
        print(
            f"rate limit: {result.rate_limit.remaining}/{result.rate_limit.limit} "
            f"remaining, resets {result.rate_limit.reset_at.isoformat()}"
        )


async def run_merge(
    plan: MergePlan,
    api: RepositoryAPI,
    *,
    debug_log_out: Path | None = None,
    executor_config: ExecutorConfig | None = None,
    transfer_config: TransferConfig | None = None,
) -> int:
    """Check the token, run ``plan`` against ``api``, and report the result."""
    debug_log = DebugLog()
    executor = RateLimitedExecutor(executor_config, debug_log=debug_log)
    try:
        user = await executor.execute(
            api.get_authenticated_user, description="get_authenticated_user"
        )
        orchestrator = MergeOrchestrator(
            api,
            executor,
            transfer_config,
            debug_log=debug_log,
            granted_scopes=user.scopes,
        )
        result = await orchestrator.run(plan)
    except (
        MissingScopeError,
        GitHubAPIError,
        RateLimitExceededError,
        httpx.TransportError,
    ) as exc:
        print(f"cannot merge: {exc}")
        return EXIT_FAILED
    finally:
        if debug_log_out is not None:
            debug_log.write(debug_log_out)
            print(f"debug log written to {debug_log_out}")

    _print_summary(result)
    return EXIT_COMPLETE if result.phase is MergePhase.COMPLETE else EXIT_FAILED


async def _run_with_client(
    plan: MergePlan, config: GitHubClientConfig, debug_log_out: Path | None
) -> int:
    async with GitHubRESTClient(config) as client:
        return await run_merge(
            plan,
            client,
            debug_log_out=debug_log_out,
            executor_config=ExecutorConfig.from_env(),
            transfer_config=TransferConfig.from_env(),
        )


def main(argv: list[str] | None = None) -> int:
    """Run a merge plan and optionally save the run's debug log.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 when the run completed, 1 when it ended in error,
        2 when the plan file is invalid.

    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("plan", type=Path, help="YAML merge plan to run")
    parser.add_argument(
        "--debug-log-out",
        type=Path,
        default=None,
        help="Optional path to write the run's debug log as JSON",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("REPOCLEANR_LOG_LEVEL", "INFO"),
        help="Log level (default: REPOCLEANR_LOG_LEVEL or INFO)",
    )
    args = parser.parse_args(argv)

    level, invalid = configure_logging(args.log_level)
    if invalid:
        log_warning(logger, "Unknown log level %r; using %s", args.log_level, level)

    plan_path: Path = args.plan
    try:
        plan = load_plan(plan_path)
    except MergePlanValidationError as exc:
        print(f"Merge plan validation failed for {plan_path}:")
        for issue in exc.issues:
            print(f"  - {issue}")
        return EXIT_INVALID_PLAN

    try:
        config = GitHubClientConfig.from_env()
    except GitHubConfigError as exc:
        print(f"cannot merge: {exc}")
        return EXIT_FAILED

    return asyncio.run(_run_with_client(plan, config, args.debug_log_out))


if __name__ == "__main__":
    raise SystemExit(main())
