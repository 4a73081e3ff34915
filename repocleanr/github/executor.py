"""Rate-limited request executor.

Every remote call made by the merge pipeline goes through
:meth:`RateLimitedExecutor.execute`, which owns retrying. Throttling is
resolved by waiting: a 429 (or a 403 at quota) sleeps for the ``retry-after``
hint, or until the rate-limit reset plus a buffer, and tries again. Transient
failures (5xx, 408, network errors, timeouts) back off exponentially from
30 seconds. Other client errors are raised at once.

``max_retries`` counts retries after the first attempt, so a call is made at
most ``max_retries + 1`` times. Waits use an injectable coroutine (``sleep``)
so the calling task suspends cooperatively and tests can observe the waits.
"""

from __future__ import annotations

import asyncio
import time
import typing as typ

import httpx

from repocleanr.config import ExecutorConfig
from repocleanr.logging import get_logger, log_info, log_warning

from .errors import GitHubAPIError, GitHubRateLimitError, RateLimitExceededError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.debug_log import DebugLog

    from .client import RepositoryAPI
    from .models import RateLimitStatus

    type Sleep = cabc.Callable[[float], cabc.Awaitable[None]]
    type Clock = cabc.Callable[[], float]

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, GitHubAPIError) and exc.is_transient


class RateLimitedExecutor:
    """Run remote calls with rate-limit waits and exponential backoff."""

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.time,
        debug_log: DebugLog | None = None,
    ) -> None:
        """Create an executor; ``sleep`` and ``clock`` are injectable."""
        self._config = config or ExecutorConfig()
        self._sleep = sleep
        self._clock = clock
        self._debug_log = debug_log

    @property
    def config(self) -> ExecutorConfig:
        """Return the retry policy in use."""
        return self._config

    def rate_limit_wait(self, error: GitHubRateLimitError) -> float:
        """Return how long to wait before retrying a throttled request.

        A ``retry-after`` hint is used as given. Otherwise the wait runs until
        the reset timestamp plus a buffer, never less than the configured
        minimum. Both are capped at the configured maximum.
        """
        cfg = self._config
        if error.retry_after is not None:
            wait = error.retry_after
        elif error.reset_at is not None:
            until_reset = error.reset_at.timestamp() - self._clock()
            wait = max(cfg.min_rate_wait_s, until_reset + cfg.reset_buffer_s)
        else:
            wait = cfg.min_rate_wait_s
        return min(wait, cfg.max_wait_s)

    def backoff_wait(self, attempt: int) -> float:
        """Return the transient-failure wait after ``attempt`` (1-based)."""
        wait = self._config.backoff_base_s * (2 ** (attempt - 1))
        return min(wait, self._config.max_wait_s)

    def _record(self, event: str, message: str, **fields: typ.Any) -> None:
        if self._debug_log is not None:
            self._debug_log.record(event, message, **fields)

    async def execute[T](
        self,
        request_fn: cabc.Callable[[], cabc.Awaitable[T]],
        max_retries: int | None = None,
        *,
        description: str = "",
    ) -> T:
        """Run ``request_fn`` until it succeeds or retries are exhausted.

        Parameters
        ----------
        request_fn
            Zero-argument callable returning a fresh awaitable per attempt.
        max_retries
            Retries allowed after the first attempt; defaults to the config.
        description
            Short label used in log lines, e.g. ``"get_tree octo/reef"``.

        Raises
        ------
        RateLimitExceededError
            When the final attempt was still throttled.
        GitHubAPIError, httpx.TransportError
            Non-transient errors immediately; transient errors once retries
            are spent.

        """
        retries = self._config.max_retries if max_retries is None else max_retries
        total_attempts = retries + 1
        label = description or "request"

        for attempt in range(1, total_attempts + 1):
            log_info(logger, "%s: attempt %d/%d", label, attempt, total_attempts)
            self._record(
                "executor.attempt",
                label,
                attempt=attempt,
                level="DEBUG",
                max_attempts=total_attempts,
            )
            try:
                return await request_fn()
            except GitHubRateLimitError as exc:
                if attempt == total_attempts:
                    self._record(
                        "executor.exhausted",
                        f"{label}: rate limit retries exhausted",
                        attempt=attempt,
                        level="ERROR",
                    )
                    raise RateLimitExceededError(
                        attempt, description=description
                    ) from exc
                wait = self.rate_limit_wait(exc)
                log_warning(
                    logger,
                    "%s: rate limited (status=%s), waiting %.0fs before retry %d",
                    label,
                    exc.status_code,
                    wait,
                    attempt,
                )
                self._record(
                    "executor.rate_limited",
                    str(exc),
                    attempt=attempt,
                    wait_seconds=wait,
                    level="WARNING",
                )
                await self._sleep(wait)
            except (GitHubAPIError, httpx.TransportError) as exc:
                if not _is_transient(exc):
                    raise
                if attempt == total_attempts:
                    self._record(
                        "executor.failed",
                        f"{label}: {exc}",
                        attempt=attempt,
                        level="ERROR",
                    )
                    raise
                wait = self.backoff_wait(attempt)
                log_warning(
                    logger,
                    "%s: transient failure (%s), backing off %.0fs",
                    label,
                    exc,
                    wait,
                )
                self._record(
                    "executor.backoff",
                    f"{type(exc).__name__}: {exc}",
                    attempt=attempt,
                    wait_seconds=wait,
                    level="WARNING",
                )
                await self._sleep(wait)

        msg = "unreachable: loop always returns or raises"
        raise AssertionError(msg)

    async def rate_limit_status(self, api: RepositoryAPI) -> RateLimitStatus:
        """Fetch the current budget once, without retries."""
        return await self.execute(
            api.get_rate_limit, max_retries=0, description="get_rate_limit"
        )
