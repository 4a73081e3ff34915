"""Short-lived storage for OAuth state correlation.

An OAuth login stores the ``state`` value it sent to GitHub together with
whatever the callback needs (for example where to send the user back). The
callback takes the entry exactly once. Entries expire after a TTL; a
background task sweeps expired entries so abandoned logins do not pile up.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import time
import typing as typ

from repocleanr.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class PendingAuth:
    """Data kept between starting an OAuth login and its callback."""

    redirect_url: str | None = None
    created_at: float = 0.0


class PendingAuthStore(typ.Protocol):
    """Storage for pending OAuth states."""

    def put(self, state: str, data: PendingAuth, ttl: float) -> None:
        """Store ``data`` under ``state`` for ``ttl`` seconds."""
        ...

    def take(self, state: str) -> PendingAuth | None:
        """Remove and return the entry for ``state`` if it has not expired."""
        ...

    def sweep_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        ...


class InMemoryPendingAuthStore:
    """Process-local :class:`PendingAuthStore` with TTL expiry."""

    def __init__(self, *, clock: cabc.Callable[[], float] = time.monotonic) -> None:
        """Create an empty store; ``clock`` is injectable for tests."""
        self._clock = clock
        self._entries: dict[str, tuple[float, PendingAuth]] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        """Return the number of stored entries, expired or not."""
        return len(self._entries)

    def put(self, state: str, data: PendingAuth, ttl: float) -> None:
        """Store ``data`` under ``state`` for ``ttl`` seconds."""
        self._entries[state] = (self._clock() + ttl, data)

    def take(self, state: str) -> PendingAuth | None:
        """Remove and return the entry for ``state`` if it has not expired."""
        stored = self._entries.pop(state, None)
        if stored is None:
            return None
        expires_at, data = stored
        if expires_at <= self._clock():
            return None
        return data

    def sweep_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, (expires, _) in self._entries.items() if expires <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            log_debug(logger, "Swept %d expired OAuth states", len(expired))
        return len(expired)

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired()

    def start_sweeper(self, interval: float = 60.0) -> asyncio.Task[None]:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(interval))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
