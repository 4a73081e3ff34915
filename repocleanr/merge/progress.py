"""Progress publication for merge runs.

The orchestrator is the only writer of :class:`MergeProgress`. Each publish
hands every subscriber its own snapshot, so listeners can keep what they
receive without seeing later mutations.
"""

from __future__ import annotations

import asyncio
import typing as typ

from repocleanr.logging import get_logger, log_exception

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .models import MergeProgress

logger = get_logger(__name__)


class ProgressListener(typ.Protocol):
    """Receives progress snapshots."""

    def __call__(self, progress: MergeProgress) -> None:
        """Handle one snapshot."""
        ...


class ProgressPublisher:
    """Fan out progress snapshots to callbacks and async streams."""

    def __init__(self) -> None:
        """Create a publisher with no subscribers."""
        self._listeners: list[ProgressListener] = []
        self._queues: list[asyncio.Queue[MergeProgress | None]] = []
        self._history: list[MergeProgress] = []

    def subscribe(self, listener: ProgressListener) -> cabc.Callable[[], None]:
        """Register ``listener`` and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_history(self) -> None:
        """Forget the snapshots of a previous run."""
        self._history.clear()

    @property
    def history(self) -> tuple[MergeProgress, ...]:
        """Return every snapshot published since the last :meth:`clear_history`."""
        return tuple(self._history)

    def publish(self, progress: MergeProgress) -> None:
        """Publish a snapshot of ``progress`` to all subscribers."""
        snapshot = progress.snapshot()
        self._history.append(snapshot)
        for listener in list(self._listeners):
            try:
                listener(snapshot.snapshot())
            except Exception as exc:  # noqa: BLE001
                # Listener failures are logged, never raised into the run
                log_exception(logger, "Progress listener raised", exc)
        for queue in self._queues:
            queue.put_nowait(snapshot.snapshot())

    def close(self) -> None:
        """End every open stream."""
        for queue in self._queues:
            queue.put_nowait(None)
        self._queues.clear()

    async def stream(self) -> cabc.AsyncIterator[MergeProgress]:
        """Yield snapshots as they are published until :meth:`close`."""
        queue: asyncio.Queue[MergeProgress | None] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while (item := await queue.get()) is not None:
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)
