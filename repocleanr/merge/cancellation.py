"""Cooperative cancellation for merge runs."""

from __future__ import annotations

import asyncio

from .errors import MergeCancelledError


class CancellationToken:
    """Flag checked at safe checkpoints (between repositories and chunks).

    Cancelling never interrupts a commit in progress; the run stops at the
    next checkpoint instead.
    """

    def __init__(self) -> None:
        """Create an uncancelled token."""
        self._event = asyncio.Event()
        self._reason = ""

    def cancel(self, reason: str = "") -> None:
        """Request cancellation."""
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return True once cancellation has been requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str:
        """Return the reason passed to :meth:`cancel`."""
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise :class:`MergeCancelledError` if cancellation was requested."""
        if self.cancelled:
            raise MergeCancelledError(self._reason)

    async def wait(self) -> None:
        """Suspend until cancellation is requested."""
        await self._event.wait()
