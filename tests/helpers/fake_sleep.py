"""Recording replacement for ``asyncio.sleep``."""

from __future__ import annotations

import asyncio


class RecordingSleep:
    """Record requested waits and return after yielding to the loop."""

    def __init__(self) -> None:
        """Start with no recorded waits."""
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        """Record ``seconds`` without actually waiting."""
        self.waits.append(seconds)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        """Return the sum of all recorded waits."""
        return sum(self.waits)
