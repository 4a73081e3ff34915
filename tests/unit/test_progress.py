"""Unit tests for progress publication."""

from __future__ import annotations

import asyncio

import pytest

from repocleanr.merge.models import MergePhase, MergeProgress
from repocleanr.merge.progress import ProgressPublisher


def test_subscribers_receive_independent_snapshots() -> None:
    """Listeners keep what they receive even as progress changes."""
    publisher = ProgressPublisher()
    received: list[MergeProgress] = []
    publisher.subscribe(received.append)
    progress = MergeProgress(total_repos=2)

    publisher.publish(progress)
    progress.phase = MergePhase.TRANSFERRING
    progress.errors.append("late")
    publisher.publish(progress)

    assert [item.phase for item in received] == [
        MergePhase.SCANNING,
        MergePhase.TRANSFERRING,
    ]
    assert received[0].errors == []
    assert len(publisher.history) == 2


def test_unsubscribe_stops_delivery() -> None:
    """The function returned by subscribe removes the listener."""
    publisher = ProgressPublisher()
    received: list[MergeProgress] = []
    unsubscribe = publisher.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    publisher.publish(MergeProgress(total_repos=1))

    assert received == []


def test_failing_listener_does_not_break_others() -> None:
    """An exception in one listener is logged; others still receive."""
    publisher = ProgressPublisher()
    received: list[MergeProgress] = []

    def explode(progress: MergeProgress) -> None:
        raise RuntimeError("listener bug")

    publisher.subscribe(explode)
    publisher.subscribe(received.append)

    publisher.publish(MergeProgress(total_repos=1))

    assert len(received) == 1


@pytest.mark.asyncio
async def test_stream_yields_until_closed() -> None:
    """Async streams see every snapshot published after they start."""
    publisher = ProgressPublisher()
    seen: list[MergePhase] = []

    async def consume() -> None:
        async for progress in publisher.stream():
            seen.append(progress.phase)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    progress = MergeProgress(total_repos=1)
    publisher.publish(progress)
    progress.phase = MergePhase.COMPLETE
    publisher.publish(progress)
    publisher.close()
    await asyncio.wait_for(task, timeout=1)

    assert seen == [MergePhase.SCANNING, MergePhase.COMPLETE]


def test_clear_history_forgets_earlier_snapshots() -> None:
    """History restarts empty after clear_history."""
    publisher = ProgressPublisher()
    publisher.publish(MergeProgress(total_repos=2))

    publisher.clear_history()
    publisher.publish(MergeProgress(total_repos=3))

    assert [item.total_repos for item in publisher.history] == [3]
