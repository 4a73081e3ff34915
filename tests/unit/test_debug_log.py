"""Unit tests for the structured merge debug log."""

from __future__ import annotations

import datetime as dt
import json
import typing as typ

from repocleanr.debug_log import DebugLog

if typ.TYPE_CHECKING:
    from pathlib import Path


def test_record_keeps_order_and_fields() -> None:
    """Entries keep insertion order and their optional fields."""
    log = DebugLog()

    log.record("executor.attempt", "get_tree", attempt=1, level="DEBUG")
    log.record(
        "executor.rate_limited",
        "429",
        attempt=1,
        wait_seconds=5.0,
        level="WARNING",
        repo="octo/reef",
        status=429,
    )

    first, second = log.entries
    assert len(log) == 2
    assert first.event == "executor.attempt"
    assert first.level == "DEBUG"
    assert second.wait_seconds == 5.0
    assert second.repo == "octo/reef"
    assert second.details == {"status": 429}
    assert dt.datetime.fromisoformat(second.timestamp).tzinfo is not None


def test_events_filters_by_identifier() -> None:
    """events() returns only matching entries."""
    log = DebugLog()
    log.record("a")
    log.record("b")
    log.record("a")

    assert [entry.event for entry in log.events("a")] == ["a", "a"]
    assert log.events("missing") == []


def test_write_exports_json(tmp_path: Path) -> None:
    """The log is written as an indented JSON array."""
    log = DebugLog()
    log.record("merge.repo.deleted", "source deleted", repo="octo/alpha")
    path = tmp_path / "nested" / "run.json"

    assert log.write(path) == path

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data[0]["event"] == "merge.repo.deleted"
    assert data[0]["repo"] == "octo/alpha"
    assert json.loads(log.to_json()) == data
