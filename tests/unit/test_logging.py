"""Unit tests for the femtologging helpers.

Run with:
    pytest tests/unit/test_logging.py
"""

from __future__ import annotations

import pytest

from repocleanr.logging import (
    configure_logging,
    format_log_message,
    log_debug,
    log_error,
    log_exception,
    log_info,
    log_warning,
    normalize_log_level,
)


class _RecordingLogger:
    """Stands in for a femtologging logger and keeps every call."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, object | None]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        assert stack_info is False, "Helpers never request stack info"
        self.records.append((level, message, exc_info))
        return message


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("debug", ("DEBUG", False)),
        (" Warn ", ("WARN", False)),
        ("trace", ("TRACE", False)),
        (None, ("INFO", True)),
        ("", ("INFO", True)),
        ("verbose", ("INFO", True)),
    ],
)
def test_normalize_log_level(raw: str | None, expected: tuple[str, bool]) -> None:
    """Known levels are upper-cased; anything else falls back to INFO."""
    assert normalize_log_level(raw) == expected, (
        f"Expected {raw!r} to normalize to {expected}."
    )


def test_format_log_message_without_args_keeps_percent_signs() -> None:
    """A template with no arguments is returned untouched."""
    assert format_log_message("100% read") == "100% read"
    assert format_log_message("%d of %d", 3, 4) == "3 of 4"


@pytest.mark.parametrize(
    ("helper", "level"),
    [
        (log_debug, "DEBUG"),
        (log_info, "INFO"),
        (log_warning, "WARNING"),
        (log_error, "ERROR"),
    ],
)
def test_level_helpers_format_before_logging(
    helper: object, level: str
) -> None:
    """Every helper interpolates arguments and emits its own level."""
    logger = _RecordingLogger()

    helper(logger, "read %d files from %s", 3, "octo/alpha")  # type: ignore[operator]

    assert logger.records == [(level, "read 3 files from octo/alpha", None)]


def test_warning_forwards_exc_info() -> None:
    """exc_info reaches the logger unchanged."""
    logger = _RecordingLogger()
    exc = RuntimeError("boom")

    log_warning(logger, "delete failed for %s", "octo/alpha", exc_info=exc)

    assert logger.records == [("WARNING", "delete failed for octo/alpha", exc)]


def test_log_exception_attaches_exception() -> None:
    """log_exception logs at ERROR with the exception attached."""
    logger = _RecordingLogger()
    exc = ValueError("listener bug")

    log_exception(logger, "Progress listener raised", exc)

    assert logger.records == [("ERROR", "Progress listener raised", exc)]


@pytest.mark.parametrize("force", [False, True])
def test_configure_logging_passes_normalized_level(
    monkeypatch: pytest.MonkeyPatch, *, force: bool
) -> None:
    """configure_logging hands the normalized level to basicConfig."""
    calls: list[dict[str, object]] = []
    monkeypatch.setattr(
        "repocleanr.logging.basicConfig", lambda **kwargs: calls.append(kwargs)
    )

    assert configure_logging("error", force=force) == ("ERROR", False)
    assert configure_logging("loud") == ("INFO", True)

    assert calls == [
        {"level": "ERROR", "force": force},
        {"level": "INFO", "force": False},
    ], "Expected basicConfig to receive normalized levels."
