"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp for run timing and debug log entries."""
    return dt.datetime.now(dt.UTC)


def from_epoch_seconds(value: float) -> dt.datetime:
    """Convert a Unix timestamp (as sent in ``x-ratelimit-reset``) to UTC."""
    return dt.datetime.fromtimestamp(value, tz=dt.UTC)
