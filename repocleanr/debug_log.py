"""Structured debug log for merge runs.

Source repositories are deleted only when a run's log shows the transfer
completed, so every request attempt, wait, and per-repository outcome is
recorded here in order. The log is held in memory for one run and can be
exported as JSON for download.

Usage
-----
>>> log = DebugLog()
>>> log.record("executor.wait", "rate limited", wait_seconds=5.0)
>>> log.to_json()[:1]
b'['

"""

from __future__ import annotations

import typing as typ

import msgspec

from repocleanr.common.time import utcnow

if typ.TYPE_CHECKING:
    from pathlib import Path

DebugLevel = typ.Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class DebugLogEntry(msgspec.Struct, kw_only=True, frozen=True):
    """One recorded step of a merge run.

    Attributes
    ----------
    timestamp : str
        ISO-8601 UTC timestamp of when the step was recorded.
    event : str
        Dotted event identifier, for example ``executor.attempt``.
    level : str
        Severity of the entry.
    message : str
        Human-readable description.
    repo : str, optional
        ``owner/name`` slug the step relates to.
    attempt : int, optional
        Attempt number for request executor entries.
    wait_seconds : float, optional
        Duration of a wait, when the step was a wait.
    details : dict[str, object]
        Extra key/value context.

    """

    timestamp: str
    event: str
    level: DebugLevel = "INFO"
    message: str = ""
    repo: str | None = None
    attempt: int | None = None
    wait_seconds: float | None = None
    details: dict[str, typ.Any] = msgspec.field(default_factory=dict)


class DebugLog:
    """Append-only, ordered collection of :class:`DebugLogEntry` records."""

    def __init__(self) -> None:
        """Create an empty log."""
        self._entries: list[DebugLogEntry] = []

    def record(  # noqa: PLR0913
        self,
        event: str,
        message: str = "",
        *,
        level: DebugLevel = "INFO",
        repo: str | None = None,
        attempt: int | None = None,
        wait_seconds: float | None = None,
        **details: object,
    ) -> DebugLogEntry:
        """Append an entry stamped with the current UTC time and return it."""
        entry = DebugLogEntry(
            timestamp=utcnow().isoformat(),
            event=event,
            level=level,
            message=message,
            repo=repo,
            attempt=attempt,
            wait_seconds=wait_seconds,
            details=dict(details),
        )
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[DebugLogEntry, ...]:
        """Return the recorded entries in insertion order."""
        return tuple(self._entries)

    def events(self, event: str) -> list[DebugLogEntry]:
        """Return entries whose event identifier equals ``event``."""
        return [entry for entry in self._entries if entry.event == event]

    def __len__(self) -> int:
        """Return the number of recorded entries."""
        return len(self._entries)

    def to_json(self) -> bytes:
        """Encode the whole log as a JSON array."""
        return msgspec.json.encode(self._entries)

    def write(self, path: Path) -> Path:
        """Write the JSON log to ``path``, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(msgspec.json.format(self.to_json(), indent=2))
        return path
