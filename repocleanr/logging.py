"""femtologging helpers shared by every repocleanr module.

Messages are interpolated here, before they reach femtologging, so merge
events arrive as finished ``[event.type] key=value`` lines. Level names come
from ``REPOCLEANR_LOG_LEVEL`` or the ``--log-level`` flag and are normalised
before :func:`configure_logging` hands them on.

Example:
>>> from repocleanr.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Merging %d repositories into %s", 3, "octo/combined")

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger

_FALLBACK_LEVEL = "INFO"


class LogLevel(enum.StrEnum):
    """Level names femtologging accepts."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(level, invalid)`` for a raw level name.

    Blank or unknown names resolve to ``INFO`` with ``invalid`` set so the
    caller can warn once logging is up.
    """
    candidate = (level or "").strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return (_FALLBACK_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root handler at ``level``."""
    resolved, invalid = normalize_log_level(level)
    basicConfig(level=resolved, force=force)
    return (resolved, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Apply percent-style ``args`` to ``template`` when any are given."""
    if not args:
        return template
    return template % args


class _SupportsLog(typ.Protocol):
    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    message = format_log_message(template, *args)
    logger.log(str(level), message, exc_info=exc_info, stack_info=False)


def log_debug(
    logger: _SupportsLog, template: str, *args: object, exc_info: object | None = None
) -> None:
    """Emit a DEBUG record."""
    _emit(logger, LogLevel.DEBUG, template, args, exc_info)


def log_info(
    logger: _SupportsLog, template: str, *args: object, exc_info: object | None = None
) -> None:
    """Emit an INFO record.

    Parameters
    ----------
    logger : _SupportsLog
        Destination logger, normally from :func:`get_logger`.
    template : str
        Percent-style template such as ``"[%s] repo=%s files=%d"``.
    *args : object
        Values for the template placeholders.
    exc_info : object | None, optional
        Exception to attach to the record.

    """
    _emit(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: _SupportsLog, template: str, *args: object, exc_info: object | None = None
) -> None:
    """Emit a WARNING record."""
    _emit(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: _SupportsLog, template: str, *args: object, exc_info: object | None = None
) -> None:
    """Emit an ERROR record."""
    _emit(logger, LogLevel.ERROR, template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Emit ``message`` at ERROR with ``exc`` attached as exc_info."""
    _emit(logger, LogLevel.ERROR, message, (), exc)


__all__ = [
    "LogLevel",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
