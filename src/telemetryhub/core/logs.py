"""Log helper functions for creating LogEntry objects."""

import time
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from telemetryhub.core.models import LogEntry, LogLevel


@dataclass
class TimedLogResult:
    """Result object for timed_log context manager."""

    logs: list[LogEntry] = field(default_factory=list)


@contextmanager
def timed_log(
    message: str,
    level: LogLevel | str = LogLevel.INFO,
    component: str = "",
    **fields: Any,
) -> Generator[TimedLogResult, None, None]:
    """Context manager that logs entry and exit with elapsed time.

    Args:
        message: The base log message
        level: Log level (default INFO)
        component: Producing component
        **fields: Additional structured fields

    Yields:
        TimedLogResult containing entry and exit LogEntry objects
    """
    result = TimedLogResult()
    start = time.perf_counter()
    result.logs.append(
        log(level, f"{message} [entry]", component=component, phase="entry", **fields)
    )
    yield result
    elapsed = time.perf_counter() - start
    result.logs.append(
        log(
            level,
            f"{message} [exit]",
            component=component,
            phase="exit",
            elapsed_seconds=elapsed,
            **fields,
        )
    )


def log(
    level: LogLevel | str,
    message: str,
    component: str = "",
    labels: Mapping[str, str] | None = None,
    **fields: Any,
) -> LogEntry:
    """Create a log entry with automatic timestamp.

    Args:
        level: Log level (e.g., LogLevel.INFO or "ERROR")
        message: The log message
        component: Producing component, used as a dynamic stream label
        labels: Stream labels specific to this entry
        **fields: Additional structured fields

    Returns:
        LogEntry with current timestamp
    """
    return LogEntry(
        timestamp=time.time(),
        level=LogLevel.parse(level),
        message=message,
        component=component,
        labels=dict(labels or {}),
        fields=dict(fields),
    )


def info(message: str, component: str = "", **fields: Any) -> LogEntry:
    """Create an INFO log entry with automatic timestamp."""
    return log(LogLevel.INFO, message, component=component, **fields)


def error(message: str, component: str = "", **fields: Any) -> LogEntry:
    """Create an ERROR log entry with automatic timestamp."""
    return log(LogLevel.ERROR, message, component=component, **fields)


def debug(message: str, component: str = "", **fields: Any) -> LogEntry:
    """Create a DEBUG log entry with automatic timestamp."""
    return log(LogLevel.DEBUG, message, component=component, **fields)


def warn(message: str, component: str = "", **fields: Any) -> LogEntry:
    """Create a WARN log entry with automatic timestamp."""
    return log(LogLevel.WARN, message, component=component, **fields)
