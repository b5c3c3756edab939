"""Python logging handler adapter for telemetryhub.

This adapter bridges Python's standard library logging module to any
LogsIntegration, so application log records reach Loki (or any other log
backend) through the same batching path as structured entries.
"""

import asyncio
import logging
import traceback
from typing import Any

from telemetryhub.core.models import LogEntry, LogLevel
from telemetryhub.core.ports import LogsIntegration

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# Default attributes to extract from LogRecord
_DEFAULT_INCLUDE_ATTRS = ["module", "funcName", "lineno", "pathname"]

_INTERNAL_LOGGER = "telemetryhub"


def _is_internal(record: logging.LogRecord) -> bool:
    return record.name == _INTERNAL_LOGGER or record.name.startswith(
        _INTERNAL_LOGGER + "."
    )


class IntegrationLogHandler(logging.Handler):
    """Logging handler that forwards records to a LogsIntegration.

    Records are converted to LogEntry objects and passed to ``write_logs``.
    Without a loop the write runs to completion with ``asyncio.run``; with a
    loop (the one the integration lives on) it is scheduled there
    thread-safely and the handler does not wait for it.

    Records from telemetryhub's own loggers are ignored, so attaching the
    handler to the root logger never feeds delivery logs back into delivery.

    Example:
        ```python
        loki = LokiIntegration(config)
        await loki.initialize()
        handler = IntegrationLogHandler(loki, loop=asyncio.get_running_loop())
        logging.getLogger("analyzer").addHandler(handler)
        ```
    """

    def __init__(
        self,
        integration: LogsIntegration,
        include_attrs: list[str] | None = None,
        component: str = "",
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the handler with a log integration.

        Args:
            integration: Backend implementing LogsIntegration.
            include_attrs: List of LogRecord attributes to include. Defaults to
                ["module", "funcName", "lineno", "pathname"].
            component: Component label for every entry. Defaults to the
                logger name.
            loop: Event loop to schedule writes on.
        """
        super().__init__()
        self._integration = integration
        self._include_attrs = include_attrs or _DEFAULT_INCLUDE_ATTRS
        self._component = component
        self._loop = loop

    def to_entry(self, record: logging.LogRecord) -> LogEntry:
        """Convert a log record to a LogEntry."""
        # Map of attribute names to their values from LogRecord
        attr_mapping: dict[str, str | int | float | bool] = {
            "module": record.module,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
            "pathname": record.pathname,
        }

        fields: dict[str, Any] = {
            key: attr_mapping[key] for key in self._include_attrs if key in attr_mapping
        }

        # Add any extra attributes passed via logging call
        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                value, (str, int, float, bool)
            ):
                fields[key] = value

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                fields["exc_type"] = exc_type.__name__
            if exc_value is not None:
                fields["exc_message"] = str(exc_value)
            if exc_tb is not None:
                fields["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        return LogEntry(
            timestamp=record.created,
            level=LogLevel.parse(record.levelno),
            message=record.getMessage(),
            component=self._component or record.name,
            fields=fields,
        )

    def emit(self, record: logging.LogRecord) -> None:
        """Forward a log record to the integration.

        Args:
            record: The log record to emit.
        """
        if record.levelno < logging.DEBUG or _is_internal(record):
            return
        try:
            entry = self.to_entry(record)
            if self._loop is None:
                asyncio.run(self._integration.write_logs([entry]))
            else:
                asyncio.run_coroutine_threadsafe(
                    self._integration.write_logs([entry]), self._loop
                )
        except Exception:
            self.handleError(record)
