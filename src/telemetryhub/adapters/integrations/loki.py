"""Loki log shipping integration."""

import logging
from collections.abc import AsyncIterable, Mapping, Sequence
from typing import Any

import httpx

from telemetryhub.adapters.batching import LogBatcher
from telemetryhub.adapters.integrations.base import BaseIntegration
from telemetryhub.core.config import LokiConfig
from telemetryhub.core.encoding.loki import LogStream, StreamBuilder, encode_push_request
from telemetryhub.core.errors import BackendConnectionError, TransportError
from telemetryhub.core.models import AnalysisResult, IntegrationStatus, LogEntry, LogLevel

logger = logging.getLogger(__name__)

PUSH_PATH = "/loki/api/v1/push"
READY_PATH = "/ready"


class LokiIntegration(BaseIntegration):
    """Ships log entries to Loki's push API.

    ``write_logs`` buffers entries in a ``LogBatcher`` that flushes on size
    and on a timer; ``send_logs`` pushes immediately. Entries below the
    minimum level set with ``set_log_level`` are dropped before either path.

    Example:
        ```python
        loki = LokiIntegration(LokiConfig(enabled=True, url="http://loki:3100"))
        await loki.initialize()
        await loki.write_logs([info("analysis complete", component="analyzer")])
        await loki.close()
        ```

    Args:
        config: Loki options. Defaults to a disabled configuration.
        transport: Optional httpx transport.
        name: Integration name.
    """

    def __init__(
        self,
        config: LokiConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        name: str = "loki",
    ) -> None:
        super().__init__(name, transport)
        self._config = config or LokiConfig()
        self._builder = self._new_builder()
        self._batcher: LogBatcher | None = None
        self._min_level = LogLevel.DEBUG
        self._update_status(enabled=self._config.enabled)
        self._set_metadata("min_log_level", self._min_level.name)

    @property
    def config(self) -> LokiConfig:
        return self._config

    @property
    def batcher(self) -> LogBatcher:
        """The log buffer, created on first use."""
        if self._batcher is None:
            self._batcher = LogBatcher(
                self._push_stream,
                builder=self._builder,
                buffer_size=self._config.buffer_size,
                batch_timeout=self._config.batch_timeout,
                name=self.name,
            )
        return self._batcher

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    def _new_builder(self) -> StreamBuilder:
        return StreamBuilder(self._config.static_labels, self._config.dynamic_labels)

    def _client_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "base_url": self._config.url,
            "timeout": self._config.timeout_seconds,
            "verify": self._config.verify_tls,
        }
        if self._config.username and self._config.password:
            options["auth"] = httpx.BasicAuth(
                self._config.username, self._config.password
            )
        if self._config.tenant_id:
            options["headers"] = {"X-Scope-OrgID": self._config.tenant_id}
        return options

    def get_status(self) -> IntegrationStatus:
        status = super().get_status()
        if self._batcher is not None:
            status.metadata["pending_entries"] = str(self._batcher.pending)
            status.metadata["flush_count"] = str(self._batcher.flush_count)
        return status

    async def initialize(self, config: LokiConfig | None = None) -> None:
        """Check readiness and start the batch flush task.

        Raises:
            ConfigurationError: If the configuration is invalid.
            BackendConnectionError: If ``/ready`` does not answer with success.
        """
        if config is not None:
            self._config = config
            self._builder = self._new_builder()
        if self._batcher is not None and (config is not None or self._batcher.closed):
            await self._batcher.close()
            self._batcher = None
        self._update_status(enabled=self._config.enabled)
        if not self._config.enabled:
            logger.debug("Loki integration disabled", extra={"integration": self.name})
            return

        self._config.validate()
        self._closed = False
        await self._reset_client()
        logger.info(
            "Initializing Loki integration",
            extra={"integration": self.name, "url": self._config.url},
        )
        try:
            await self._request("GET", READY_PATH)
        except TransportError as exc:
            self._record_failure(exc)
            raise BackendConnectionError(f"failed to connect to Loki: {exc}") from exc

        self.batcher.start()
        self._mark_connected()
        logger.info("Loki integration initialized", extra={"integration": self.name})

    async def send_metrics(self, result: AnalysisResult) -> None:
        """Loki only receives logs."""

    async def send_logs(self, entries: Sequence[LogEntry]) -> None:
        """Push entries immediately, bypassing the buffer."""
        selected = self._select(entries)
        if not selected:
            return
        try:
            await self.batcher.send_now(selected)
        except TransportError as exc:
            self._record_failure(exc)
            raise

    async def write_logs(self, entries: Sequence[LogEntry]) -> None:
        """Buffer entries for the next flush.

        Raises:
            StreamPushError: If filling the buffer forced a flush that failed.
        """
        selected = self._select(entries)
        if not selected:
            return
        try:
            await self.batcher.write(selected)
        except TransportError as exc:
            self._record_failure(exc)
            raise

    async def stream_logs(self, source: AsyncIterable[LogEntry]) -> None:
        """Buffer entries from ``source`` until it is exhausted."""
        if not self.is_enabled():
            return
        logger.info("Streaming logs to Loki", extra={"integration": self.name})
        async for entry in source:
            await self.write_logs([entry])

    async def flush(self) -> None:
        """Push buffered entries now."""
        if self._batcher is not None:
            await self._batcher.flush()

    def set_log_level(self, level: LogLevel | str | int) -> None:
        self._min_level = LogLevel.parse(level)
        self._set_metadata("min_log_level", self._min_level.name)
        logger.debug(
            "Set minimum log level",
            extra={"integration": self.name, "level": self._min_level.name},
        )

    def add_static_labels(self, labels: Mapping[str, str]) -> None:
        self._builder.add_static_labels(labels)
        logger.debug(
            "Added static labels",
            extra={"integration": self.name, "label_count": len(labels)},
        )

    async def test_connection(self) -> None:
        if not self.is_enabled():
            return
        try:
            await self._request("GET", READY_PATH)
        except TransportError as exc:
            self._record_failure(exc)
            raise

    def _select(self, entries: Sequence[LogEntry]) -> list[LogEntry]:
        if not self.is_enabled():
            return []
        return [entry for entry in entries if entry.level >= self._min_level]

    async def _push_stream(self, stream: LogStream) -> None:
        await self._request("POST", PUSH_PATH, json=encode_push_request([stream]))

    async def _on_close(self) -> None:
        if self._batcher is not None:
            await self._batcher.close()
