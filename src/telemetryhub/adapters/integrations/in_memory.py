"""In-memory integration for local runs and tests."""

from collections import deque
from collections.abc import AsyncIterable, Mapping, Sequence
from typing import Any

from telemetryhub.adapters.batching import LogBatcher
from telemetryhub.adapters.integrations.base import BaseIntegration
from telemetryhub.core.encoding.loki import LogStream, StreamBuilder
from telemetryhub.core.metrics import MetricRegistry
from telemetryhub.core.models import (
    AnalysisResult,
    IntegrationStatus,
    LogEntry,
    LogLevel,
    MetricType,
)


class InMemoryIntegration(BaseIntegration):
    """Metrics and logs backend that keeps everything in process memory.

    Pushed log streams and received analysis results are kept in ring
    buffers: when a buffer is full the oldest item is evicted to make room.
    Suitable for testing and for running without any monitoring stack.

    Args:
        name: Integration name.
        enabled: Whether the integration takes part in fan-out.
        max_size: Capacity of the stream and result ring buffers.
        buffer_size: Capacity of the log batcher.
        batch_timeout: Flush interval of the log batcher.
        static_labels: Labels applied to every stream.
        dynamic_labels: Entry-derived labels to apply.
    """

    def __init__(
        self,
        name: str = "memory",
        *,
        enabled: bool = True,
        max_size: int = 1000,
        buffer_size: int = 1000,
        batch_timeout: str | float = "10s",
        static_labels: Mapping[str, str] | None = None,
        dynamic_labels: Sequence[str] = ("level", "component"),
    ) -> None:
        super().__init__(name)
        self._streams: deque[LogStream] = deque(maxlen=max_size)
        self._results: deque[AnalysisResult] = deque(maxlen=max_size)
        self._registry = MetricRegistry()
        self._builder = StreamBuilder(static_labels, dynamic_labels)
        self._buffer_size = buffer_size
        self._batch_timeout = batch_timeout
        self._batcher = self._new_batcher()
        self._min_level = LogLevel.DEBUG
        self._enabled = enabled
        self._update_status(enabled=enabled)

    def _new_batcher(self) -> LogBatcher:
        return LogBatcher(
            self._store_stream,
            builder=self._builder,
            buffer_size=self._buffer_size,
            batch_timeout=self._batch_timeout,
            name=self.name,
        )

    @property
    def registry(self) -> MetricRegistry:
        return self._registry

    @property
    def batcher(self) -> LogBatcher:
        return self._batcher

    @property
    def streams(self) -> list[LogStream]:
        """Pushed streams, oldest first."""
        return list(self._streams)

    @property
    def results(self) -> list[AnalysisResult]:
        """Received analysis results, oldest first."""
        return list(self._results)

    def get_status(self) -> IntegrationStatus:
        status = super().get_status()
        status.metadata.update(
            min_log_level=self._min_level.name,
            registered_metrics=str(len(self._registry)),
            pending_entries=str(self._batcher.pending),
            flush_count=str(self._batcher.flush_count),
        )
        return status

    async def initialize(self, config: Any = None) -> None:
        """Start the batcher. ``config`` is accepted for symmetry and ignored."""
        self._update_status(enabled=self._enabled)
        if not self._enabled:
            return
        if self._batcher.closed:
            self._batcher = self._new_batcher()
        self._closed = False
        self._batcher.start()
        self._mark_connected()

    async def send_metrics(self, result: AnalysisResult) -> None:
        if self.is_enabled():
            self._results.append(result)

    async def send_logs(self, entries: Sequence[LogEntry]) -> None:
        selected = self._select(entries)
        if selected:
            await self._batcher.send_now(selected)

    async def write_logs(self, entries: Sequence[LogEntry]) -> None:
        selected = self._select(entries)
        if selected:
            await self._batcher.write(selected)

    async def stream_logs(self, source: AsyncIterable[LogEntry]) -> None:
        async for entry in source:
            await self.write_logs([entry])

    def set_log_level(self, level: LogLevel | str | int) -> None:
        self._min_level = LogLevel.parse(level)

    def add_static_labels(self, labels: Mapping[str, str]) -> None:
        self._builder.add_static_labels(labels)

    def register_metric(
        self,
        name: str,
        help: str,
        kind: MetricType,
        label_names: Sequence[str] = (),
    ) -> None:
        if not self.is_enabled():
            return
        self._registry.register(name, help, kind, label_names)

    def set_metric(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        if not self.is_enabled():
            return
        self._registry.set(name, value, labels)

    def increment_counter(
        self, name: str, labels: Mapping[str, str] | None = None
    ) -> None:
        if not self.is_enabled():
            return
        self._registry.increment(name, labels)

    async def push_metrics(self, values: Mapping[str, Any]) -> None:
        if self.is_enabled():
            self._registry.push(values)

    async def test_connection(self) -> None:
        """Always reachable."""

    async def read(self) -> AsyncIterable[LogStream]:
        """Yield pushed streams, oldest first."""
        for stream in list(self._streams):
            yield stream

    def _select(self, entries: Sequence[LogEntry]) -> list[LogEntry]:
        if not self.is_enabled():
            return []
        return [entry for entry in entries if entry.level >= self._min_level]

    async def _store_stream(self, stream: LogStream) -> None:
        self._streams.append(stream)

    async def _on_close(self) -> None:
        await self._batcher.close()
