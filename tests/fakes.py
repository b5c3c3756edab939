"""Test doubles shared by manager tests and BDD steps."""

import asyncio
from collections.abc import AsyncIterable, Mapping, Sequence
from typing import Any

from telemetryhub.core.models import (
    AnalysisResult,
    IntegrationStatus,
    LogEntry,
    LogLevel,
)


class FakeIntegration:
    """MonitoringIntegration that records calls and can be told to fail."""

    def __init__(
        self,
        name: str,
        enabled: bool = True,
        fail_with: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self._name = name
        self.enabled = enabled
        self.fail_with = fail_with
        self.delay = delay
        self.initialized = 0
        self.metrics_calls: list[AnalysisResult] = []
        self.sent_logs: list[LogEntry] = []
        self.tested = 0
        self.closed = 0
        self.close_error: Exception | None = None

    @property
    def name(self) -> str:
        return self._name

    def is_enabled(self) -> bool:
        return self.enabled

    def get_status(self) -> IntegrationStatus:
        return IntegrationStatus(
            name=self._name, enabled=self.enabled, connected=self.initialized > 0
        )

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def initialize(self, config: Any = None) -> None:
        self.initialized += 1

    async def send_metrics(self, result: AnalysisResult) -> None:
        self.metrics_calls.append(result)
        await self._maybe_fail()

    async def send_logs(self, entries: Sequence[LogEntry]) -> None:
        self.sent_logs.extend(entries)
        await self._maybe_fail()

    async def test_connection(self) -> None:
        self.tested += 1
        await self._maybe_fail()

    async def close(self) -> None:
        self.closed += 1
        if self.close_error is not None:
            raise self.close_error


class FakeLogsIntegration(FakeIntegration):
    """FakeIntegration that also satisfies LogsIntegration."""

    def __init__(self, name: str, **kwargs: Any) -> None:
        super().__init__(name, **kwargs)
        self.written_logs: list[LogEntry] = []
        self.static_labels: dict[str, str] = {}
        self.min_level = LogLevel.DEBUG

    async def write_logs(self, entries: Sequence[LogEntry]) -> None:
        self.written_logs.extend(entries)
        await self._maybe_fail()

    async def stream_logs(self, source: AsyncIterable[LogEntry]) -> None:
        async for entry in source:
            await self.write_logs([entry])

    def set_log_level(self, level: LogLevel) -> None:
        self.min_level = level

    def add_static_labels(self, labels: Mapping[str, str]) -> None:
        self.static_labels.update(labels)
