"""Port interfaces for monitoring integrations.

These protocols define the contracts that integration adapters implement.
The manager depends only on these interfaces and narrows to the optional
capabilities at runtime with ``isinstance`` checks, so new backend kinds
need no manager changes.
"""

from collections.abc import AsyncIterable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from telemetryhub.core.models import (
    AnalysisResult,
    Dashboard,
    IntegrationStatus,
    LogEntry,
    LogLevel,
    MetricType,
)


@runtime_checkable
class MonitoringIntegration(Protocol):
    """Base contract every monitoring backend implements.

    Examples: GrafanaIntegration, LokiIntegration, PrometheusIntegration,
    InMemoryIntegration.
    """

    @property
    def name(self) -> str:
        """Unique integration name."""
        ...

    def is_enabled(self) -> bool:
        """Return whether the integration is enabled."""
        ...

    def get_status(self) -> IntegrationStatus:
        """Return a copy of the current status."""
        ...

    async def initialize(self, config: Any = None) -> None:
        """Set up the integration, replacing its config when one is given.

        A disabled integration returns immediately without any I/O.
        """
        ...

    async def send_metrics(self, result: AnalysisResult) -> None:
        """Send an analysis snapshot to the backend."""
        ...

    async def send_logs(self, entries: Sequence[LogEntry]) -> None:
        """Send log entries to the backend immediately."""
        ...

    async def test_connection(self) -> None:
        """Check connectivity, raising on failure."""
        ...

    async def close(self) -> None:
        """Release resources. Safe to call more than once."""
        ...


@runtime_checkable
class MetricsIntegration(MonitoringIntegration, Protocol):
    """Integration that owns a metric registry."""

    def register_metric(
        self,
        name: str,
        help: str,
        kind: MetricType,
        label_names: Sequence[str] = (),
    ) -> None:
        """Register a new metric family."""
        ...

    def set_metric(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        """Set a gauge, or add to a counter."""
        ...

    def increment_counter(
        self, name: str, labels: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter by one."""
        ...

    async def push_metrics(self, values: Mapping[str, Any]) -> None:
        """Record ad hoc values and push them to the backend."""
        ...


@runtime_checkable
class LogsIntegration(MonitoringIntegration, Protocol):
    """Integration that ships log entries."""

    async def write_logs(self, entries: Sequence[LogEntry]) -> None:
        """Buffer log entries for batched delivery."""
        ...

    async def stream_logs(self, source: AsyncIterable[LogEntry]) -> None:
        """Forward entries from an async iterable until it is exhausted."""
        ...

    def set_log_level(self, level: LogLevel) -> None:
        """Set the minimum level forwarded to the backend."""
        ...

    def add_static_labels(self, labels: Mapping[str, str]) -> None:
        """Merge labels applied to every future stream."""
        ...


@runtime_checkable
class DashboardIntegration(MonitoringIntegration, Protocol):
    """Integration that manages dashboards."""

    async def create_dashboard(self, dashboard: Dashboard) -> None: ...

    async def update_dashboard(self, dashboard: Dashboard) -> None: ...

    async def delete_dashboard(self, uid: str) -> None: ...

    async def list_dashboards(self) -> list[Dashboard]: ...

    async def get_dashboard(self, uid: str) -> Dashboard | None: ...
