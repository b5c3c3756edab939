"""Core domain models for telemetry fan-out."""

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Severity of a forwarded log entry.

    Values line up with the standard library ``logging`` levels so records
    can be mapped without a lookup table.
    """

    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40

    @classmethod
    def parse(cls, value: "str | int | LogLevel") -> "LogLevel":
        """Convert a level name or number to a LogLevel.

        Accepts names case-insensitively (``"warning"`` maps to WARN) and
        numeric levels, which are rounded down to the closest known level.

        Raises:
            ValueError: If the name is unknown or the number is below DEBUG.
        """
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, int):
            candidates = [level for level in cls if level <= value]
            if not candidates:
                raise ValueError(f"unknown log level: {value}")
            return max(candidates)
        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"
        if name in ("CRITICAL", "FATAL"):
            name = "ERROR"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown log level: {value!r}") from None


class MetricType(str, Enum):
    """Kind of a registered metric family."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"


@dataclass(frozen=True)
class LogEntry:
    """A structured log entry destined for log backends.

    Attributes:
        timestamp: Unix timestamp in seconds.
        level: Severity of the entry.
        message: The log message.
        component: Producing component, used as a dynamic stream label.
        labels: Stream labels specific to this entry.
        fields: Additional structured fields appended to the log line.
    """

    timestamp: float
    level: LogLevel
    message: str
    component: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class IntegrationStatus:
    """Connection state of one integration.

    Instances are owned by their integration and only handed out as copies.

    Attributes:
        name: Integration name.
        enabled: Whether the integration is enabled.
        connected: Whether the last handshake succeeded.
        last_connect_time: Unix timestamp of the last successful handshake.
        last_error: Message of the most recent failure, empty if none.
        metadata: Free-form integration-specific details.
    """

    name: str
    enabled: bool = False
    connected: bool = False
    last_connect_time: float | None = None
    last_error: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def copy(self) -> "IntegrationStatus":
        """Return a copy that shares no mutable state with this status."""
        return replace(self, metadata=dict(self.metadata))


@dataclass(frozen=True)
class ClientStats:
    """Per-client aggregates produced by the analyzer."""

    ip: str
    hostname: str = ""
    query_count: int = 0
    domains: dict[str, int] = field(default_factory=dict)
    is_online: bool = False


@dataclass(frozen=True)
class AnalysisResult:
    """Snapshot produced by the upstream analyzer.

    Only the scalar aggregates and the per-client map are consumed here.

    Attributes:
        total_queries: Number of DNS queries in the analysed window.
        unique_clients: Number of distinct clients seen.
        client_stats: Per-client aggregates keyed by client address.
        analysis_duration: Seconds spent producing the result, if measured.
        analysis_mode: Free-form mode reported by the analyzer.
        timestamp: Unix timestamp of the snapshot.
    """

    total_queries: int = 0
    unique_clients: int = 0
    client_stats: dict[str, ClientStats] = field(default_factory=dict)
    analysis_duration: float | None = None
    analysis_mode: str = ""
    timestamp: float = 0.0


@dataclass(frozen=True)
class Panel:
    """A single panel in a declarative dashboard."""

    id: int
    title: str
    type: str
    query: str
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Dashboard:
    """A declarative, backend-agnostic dashboard definition."""

    title: str
    id: str = ""
    description: str = ""
    folder_id: str = ""
    tags: list[str] = field(default_factory=list)
    panels: list[Panel] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    definition: dict[str, Any] | None = None
