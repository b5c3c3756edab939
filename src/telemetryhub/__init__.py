"""Telemetry fan-out to Grafana, Loki and Prometheus."""

from telemetryhub.adapters.batching import LogBatcher
from telemetryhub.adapters.integrations import (
    GrafanaIntegration,
    InMemoryIntegration,
    LokiIntegration,
    PrometheusIntegration,
)
from telemetryhub.adapters.logging import IntegrationLogHandler
from telemetryhub.core.config import (
    DashboardConfig,
    DataSourceConfig,
    GrafanaConfig,
    IntegrationsConfig,
    LokiConfig,
    PrometheusConfig,
    PushGatewayConfig,
    parse_duration,
)
from telemetryhub.core.errors import (
    FanOutError,
    InitializationError,
    PartialFailureError,
    StreamPushError,
    TelemetryError,
)
from telemetryhub.core.logs import debug, error, info, log, timed_log, warn
from telemetryhub.core.metrics import MetricRegistry
from telemetryhub.core.models import (
    AnalysisResult,
    ClientStats,
    Dashboard,
    IntegrationStatus,
    LogEntry,
    LogLevel,
    MetricType,
    Panel,
)
from telemetryhub.core.ports import (
    DashboardIntegration,
    LogsIntegration,
    MetricsIntegration,
    MonitoringIntegration,
)
from telemetryhub.manager import Manager

__all__ = [
    # Manager
    "Manager",
    # Models
    "AnalysisResult",
    "ClientStats",
    "Dashboard",
    "IntegrationStatus",
    "LogEntry",
    "LogLevel",
    "MetricType",
    "Panel",
    # Ports
    "DashboardIntegration",
    "LogsIntegration",
    "MetricsIntegration",
    "MonitoringIntegration",
    # Integrations
    "GrafanaIntegration",
    "InMemoryIntegration",
    "LokiIntegration",
    "PrometheusIntegration",
    "IntegrationLogHandler",
    "LogBatcher",
    "MetricRegistry",
    # Configuration
    "DashboardConfig",
    "DataSourceConfig",
    "GrafanaConfig",
    "IntegrationsConfig",
    "LokiConfig",
    "PrometheusConfig",
    "PushGatewayConfig",
    "parse_duration",
    # Errors
    "FanOutError",
    "InitializationError",
    "PartialFailureError",
    "StreamPushError",
    "TelemetryError",
    # Log helpers
    "debug",
    "error",
    "info",
    "log",
    "timed_log",
    "warn",
]
