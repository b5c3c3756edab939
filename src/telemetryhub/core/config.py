"""Configuration surface consumed by the integrations.

Loading these values from files or the command line happens elsewhere;
this module only describes their shape, builds them from plain mappings,
and checks the fields each integration relies on.
"""

import dataclasses
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from telemetryhub.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_TIMEOUT = 10.0

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str | int | float, default: float) -> float:
    """Parse a Go-style duration into seconds.

    Accepts strings such as ``"10s"``, ``"500ms"`` or ``"1m30s"`` and bare
    numbers (seconds). Malformed or non-positive values fall back to
    ``default`` with a warning rather than failing.

    Args:
        value: Duration string or number of seconds.
        default: Seconds to use when ``value`` cannot be used.

    Returns:
        Duration in seconds.
    """
    seconds: float | None = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if re.fullmatch(r"\d+(?:\.\d+)?", text):
            seconds = float(text)
        elif text and _DURATION_PART.sub("", text) == "":
            seconds = sum(
                float(amount) * _DURATION_UNITS[unit]
                for amount, unit in _DURATION_PART.findall(text)
            )
    if seconds is None or seconds <= 0:
        logger.warning(
            "Invalid duration %r, using default %ss",
            value,
            default,
            extra={"value": str(value)},
        )
        return default
    return seconds


T = TypeVar("T")


def _from_mapping(
    cls: type[T],
    data: Mapping[str, Any],
    nested: Mapping[str, type] | None = None,
) -> T:
    """Build a config dataclass from a mapping, rejecting unknown keys."""
    nested = nested or {}
    known = {f.name for f in dataclasses.fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"unknown {cls.__name__} option(s): {', '.join(unknown)}"
        )
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key in nested and isinstance(value, Mapping):
            value = nested[key].from_dict(value)  # type: ignore[attr-defined]
        kwargs[key] = value
    return cls(**kwargs)


def _require_url(integration: str, url: str) -> None:
    if not url:
        raise ConfigurationError(f"{integration}: url is required")
    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(f"{integration}: url must be http(s), got {url!r}")


@dataclass
class DataSourceConfig:
    """Grafana data source to create or update on initialize."""

    create_if_not_exists: bool = False
    name: str = "dns-analyzer-prometheus"
    type: str = "prometheus"
    url: str = "http://localhost:9090"
    access: str = "proxy"
    basic_auth: bool = False
    username: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DataSourceConfig":
        return _from_mapping(cls, data)


@dataclass
class DashboardConfig:
    """Grafana dashboard provisioning options."""

    auto_provision: bool = False
    folder_id: str = ""
    overwrite_existing: bool = True
    tags: list[str] = field(default_factory=lambda: ["dns", "network"])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DashboardConfig":
        return _from_mapping(cls, data)


@dataclass
class GrafanaConfig:
    """Grafana integration options."""

    enabled: bool = False
    url: str = "http://localhost:3000"
    api_key: str = ""
    organization: str = "main"
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    dashboards: DashboardConfig = field(default_factory=DashboardConfig)
    timeout_seconds: float = 30.0
    verify_tls: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GrafanaConfig":
        return _from_mapping(
            cls,
            data,
            {"data_source": DataSourceConfig, "dashboards": DashboardConfig},
        )

    def validate(self) -> None:
        _require_url("grafana", self.url)
        if self.timeout_seconds <= 0:
            raise ConfigurationError("grafana: timeout_seconds must be positive")


@dataclass
class LokiConfig:
    """Loki integration options.

    Attributes:
        batch_timeout: Duration string for the periodic flush ("10s").
        buffer_size: Maximum number of buffered entries before a forced flush.
        static_labels: Labels applied to every stream.
        dynamic_labels: Entry-derived labels to add; "level" and "component"
            are recognised.
    """

    enabled: bool = False
    url: str = "http://localhost:3100"
    username: str = ""
    password: str = ""
    tenant_id: str = ""
    batch_timeout: str = "10s"
    buffer_size: int = 1000
    static_labels: dict[str, str] = field(
        default_factory=lambda: {"service": "dns-analyzer"}
    )
    dynamic_labels: list[str] = field(default_factory=lambda: ["level", "component"])
    timeout_seconds: float = 30.0
    verify_tls: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LokiConfig":
        return _from_mapping(cls, data)

    def validate(self) -> None:
        _require_url("loki", self.url)
        if self.buffer_size <= 0:
            raise ConfigurationError("loki: buffer_size must be positive")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("loki: timeout_seconds must be positive")


@dataclass
class PushGatewayConfig:
    """Prometheus push gateway options."""

    enabled: bool = False
    url: str = "http://localhost:9091"
    job: str = "dns-analyzer"
    instance: str = ""
    username: str = ""
    password: str = ""
    timeout_seconds: float = 10.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PushGatewayConfig":
        return _from_mapping(cls, data)


@dataclass
class PrometheusConfig:
    """Prometheus integration options.

    Attributes:
        namespace: Prefix of the default analyzer metrics.
        external_labels: Grouping labels appended to push gateway URLs.
        custom_metric_prefix: Prefix for gauges auto-registered by pushes.
    """

    enabled: bool = False
    namespace: str = "dns_analyzer"
    push_gateway: PushGatewayConfig = field(default_factory=PushGatewayConfig)
    external_labels: dict[str, str] = field(default_factory=dict)
    custom_metric_prefix: str = "dns_analyzer_custom_"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PrometheusConfig":
        return _from_mapping(cls, data, {"push_gateway": PushGatewayConfig})

    def validate(self) -> None:
        if not re.fullmatch(r"[a-zA-Z_:][a-zA-Z0-9_:]*", self.namespace):
            raise ConfigurationError(
                f"prometheus: invalid metric namespace {self.namespace!r}"
            )
        if self.push_gateway.enabled:
            _require_url("prometheus push gateway", self.push_gateway.url)
            if not self.push_gateway.job:
                raise ConfigurationError("prometheus: push_gateway.job is required")


@dataclass
class IntegrationsConfig:
    """Top-level switch plus per-backend options."""

    enabled: bool = False
    grafana: GrafanaConfig = field(default_factory=GrafanaConfig)
    loki: LokiConfig = field(default_factory=LokiConfig)
    prometheus: PrometheusConfig = field(default_factory=PrometheusConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IntegrationsConfig":
        """Build the configuration tree from a decoded JSON/YAML mapping.

        Raises:
            ConfigurationError: If any level contains an unknown key.
        """
        return _from_mapping(
            cls,
            data,
            {
                "grafana": GrafanaConfig,
                "loki": LokiConfig,
                "prometheus": PrometheusConfig,
            },
        )
