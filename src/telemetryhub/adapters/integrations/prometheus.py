"""Prometheus integration backed by a per-instance metric registry."""

import logging
import time
from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from telemetryhub.adapters.integrations.base import BaseIntegration
from telemetryhub.core.config import PrometheusConfig
from telemetryhub.core.encoding.prometheus import CONTENT_TYPE_LATEST, push_url
from telemetryhub.core.errors import BackendConnectionError, TransportError
from telemetryhub.core.metrics import MetricRegistry
from telemetryhub.core.models import (
    AnalysisResult,
    IntegrationStatus,
    LogEntry,
    MetricType,
)

logger = logging.getLogger(__name__)


def default_metrics(namespace: str) -> list[tuple[str, str, MetricType, tuple[str, ...]]]:
    """Definitions of the analyzer metrics registered on initialize."""
    return [
        (
            f"{namespace}_total_queries",
            "Total number of DNS queries processed",
            MetricType.COUNTER,
            (),
        ),
        (
            f"{namespace}_unique_clients",
            "Number of unique clients",
            MetricType.GAUGE,
            (),
        ),
        (
            f"{namespace}_analysis_duration_seconds",
            "Duration of the analysis process",
            MetricType.HISTOGRAM,
            (),
        ),
        (
            f"{namespace}_client_queries",
            "Query count per client",
            MetricType.GAUGE,
            ("client", "hostname"),
        ),
        (
            f"{namespace}_domain_queries",
            "Query count per domain",
            MetricType.COUNTER,
            ("domain",),
        ),
    ]


class PrometheusIntegration(BaseIntegration):
    """Maps analysis snapshots onto Prometheus metrics.

    Metrics live in a private ``MetricRegistry``. When the push gateway is
    enabled the whole registry is pushed after every update and once more
    on close; either way ``expose()`` renders it for scraping.

    Args:
        config: Prometheus options. Defaults to a disabled configuration.
        transport: Optional httpx transport.
        name: Integration name.
    """

    def __init__(
        self,
        config: PrometheusConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        name: str = "prometheus",
    ) -> None:
        super().__init__(name, transport)
        self._config = config or PrometheusConfig()
        self._registry = MetricRegistry()
        self._update_status(enabled=self._config.enabled)

    @property
    def config(self) -> PrometheusConfig:
        return self._config

    @property
    def registry(self) -> MetricRegistry:
        return self._registry

    @property
    def gateway_url(self) -> str:
        """Push gateway URL for this job and its grouping labels."""
        gateway = self._config.push_gateway
        grouping: dict[str, str] = {}
        if gateway.instance:
            grouping["instance"] = gateway.instance
        grouping.update(self._config.external_labels)
        return push_url(gateway.url, gateway.job, grouping)

    def _client_options(self) -> dict[str, Any]:
        gateway = self._config.push_gateway
        options: dict[str, Any] = {"timeout": gateway.timeout_seconds}
        if gateway.username and gateway.password:
            options["auth"] = httpx.BasicAuth(gateway.username, gateway.password)
        return options

    def get_status(self) -> IntegrationStatus:
        status = super().get_status()
        status.metadata["registered_metrics"] = str(len(self._registry))
        return status

    async def initialize(self, config: PrometheusConfig | None = None) -> None:
        """Register the default metrics and check the push gateway.

        Raises:
            ConfigurationError: If the configuration is invalid.
            BackendConnectionError: If the push gateway is unreachable.
        """
        if config is not None:
            self._config = config
        self._update_status(enabled=self._config.enabled)
        if not self._config.enabled:
            logger.debug(
                "Prometheus integration disabled", extra={"integration": self.name}
            )
            return

        self._config.validate()
        self._closed = False
        await self._reset_client()
        logger.info("Initializing Prometheus integration", extra={"integration": self.name})
        if self._config.push_gateway.enabled:
            try:
                await self._probe_gateway()
            except TransportError as exc:
                self._record_failure(exc)
                raise BackendConnectionError(
                    f"failed to connect to Prometheus push gateway: {exc}"
                ) from exc

        self._register_defaults()
        self._mark_connected()
        logger.info("Prometheus integration initialized", extra={"integration": self.name})

    def _register_defaults(self) -> None:
        for name, help, kind, label_names in default_metrics(self._config.namespace):
            if name not in self._registry:
                self._registry.register(name, help, kind, label_names)

    async def send_metrics(self, result: AnalysisResult) -> None:
        """Record an analysis snapshot and push it when the gateway is on."""
        if not self.is_enabled():
            return
        logger.debug(
            "Sending metrics to Prometheus",
            extra={
                "integration": self.name,
                "total_queries": result.total_queries,
                "unique_clients": result.unique_clients,
            },
        )
        self._register_defaults()
        self._record_analysis(result)
        await self._push_if_enabled()

    def _record_analysis(self, result: AnalysisResult) -> None:
        ns = self._config.namespace
        registry = self._registry
        registry.set(f"{ns}_total_queries", result.total_queries)
        registry.set(f"{ns}_unique_clients", result.unique_clients)
        if result.analysis_duration is not None:
            registry.observe(f"{ns}_analysis_duration_seconds", result.analysis_duration)

        domains: Counter[str] = Counter()
        for client, stats in result.client_stats.items():
            registry.set(
                f"{ns}_client_queries",
                stats.query_count,
                {"client": client, "hostname": stats.hostname},
            )
            domains.update(stats.domains)
        for domain, count in domains.items():
            if count > 0:
                registry.increment(f"{ns}_domain_queries", {"domain": domain}, count)

    async def send_logs(self, entries: Sequence[LogEntry]) -> None:
        """Prometheus only receives metrics."""

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

    def get_metric_value(
        self, name: str, labels: Mapping[str, str] | None = None
    ) -> float:
        return self._registry.get_value(name, labels)

    async def push_metrics(self, values: Mapping[str, Any]) -> None:
        """Record ad hoc gauges under the custom prefix and push them.

        Raises:
            MetricValueTypeError: If any value is not numeric; nothing is
                recorded in that case.
        """
        if not self.is_enabled():
            return
        written = self._registry.push(values, prefix=self._config.custom_metric_prefix)
        logger.debug(
            "Recorded custom metrics",
            extra={"integration": self.name, "metric_count": len(written)},
        )
        await self._push_if_enabled()

    def expose(self) -> bytes:
        """Render the registry in the text exposition format."""
        return self._registry.expose()

    async def test_connection(self) -> None:
        if not self.is_enabled() or not self._config.push_gateway.enabled:
            return
        try:
            await self._probe_gateway()
        except TransportError as exc:
            self._record_failure(exc)
            raise

    async def _probe_gateway(self) -> None:
        # The gateway answers 200 even for unknown groups; only 5xx is a failure.
        gateway = self._config.push_gateway
        await self._request("GET", push_url(gateway.url, gateway.job), error_status=500)

    async def _push_if_enabled(self) -> None:
        if not self._config.push_gateway.enabled:
            return
        try:
            await self.push()
        except TransportError as exc:
            self._record_failure(exc)
            raise

    async def push(self) -> None:
        """Push the whole registry to the gateway."""
        start = time.perf_counter()
        await self._request(
            "POST",
            self.gateway_url,
            content=self.expose(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
        logger.debug(
            "Pushed metrics to gateway",
            extra={
                "integration": self.name,
                "duration_seconds": time.perf_counter() - start,
            },
        )

    async def _on_close(self) -> None:
        status = self.get_status()
        if self._config.push_gateway.enabled and status.connected:
            await self.push()
