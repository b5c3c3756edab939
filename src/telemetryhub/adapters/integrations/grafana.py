"""Grafana integration: data source setup and dashboard provisioning."""

import dataclasses
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from telemetryhub.adapters.integrations.base import BaseIntegration
from telemetryhub.core.config import GrafanaConfig
from telemetryhub.core.encoding.grafana import (
    build_dashboard_payload,
    dashboard_from_grafana,
    main_dashboard,
)
from telemetryhub.core.errors import BackendConnectionError, TransportError
from telemetryhub.core.models import AnalysisResult, Dashboard, LogEntry

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/health"
DASHBOARDS_PATH = "/api/dashboards/db"
DATASOURCES_PATH = "/api/datasources"


class GrafanaIntegration(BaseIntegration):
    """Manages dashboards and the analyzer data source in Grafana.

    ``send_metrics`` does not ship samples; with ``auto_provision`` on it
    (re)creates the analyzer overview dashboard. Dashboard operations on a
    disabled integration do nothing.

    Args:
        config: Grafana options. Defaults to a disabled configuration.
        transport: Optional httpx transport.
        name: Integration name.
        namespace: Metric namespace queried by the provisioned dashboard.
    """

    def __init__(
        self,
        config: GrafanaConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        name: str = "grafana",
        namespace: str = "dns_analyzer",
    ) -> None:
        super().__init__(name, transport)
        self._config = config or GrafanaConfig()
        self._namespace = namespace
        self._update_status(enabled=self._config.enabled)

    @property
    def config(self) -> GrafanaConfig:
        return self._config

    def _client_options(self) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return {
            "base_url": self._config.url,
            "timeout": self._config.timeout_seconds,
            "verify": self._config.verify_tls,
            "headers": headers,
        }

    async def initialize(self, config: GrafanaConfig | None = None) -> None:
        """Check Grafana's health and set up the data source if configured.

        A data source failure is logged and does not fail initialization.

        Raises:
            ConfigurationError: If the configuration is invalid.
            BackendConnectionError: If the health check fails.
        """
        if config is not None:
            self._config = config
        self._update_status(enabled=self._config.enabled)
        if not self._config.enabled:
            logger.debug("Grafana integration disabled", extra={"integration": self.name})
            return

        self._config.validate()
        self._closed = False
        await self._reset_client()
        logger.info(
            "Initializing Grafana integration",
            extra={"integration": self.name, "url": self._config.url},
        )
        try:
            await self._request("GET", HEALTH_PATH)
        except TransportError as exc:
            self._record_failure(exc)
            raise BackendConnectionError(f"failed to connect to Grafana: {exc}") from exc

        if self._config.data_source.create_if_not_exists:
            try:
                await self.setup_data_source()
            except TransportError as exc:
                logger.warning(
                    "Failed to set up data source: %s",
                    exc,
                    extra={"integration": self.name},
                )

        self._mark_connected()
        logger.info("Grafana integration initialized", extra={"integration": self.name})

    async def setup_data_source(self) -> None:
        """Create the configured data source, or update it if it exists."""
        source = self._config.data_source
        existing = await self._find_data_source(source.name)
        body: dict[str, Any] = {
            "name": source.name,
            "type": source.type,
            "url": source.url,
            "access": source.access,
        }
        if source.basic_auth:
            body.update(
                basicAuth=True,
                basicAuthUser=source.username,
                basicAuthPassword=source.password,
            )
        if existing is None:
            await self._request("POST", DATASOURCES_PATH, json=body)
            logger.info(
                "Created data source",
                extra={"integration": self.name, "datasource": source.name},
            )
            return
        body["id"] = existing["id"]
        await self._request("PUT", f"{DATASOURCES_PATH}/{existing['id']}", json=body)
        logger.info(
            "Updated data source",
            extra={"integration": self.name, "datasource": source.name},
        )

    async def _find_data_source(self, name: str) -> dict[str, Any] | None:
        for source in await self._request_json("GET", DATASOURCES_PATH):
            if source.get("name") == name:
                return source
        return None

    async def send_metrics(self, result: AnalysisResult) -> None:
        """Provision the overview dashboard when auto-provisioning is on."""
        if not self.is_enabled() or not self._config.dashboards.auto_provision:
            return
        logger.debug(
            "Provisioning dashboards",
            extra={
                "integration": self.name,
                "total_queries": result.total_queries,
                "unique_clients": result.unique_clients,
            },
        )
        dashboard = dataclasses.replace(
            main_dashboard(self._namespace, self._config.dashboards.tags),
            folder_id=self._config.dashboards.folder_id,
        )
        try:
            await self.create_dashboard(dashboard)
        except TransportError as exc:
            self._record_failure(exc)
            raise

    async def send_logs(self, entries: Sequence[LogEntry]) -> None:
        """Grafana does not ingest logs directly."""

    async def test_connection(self) -> None:
        if not self.is_enabled():
            return
        try:
            await self._request("GET", HEALTH_PATH)
        except TransportError as exc:
            self._record_failure(exc)
            raise

    async def create_dashboard(self, dashboard: Dashboard) -> None:
        await self._save_dashboard(dashboard, self._config.dashboards.overwrite_existing)

    async def update_dashboard(self, dashboard: Dashboard) -> None:
        """Save over an existing dashboard with the same uid or title."""
        await self._save_dashboard(dashboard, overwrite=True)

    async def _save_dashboard(self, dashboard: Dashboard, overwrite: bool) -> None:
        if not self.is_enabled():
            return
        logger.info(
            "Saving Grafana dashboard",
            extra={"integration": self.name, "title": dashboard.title},
        )
        await self._request(
            "POST", DASHBOARDS_PATH, json=build_dashboard_payload(dashboard, overwrite)
        )

    async def delete_dashboard(self, uid: str) -> None:
        if not self.is_enabled():
            return
        logger.info("Deleting Grafana dashboard", extra={"integration": self.name, "uid": uid})
        await self._request("DELETE", f"/api/dashboards/uid/{uid}")

    async def list_dashboards(self) -> list[Dashboard]:
        if not self.is_enabled():
            return []
        found = await self._request_json(
            "GET", "/api/search", params={"type": "dash-db"}
        )
        return [dashboard_from_grafana(item) for item in found]

    async def get_dashboard(self, uid: str) -> Dashboard | None:
        """Fetch a dashboard by uid, or None if Grafana does not know it."""
        if not self.is_enabled():
            return None
        try:
            payload = await self._request_json("GET", f"/api/dashboards/uid/{uid}")
        except TransportError as exc:
            if exc.status_code == 404:
                return None
            raise
        return dashboard_from_grafana(payload.get("dashboard", {}))
