"""Tests for port interfaces."""

import pytest

from telemetryhub.adapters.integrations import (
    GrafanaIntegration,
    InMemoryIntegration,
    LokiIntegration,
    PrometheusIntegration,
)
from telemetryhub.core.ports import (
    DashboardIntegration,
    LogsIntegration,
    MetricsIntegration,
    MonitoringIntegration,
)
from tests.fakes import FakeIntegration, FakeLogsIntegration


class TestMonitoringIntegration:
    """Tests for the base capability contract."""

    @pytest.mark.core
    @pytest.mark.parametrize(
        "method",
        ["initialize", "send_metrics", "send_logs", "test_connection", "close"],
    )
    def test_protocol_defines_method(self, method: str) -> None:
        assert hasattr(MonitoringIntegration, method)

    @pytest.mark.core
    def test_fake_is_recognized(self) -> None:
        assert isinstance(FakeIntegration("fake"), MonitoringIntegration)

    @pytest.mark.core
    def test_base_only_fake_is_not_logs_capable(self) -> None:
        assert not isinstance(FakeIntegration("fake"), LogsIntegration)
        assert isinstance(FakeLogsIntegration("fake"), LogsIntegration)


class TestBuiltinCapabilities:
    """Built-in integrations expose exactly their capabilities."""

    @pytest.mark.core
    def test_loki_is_logs_capable_only(self) -> None:
        loki = LokiIntegration()
        assert isinstance(loki, LogsIntegration)
        assert not isinstance(loki, MetricsIntegration)
        assert not isinstance(loki, DashboardIntegration)

    @pytest.mark.core
    def test_prometheus_is_metrics_capable_only(self) -> None:
        prometheus = PrometheusIntegration()
        assert isinstance(prometheus, MetricsIntegration)
        assert not isinstance(prometheus, LogsIntegration)

    @pytest.mark.core
    def test_grafana_manages_dashboards(self) -> None:
        grafana = GrafanaIntegration()
        assert isinstance(grafana, DashboardIntegration)
        assert not isinstance(grafana, LogsIntegration)
        assert not isinstance(grafana, MetricsIntegration)

    @pytest.mark.core
    def test_in_memory_has_both_capabilities(self) -> None:
        memory = InMemoryIntegration()
        assert isinstance(memory, LogsIntegration)
        assert isinstance(memory, MetricsIntegration)
