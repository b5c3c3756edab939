"""Tests for the fan-out manager."""

import asyncio
from collections.abc import Callable

import httpx
import pytest

from telemetryhub.adapters.integrations import (
    InMemoryIntegration,
    LokiIntegration,
    PrometheusIntegration,
)
from telemetryhub.core.config import IntegrationsConfig, LokiConfig
from telemetryhub.core.errors import (
    BackendConnectionError,
    DuplicateNameError,
    FanOutError,
    InitializationError,
    NotFoundError,
    TransportError,
)
from telemetryhub.core.models import AnalysisResult, LogEntry
from telemetryhub.manager import Manager
from tests.fakes import FakeIntegration, FakeLogsIntegration

pytestmark = [
    pytest.mark.integration,
    pytest.mark.tier(2),
    pytest.mark.tra("Manager.FanOut"),
]


async def _manager(*integrations: FakeIntegration) -> Manager:
    """An initialized manager with no built-ins and the given fakes."""
    manager = Manager(IntegrationsConfig(enabled=True))
    await manager.initialize()
    for integration in integrations:
        manager.register_integration(integration)
    return manager


class TestRegistry:
    @pytest.mark.asyncio
    async def test_duplicate_name_is_rejected(self) -> None:
        manager = await _manager(FakeIntegration("a"))
        with pytest.raises(DuplicateNameError):
            manager.register_integration(FakeIntegration("a"))

    @pytest.mark.asyncio
    async def test_unknown_name_raises_not_found(self) -> None:
        manager = await _manager()
        with pytest.raises(NotFoundError):
            manager.get_integration("missing")

    @pytest.mark.asyncio
    async def test_enabled_integrations_sorted_by_name(self) -> None:
        manager = await _manager(
            FakeIntegration("c"), FakeIntegration("a"), FakeIntegration("b", enabled=False)
        )
        assert [i.name for i in manager.get_enabled_integrations()] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_get_status_covers_all_registered(self) -> None:
        manager = await _manager(FakeIntegration("a"), FakeIntegration("b", enabled=False))
        status = manager.get_status()
        assert sorted(status) == ["a", "b"]
        assert status["b"].enabled is False

    @pytest.mark.asyncio
    async def test_get_status_returns_independent_snapshots(self, backend) -> None:  # type: ignore[no-untyped-def]
        backend.route("GET", "/ready", 200)
        loki = LokiIntegration(
            LokiConfig(enabled=True, url="http://loki:3100"), transport=backend.transport
        )
        await loki.initialize()
        loki.set_log_level("error")
        manager = await _manager()
        manager.register_integration(loki)

        snapshot = manager.get_status()["loki"]
        snapshot.connected = False
        snapshot.metadata["min_log_level"] = "DEBUG"
        snapshot.metadata["injected"] = "yes"

        for status in (manager.get_status()["loki"], loki.get_status()):
            assert status.connected is True
            assert status.metadata["min_log_level"] == "ERROR"
            assert "injected" not in status.metadata
        await manager.close()


class TestSendToAll:
    @pytest.mark.asyncio
    async def test_calls_only_enabled_integrations(
        self, analysis_result: AnalysisResult
    ) -> None:
        a, b, c = FakeIntegration("a"), FakeIntegration("b", enabled=False), FakeIntegration("c")
        manager = await _manager(a, b, c)

        await manager.send_to_all(analysis_result)

        assert a.metrics_calls == [analysis_result]
        assert b.metrics_calls == []
        assert c.metrics_calls == [analysis_result]

    @pytest.mark.asyncio
    async def test_failures_are_aggregated(self, analysis_result: AnalysisResult) -> None:
        ok = FakeIntegration("ok")
        first = FakeIntegration("first", fail_with=TransportError("down"))
        second = FakeIntegration("second", fail_with=RuntimeError("bug"))
        manager = await _manager(ok, first, second)

        with pytest.raises(FanOutError) as excinfo:
            await manager.send_to_all(analysis_result)

        assert excinfo.value.names == ["first", "second"]
        assert excinfo.value.operation == "send_metrics"
        assert ok.metrics_calls == [analysis_result]
        assert "first: down" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_slow_integration_times_out_alone(
        self, analysis_result: AnalysisResult
    ) -> None:
        fast = FakeIntegration("fast")
        slow = FakeIntegration("slow", delay=1.0)
        manager = await _manager(fast, slow)

        with pytest.raises(FanOutError) as excinfo:
            await manager.send_to_all(analysis_result, timeout=0.05)

        assert excinfo.value.names == ["slow"]
        assert isinstance(excinfo.value.failures["slow"], asyncio.TimeoutError)
        assert fast.metrics_calls == [analysis_result]

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, analysis_result: AnalysisResult) -> None:
        fakes = [FakeIntegration(f"i{n}", delay=0.1) for n in range(5)]
        manager = await _manager(*fakes)

        loop = asyncio.get_running_loop()
        start = loop.time()
        await manager.send_to_all(analysis_result)

        assert loop.time() - start < 0.4

    @pytest.mark.asyncio
    async def test_uninitialized_manager_sends_nothing(
        self, analysis_result: AnalysisResult
    ) -> None:
        fake = FakeIntegration("a")
        manager = Manager(IntegrationsConfig(enabled=True))
        manager.register_integration(fake)

        await manager.send_to_all(analysis_result)

        assert fake.metrics_calls == []

    @pytest.mark.asyncio
    async def test_disabled_config_sends_nothing(self, analysis_result: AnalysisResult) -> None:
        fake = FakeIntegration("a")
        manager = Manager(IntegrationsConfig(enabled=False))
        await manager.initialize()
        manager.register_integration(fake)

        await manager.send_to_all(analysis_result)

        assert manager.is_initialized() is False
        assert fake.metrics_calls == []


class TestSendLogs:
    @pytest.mark.asyncio
    async def test_buffered_by_default(self, make_entry: Callable[..., LogEntry]) -> None:
        logs = FakeLogsIntegration("loki")
        plain = FakeIntegration("plain")
        manager = await _manager(logs, plain)
        entry = make_entry()

        await manager.send_logs([entry])

        assert logs.written_logs == [entry]
        assert logs.sent_logs == []
        assert plain.sent_logs == []

    @pytest.mark.asyncio
    async def test_immediate_delivery(self, make_entry: Callable[..., LogEntry]) -> None:
        logs = FakeLogsIntegration("loki")
        manager = await _manager(logs)
        entry = make_entry()

        await manager.send_logs([entry], buffered=False)

        assert logs.sent_logs == [entry]
        assert logs.written_logs == []

    @pytest.mark.asyncio
    async def test_failure_names_operation(self, make_entry: Callable[..., LogEntry]) -> None:
        manager = await _manager(
            FakeLogsIntegration("loki", fail_with=TransportError("push failed"))
        )

        with pytest.raises(FanOutError) as excinfo:
            await manager.send_logs([make_entry()])

        assert excinfo.value.operation == "write_logs"
        assert excinfo.value.names == ["loki"]

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self) -> None:
        logs = FakeLogsIntegration("loki", fail_with=TransportError("unused"))
        manager = await _manager(logs)
        await manager.send_logs([])
        assert logs.written_logs == []


class TestTestAll:
    @pytest.mark.asyncio
    async def test_reports_only_failing_integrations(self) -> None:
        error = TransportError("unreachable")
        a, c = FakeIntegration("a"), FakeIntegration("c", enabled=False)
        manager = await _manager(a, FakeIntegration("b", fail_with=error), c)

        results = await manager.test_all()

        assert results == {"b": error}
        assert (a.tested, c.tested) == (1, 0)

    @pytest.mark.asyncio
    async def test_uninitialized_manager_tests_nothing(self) -> None:
        fake = FakeIntegration("a", fail_with=TransportError("unreachable"))
        manager = Manager(IntegrationsConfig(enabled=True))
        manager.register_integration(fake)

        assert await manager.test_all() == {}
        assert fake.tested == 0

    @pytest.mark.asyncio
    async def test_disabled_manager_tests_nothing(self) -> None:
        fake = FakeIntegration("a", fail_with=TransportError("unreachable"))
        manager = Manager(IntegrationsConfig(enabled=False))
        await manager.initialize()
        manager.register_integration(fake)

        assert await manager.test_all() == {}
        assert fake.tested == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_closes_every_integration(self) -> None:
        a, b = FakeIntegration("a"), FakeIntegration("b", enabled=False)
        manager = await _manager(a, b)

        await manager.close()

        assert (a.closed, b.closed) == (1, 1)
        assert manager.is_initialized() is False

    @pytest.mark.asyncio
    async def test_close_aggregates_failures_and_continues(self) -> None:
        a, b, c = FakeIntegration("a"), FakeIntegration("b"), FakeIntegration("c")
        a.close_error = TransportError("flush failed")
        c.close_error = TransportError("push failed")
        manager = await _manager(a, b, c)

        with pytest.raises(FanOutError) as excinfo:
            await manager.close()

        assert excinfo.value.names == ["a", "c"]
        assert b.closed == 1
        assert manager.is_initialized() is False

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        fake = FakeIntegration("a")
        manager = await _manager(fake)

        await manager.close()
        await manager.close()

        assert fake.closed == 1

    @pytest.mark.asyncio
    async def test_second_initialize_is_ignored(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        manager = await _manager()
        await manager.initialize()
        assert "already initialized" in caplog.text

    @pytest.mark.asyncio
    async def test_context_manager(self, analysis_result: AnalysisResult) -> None:
        async with Manager(IntegrationsConfig(enabled=True)) as manager:
            fake = FakeIntegration("a")
            manager.register_integration(fake)
            await manager.send_to_all(analysis_result)
        assert fake.closed == 1
        assert manager.is_initialized() is False


class TestBuiltins:
    @pytest.mark.asyncio
    async def test_initialize_creates_enabled_builtins(self, backend) -> None:  # type: ignore[no-untyped-def]
        backend.route("GET", "/ready", 200)
        config = IntegrationsConfig.from_dict(
            {
                "enabled": True,
                "loki": {"enabled": True, "url": "http://loki:3100"},
                "prometheus": {"enabled": True},
            }
        )
        manager = Manager(config, transport=backend.transport)

        await manager.initialize()

        names = [i.name for i in manager.get_enabled_integrations()]
        assert names == ["loki", "prometheus"]
        assert isinstance(manager.get_integration("loki"), LokiIntegration)
        assert isinstance(manager.get_integration("prometheus"), PrometheusIntegration)
        with pytest.raises(NotFoundError):
            manager.get_integration("grafana")
        await manager.close()

    @pytest.mark.asyncio
    async def test_fan_out_reaches_builtins(
        self,
        backend,  # type: ignore[no-untyped-def]
        analysis_result: AnalysisResult,
        make_entry: Callable[..., LogEntry],
    ) -> None:
        backend.route("GET", "/ready", 200)
        backend.route("POST", "/loki/api/v1/push", 204)
        config = IntegrationsConfig.from_dict(
            {
                "enabled": True,
                "loki": {"enabled": True, "url": "http://loki:3100"},
                "prometheus": {"enabled": True},
            }
        )
        async with Manager(config, transport=backend.transport) as manager:
            memory = InMemoryIntegration()
            await memory.initialize()
            manager.register_integration(memory)

            await manager.send_to_all(analysis_result)
            await manager.send_logs([make_entry("shipped")], buffered=False)

            prometheus = manager.get_integration("prometheus")
            assert isinstance(prometheus, PrometheusIntegration)
            assert prometheus.get_metric_value("dns_analyzer_unique_clients") == 2.0
            assert memory.results == [analysis_result]

        (body,) = backend.json_bodies("POST", "/loki/api/v1/push")
        assert body["streams"][0]["values"][0][1] == "shipped"
        assert [s.values[0][1] for s in memory.streams] == ["shipped"]

    @pytest.mark.asyncio
    async def test_failed_builtin_raises_initialization_error(self, backend) -> None:  # type: ignore[no-untyped-def]
        backend.route("GET", "/ready", httpx.Response(503))
        config = IntegrationsConfig.from_dict(
            {
                "enabled": True,
                "loki": {"enabled": True, "url": "http://loki:3100"},
                "prometheus": {"enabled": True},
            }
        )
        manager = Manager(config, transport=backend.transport)

        with pytest.raises(InitializationError) as excinfo:
            await manager.initialize()

        assert excinfo.value.integration == "loki"
        assert isinstance(excinfo.value.cause, BackendConnectionError)
        assert manager.is_initialized() is False
        with pytest.raises(NotFoundError):
            manager.get_integration("loki")

    @pytest.mark.asyncio
    async def test_close_after_partial_initialize_stops_started_builtins(
        self, backend  # type: ignore[no-untyped-def]
    ) -> None:
        backend.route("GET", "/ready", 200)
        backend.route("GET", "/metrics/job/dns-analyzer", httpx.Response(503))
        config = IntegrationsConfig.from_dict(
            {
                "enabled": True,
                "loki": {"enabled": True, "url": "http://loki:3100"},
                "prometheus": {
                    "enabled": True,
                    "push_gateway": {
                        "enabled": True,
                        "url": "http://pushgateway:9091",
                    },
                },
            }
        )
        manager = Manager(config, transport=backend.transport)

        with pytest.raises(InitializationError) as excinfo:
            await manager.initialize()

        assert excinfo.value.integration == "prometheus"
        loki = manager.get_integration("loki")
        assert isinstance(loki, LokiIntegration)
        assert loki.batcher.closed is False

        await manager.close()
        await manager.close()

        assert loki.batcher.closed is True
        assert loki.is_enabled() is False
        assert manager.is_initialized() is False

    @pytest.mark.asyncio
    async def test_invalid_builtin_config_raises_initialization_error(self) -> None:
        config = IntegrationsConfig.from_dict(
            {"enabled": True, "loki": {"enabled": True, "url": "loki:3100"}}
        )
        manager = Manager(config)

        with pytest.raises(InitializationError) as excinfo:
            await manager.initialize()

        assert excinfo.value.integration == "loki"
