"""BDD step definitions for manager fan-out features."""

import asyncio
from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from telemetryhub.core.config import IntegrationsConfig
from telemetryhub.core.errors import FanOutError, TransportError
from telemetryhub.core.models import AnalysisResult, LogEntry, LogLevel
from telemetryhub.manager import Manager
from tests.fakes import FakeIntegration, FakeLogsIntegration

run_async = asyncio.run


@dataclass
class ManagerScenarioContext:
    """State shared between the steps of one scenario."""

    manager: Manager = field(
        default_factory=lambda: Manager(IntegrationsConfig(enabled=True))
    )
    integrations: list[FakeIntegration] = field(default_factory=list)
    log_integrations: list[FakeLogsIntegration] = field(default_factory=list)
    result: AnalysisResult = field(
        default_factory=lambda: AnalysisResult(total_queries=10, unique_clients=1)
    )
    error: Exception | None = None

    def add(self, integration: FakeIntegration) -> None:
        self.manager.register_integration(integration)
        self.integrations.append(integration)


@pytest.fixture
def ctx() -> ManagerScenarioContext:
    """Fresh scenario context for each test."""
    return ManagerScenarioContext()


# === Background Steps ===
@given("an initialized integration manager")
def step_initialized_manager(ctx: ManagerScenarioContext) -> None:
    run_async(ctx.manager.initialize())


# === Registration Steps ===
@given(parsers.parse("{total:d} registered integrations of which {enabled:d} are enabled"))
def step_enabled_integrations(
    ctx: ManagerScenarioContext, total: int, enabled: int
) -> None:
    for n in range(total):
        ctx.add(FakeIntegration(f"backend-{n}", enabled=n < enabled))


@given(parsers.parse("{total:d} registered integrations of which {failing:d} fail"))
def step_failing_integrations(
    ctx: ManagerScenarioContext, total: int, failing: int
) -> None:
    for n in range(total):
        error = TransportError(f"backend-{n} unavailable") if n < failing else None
        ctx.add(FakeIntegration(f"backend-{n}", fail_with=error))


@given(
    parsers.parse(
        "{total:d} registered integrations of which {failing:d} fails to close"
    )
)
def step_close_failures(ctx: ManagerScenarioContext, total: int, failing: int) -> None:
    for n in range(total):
        integration = FakeIntegration(f"backend-{n}")
        if n < failing:
            integration.close_error = TransportError("final flush failed")
        ctx.add(integration)


@given(parsers.parse("{count:d} registered log integrations"))
def step_log_integrations(ctx: ManagerScenarioContext, count: int) -> None:
    for n in range(count):
        integration = FakeLogsIntegration(f"logs-{n}")
        ctx.add(integration)
        ctx.log_integrations.append(integration)


@given(parsers.parse("{count:d} registered metrics-only integration"))
def step_metrics_only(ctx: ManagerScenarioContext, count: int) -> None:
    for n in range(count):
        ctx.add(FakeIntegration(f"metrics-{n}"))


# === Action Steps ===
@when("an analysis result is sent to all integrations")
def step_send_to_all(ctx: ManagerScenarioContext) -> None:
    try:
        run_async(ctx.manager.send_to_all(ctx.result))
    except FanOutError as exc:
        ctx.error = exc


@when(parsers.parse("{count:d} log entries are sent without buffering"))
def step_send_logs(ctx: ManagerScenarioContext, count: int) -> None:
    entries = [
        LogEntry(timestamp=1702300000.0 + n, level=LogLevel.INFO, message=f"entry {n}")
        for n in range(count)
    ]
    run_async(ctx.manager.send_logs(entries, buffered=False))


@when("the manager is closed")
def step_close(ctx: ManagerScenarioContext) -> None:
    try:
        run_async(ctx.manager.close())
    except FanOutError as exc:
        ctx.error = exc


# === Assertion Steps ===
@then(parsers.parse("{count:d} integrations receive the result"))
def step_received(ctx: ManagerScenarioContext, count: int) -> None:
    received = [i for i in ctx.integrations if i.metrics_calls == [ctx.result]]
    assert len(received) == count


@then("no error is raised")
def step_no_error(ctx: ManagerScenarioContext) -> None:
    assert ctx.error is None


@then(parsers.parse("a fan-out error names {count:d} integrations"))
def step_fan_out_error(ctx: ManagerScenarioContext, count: int) -> None:
    assert isinstance(ctx.error, FanOutError)
    assert len(ctx.error.names) == count


@then(parsers.parse("each log integration receives {count:d} entries"))
def step_log_entries(ctx: ManagerScenarioContext, count: int) -> None:
    assert [len(i.sent_logs) for i in ctx.log_integrations] == [count] * len(
        ctx.log_integrations
    )


@then("the metrics-only integration receives no entries")
def step_metrics_only_untouched(ctx: ManagerScenarioContext) -> None:
    others = [i for i in ctx.integrations if i not in ctx.log_integrations]
    assert others
    assert all(i.sent_logs == [] for i in others)


@then("every integration was closed once")
def step_closed_once(ctx: ManagerScenarioContext) -> None:
    assert all(i.closed == 1 for i in ctx.integrations)


@then("the manager is no longer initialized")
def step_not_initialized(ctx: ManagerScenarioContext) -> None:
    assert ctx.manager.is_initialized() is False
