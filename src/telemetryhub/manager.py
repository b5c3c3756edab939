"""Fan-out manager owning the set of monitoring integrations."""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from types import TracebackType
from typing import Any

import httpx

from telemetryhub.adapters.integrations import (
    GrafanaIntegration,
    LokiIntegration,
    PrometheusIntegration,
)
from telemetryhub.core.config import IntegrationsConfig
from telemetryhub.core.errors import (
    DuplicateNameError,
    FanOutError,
    InitializationError,
    NotFoundError,
    TelemetryError,
)
from telemetryhub.core.models import AnalysisResult, IntegrationStatus, LogEntry
from telemetryhub.core.ports import LogsIntegration, MonitoringIntegration

logger = logging.getLogger(__name__)


class Manager:
    """Owns a name-keyed set of integrations and fans operations out to them.

    Every fan-out runs one task per target and waits for all of them; one
    failing backend never cancels or hides the others. Failures are collected
    into a single ``FanOutError`` naming every failing backend.

    Example:
        ```python
        async with Manager(IntegrationsConfig.from_dict(settings)) as manager:
            await manager.send_to_all(result)
            await manager.send_logs([info("analysis complete")])
        ```

    Args:
        config: Integration configuration used by ``initialize``.
        transport: Optional httpx transport handed to the built-in
            integrations.
    """

    def __init__(
        self,
        config: IntegrationsConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or IntegrationsConfig()
        self._transport = transport
        self._integrations: dict[str, MonitoringIntegration] = {}
        self._initialized = False
        self._started = False
        self._lock = threading.Lock()

    @property
    def config(self) -> IntegrationsConfig:
        return self._config

    def is_initialized(self) -> bool:
        with self._lock:
            return self._initialized

    async def initialize(self, config: IntegrationsConfig | None = None) -> None:
        """Create and initialize the enabled built-in integrations.

        Grafana, Loki and Prometheus are set up in that order. Integrations
        registered before a failure stay registered.

        Args:
            config: Replaces the configuration given to the constructor.

        Raises:
            InitializationError: If any integration cannot be configured or
                connected. The failing integration is closed and not
                registered.
        """
        with self._lock:
            if self._initialized:
                logger.warning("Integration manager is already initialized")
                return
            if config is not None:
                self._config = config
            config = self._config

        if not config.enabled:
            logger.info("Integrations disabled in configuration")
            return

        logger.info("Initializing monitoring integrations")
        builtins: list[tuple[str, bool, Callable[[], MonitoringIntegration]]] = [
            (
                "grafana",
                config.grafana.enabled,
                lambda: GrafanaIntegration(
                    config.grafana,
                    transport=self._transport,
                    namespace=config.prometheus.namespace,
                ),
            ),
            (
                "loki",
                config.loki.enabled,
                lambda: LokiIntegration(config.loki, transport=self._transport),
            ),
            (
                "prometheus",
                config.prometheus.enabled,
                lambda: PrometheusIntegration(
                    config.prometheus, transport=self._transport
                ),
            ),
        ]
        for name, enabled, factory in builtins:
            if not enabled:
                logger.debug("Integration disabled", extra={"integration": name})
                continue
            await self._start(name, factory)

        with self._lock:
            self._initialized = True
        logger.info(
            "Monitoring integrations initialized",
            extra={"integration_count": len(self.get_enabled_integrations())},
        )

    async def _start(
        self, name: str, factory: Callable[[], MonitoringIntegration]
    ) -> None:
        try:
            integration = factory()
        except TelemetryError as exc:
            raise InitializationError(name, exc) from exc
        try:
            await integration.initialize()
            self.register_integration(integration)
            with self._lock:
                self._started = True
        except TelemetryError as exc:
            logger.error(
                "Failed to initialize integration: %s",
                exc,
                extra={"integration": name},
            )
            await self._discard(integration)
            raise InitializationError(name, exc) from exc

    async def _discard(self, integration: MonitoringIntegration) -> None:
        try:
            await integration.close()
        except TelemetryError:
            logger.warning(
                "Failed to close integration after initialization error",
                exc_info=True,
                extra={"integration": integration.name},
            )

    def register_integration(self, integration: MonitoringIntegration) -> None:
        """Add an integration under its own name.

        Raises:
            DuplicateNameError: If the name is already registered.
        """
        with self._lock:
            if integration.name in self._integrations:
                raise DuplicateNameError(
                    f"integration {integration.name} already registered"
                )
            self._integrations[integration.name] = integration
        logger.debug("Registered integration", extra={"integration": integration.name})

    def get_integration(self, name: str) -> MonitoringIntegration:
        """Look up an integration by name.

        Raises:
            NotFoundError: If no integration has that name.
        """
        with self._lock:
            integration = self._integrations.get(name)
        if integration is None:
            raise NotFoundError(f"integration {name} not found")
        return integration

    def get_enabled_integrations(self) -> list[MonitoringIntegration]:
        """Enabled integrations, sorted by name."""
        with self._lock:
            integrations = [self._integrations[name] for name in sorted(self._integrations)]
        return [integration for integration in integrations if integration.is_enabled()]

    def _targets(self) -> list[MonitoringIntegration]:
        with self._lock:
            active = self._initialized and self._config.enabled
        return self.get_enabled_integrations() if active else []

    async def send_to_all(
        self, result: AnalysisResult, timeout: float | None = None
    ) -> None:
        """Send an analysis snapshot to every enabled integration.

        Args:
            result: Snapshot to deliver.
            timeout: Seconds each integration may take; a slower one counts
                as failed without affecting the others.

        Raises:
            FanOutError: If any integration failed, naming all of them.
        """
        targets = self._targets()
        if not targets:
            return
        await self._fan_out(
            "send_metrics", targets, lambda target: target.send_metrics(result), timeout
        )

    async def send_logs(
        self,
        entries: Sequence[LogEntry],
        buffered: bool = True,
        timeout: float | None = None,
    ) -> None:
        """Deliver log entries to every enabled log-capable integration.

        Args:
            entries: Entries to deliver.
            buffered: Buffer through ``write_logs`` (default) instead of
                pushing immediately with ``send_logs``.
            timeout: Seconds each integration may take.

        Raises:
            FanOutError: If any integration failed, naming all of them.
        """
        targets = [
            target for target in self._targets() if isinstance(target, LogsIntegration)
        ]
        if not targets or not entries:
            return
        if buffered:
            operation = "write_logs"

            def call(target: Any) -> Awaitable[None]:
                return target.write_logs(entries)

        else:
            operation = "send_logs"

            def call(target: Any) -> Awaitable[None]:
                return target.send_logs(entries)

        await self._fan_out(operation, targets, call, timeout)

    async def _fan_out(
        self,
        operation: str,
        targets: list[MonitoringIntegration],
        call: Callable[[Any], Awaitable[None]],
        timeout: float | None,
    ) -> None:
        async def run(target: MonitoringIntegration) -> None:
            if timeout is None:
                await call(target)
            else:
                await asyncio.wait_for(call(target), timeout)

        results = await asyncio.gather(
            *(run(target) for target in targets), return_exceptions=True
        )
        failures: dict[str, Exception] = {}
        for target, outcome in zip(targets, results):
            if isinstance(outcome, Exception):
                failures[target.name] = outcome
                logger.error(
                    "%s failed: %s",
                    operation,
                    outcome,
                    extra={"integration": target.name},
                )
            elif isinstance(outcome, BaseException):
                raise outcome
        if failures:
            raise FanOutError(operation, failures)

    async def test_all(self) -> dict[str, Exception]:
        """Test every enabled integration in turn.

        An uninitialized or globally disabled manager tests nothing.

        Returns:
            Mapping of each failing integration's name to the error it
            raised. Empty when every connection test passed.
        """
        failures: dict[str, Exception] = {}
        for integration in self._targets():
            try:
                await integration.test_connection()
            except Exception as exc:
                logger.warning(
                    "Connection test failed: %s",
                    exc,
                    extra={"integration": integration.name},
                )
                failures[integration.name] = exc
        return failures

    def get_status(self) -> dict[str, IntegrationStatus]:
        """Snapshot of every registered integration's status."""
        with self._lock:
            integrations = list(self._integrations.values())
        return {integration.name: integration.get_status() for integration in integrations}

    async def close(self) -> None:
        """Close every registered integration.

        Built-in integrations started by an initialize call that later
        failed are closed as well. Calling close on a manager that started
        nothing does nothing. The manager is marked uninitialized even when
        some integrations fail.

        Raises:
            FanOutError: If any integration failed to close.
        """
        with self._lock:
            if not (self._initialized or self._started):
                return
            integrations = [self._integrations[name] for name in sorted(self._integrations)]

        logger.info("Closing monitoring integrations")
        failures: dict[str, Exception] = {}
        try:
            for integration in integrations:
                try:
                    await integration.close()
                except Exception as exc:
                    logger.error(
                        "Failed to close integration: %s",
                        exc,
                        extra={"integration": integration.name},
                    )
                    failures[integration.name] = exc
        finally:
            with self._lock:
                self._initialized = False
                self._started = False
        if failures:
            raise FanOutError("close", failures)

    async def __aenter__(self) -> "Manager":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()
