"""Example fan-out of analysis results and logs without a monitoring stack.

Run with:
    python examples/fanout_example.py

Set LOKI_URL (e.g. http://localhost:3100) to also ship logs to a running
Loki instance.

What it shows:
    - Prometheus metrics recorded from an AnalysisResult and rendered in
      the text exposition format
    - Log entries and standard library log records delivered through the
      in-memory integration's batcher
    - One FanOutError naming every backend that failed
"""

import asyncio
import logging
import os

from telemetryhub import (
    AnalysisResult,
    ClientStats,
    FanOutError,
    InMemoryIntegration,
    IntegrationLogHandler,
    IntegrationsConfig,
    Manager,
    PrometheusIntegration,
    info,
    timed_log,
)

logger = logging.getLogger("analyzer")


def build_config() -> IntegrationsConfig:
    settings: dict[str, object] = {"enabled": True, "prometheus": {"enabled": True}}
    loki_url = os.environ.get("LOKI_URL")
    if loki_url:
        settings["loki"] = {"enabled": True, "url": loki_url, "batch_timeout": "2s"}
    return IntegrationsConfig.from_dict(settings)


async def main() -> None:
    memory = InMemoryIntegration(batch_timeout="1s", static_labels={"service": "example"})
    await memory.initialize()

    async with Manager(build_config()) as manager:
        manager.register_integration(memory)

        handler = IntegrationLogHandler(
            memory, component="analyzer", loop=asyncio.get_running_loop()
        )
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        with timed_log("analysis", component="analyzer") as timing:
            result = AnalysisResult(
                total_queries=150,
                unique_clients=2,
                client_stats={
                    "192.168.1.10": ClientStats(
                        ip="192.168.1.10",
                        hostname="laptop",
                        query_count=100,
                        domains={"example.com": 60, "github.com": 40},
                    ),
                    "192.168.1.11": ClientStats(
                        ip="192.168.1.11",
                        hostname="phone",
                        query_count=50,
                        domains={"example.com": 50},
                    ),
                },
                analysis_duration=0.42,
            )

        try:
            await manager.send_to_all(result)
            await manager.send_logs(
                [*timing.logs, info("analysis complete", component="analyzer")]
            )
        except FanOutError as exc:
            print(f"Some backends failed: {', '.join(exc.names)}")

        logger.info("Analysis stored", extra={"clients": result.unique_clients})
        await asyncio.sleep(0.1)

        prometheus = manager.get_integration("prometheus")
        assert isinstance(prometheus, PrometheusIntegration)
        print(prometheus.expose().decode())

        failures = await manager.test_all()
        for integration in manager.get_enabled_integrations():
            print(f"{integration.name}: {failures.get(integration.name, 'ok')}")

        logger.removeHandler(handler)

    for stream in memory.streams:
        for _, line in stream.values:
            print(f"{stream.key} {line}")


if __name__ == "__main__":
    asyncio.run(main())
